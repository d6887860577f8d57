"""Measurement engine for the eviFluor fluorometer module."""

__version__ = "0.1.0"
