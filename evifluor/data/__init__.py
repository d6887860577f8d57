"""Data models and persistence utilities."""

from .models import (
    AutoGainResult,
    Channel,
    Factors,
    FirstAirMeasurementResult,
    FirstSampleMeasurementResult,
    Measurement,
    Point,
    Results,
    SelfTestResult,
    SingleMeasurement,
)
from .repository import RunLog, RunLogEntry

__all__ = [
    "AutoGainResult",
    "Channel",
    "Factors",
    "FirstAirMeasurementResult",
    "FirstSampleMeasurementResult",
    "Measurement",
    "Point",
    "Results",
    "SelfTestResult",
    "SingleMeasurement",
    "RunLog",
    "RunLogEntry",
]
