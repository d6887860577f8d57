"""Instrument drivers and abstractions."""

from .base import DeviceErrorCode, FluorometerInterface, Index
from .evifluor_module import EviFluorModule
from .simulation import OpticalModel, SimulationFluorometer

__all__ = ["DeviceErrorCode", "FluorometerInterface", "Index", "EviFluorModule", "OpticalModel", "SimulationFluorometer"]
