"""Business logic services."""

from .calibration import KITS, Kit, LinearKit, QuantItDsDnaHsKit, calculate_factors, compute_results, get_kit
from .instrument_manager import InstrumentManager
from .run import MeasurementRun, RunState
from .verification import Hints, ProblemId, Verification

__all__ = [
    "KITS",
    "Kit",
    "LinearKit",
    "QuantItDsDnaHsKit",
    "calculate_factors",
    "compute_results",
    "get_kit",
    "InstrumentManager",
    "MeasurementRun",
    "RunState",
    "Hints",
    "ProblemId",
    "Verification",
]
