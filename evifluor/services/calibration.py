"""Two-point calibration: assay kits, factor calculation and concentrations."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence, Type

import numpy as np

from ..data.models import Factors, FirstAirMeasurementResult, Measurement, Point, Results, SingleMeasurement
from ..exceptions import CalibrationError

logger = logging.getLogger(__name__)


class Kit(ABC):
    """Fitting strategy of an assay kit."""

    name: str = "Kit"

    @abstractmethod
    def fit(self, std_low: Point, std_high: Point, value: float) -> float:
        """Convert a corrected signal into a concentration.

        Args:
            std_low: Low standard anchor
            std_high: High standard anchor
            value: Corrected signal of the measurement in mV

        Returns:
            Concentration in the unit of the standards
        """
        pass

    def __str__(self) -> str:
        return self.name


class LinearKit(Kit):
    """Linear interpolation between the low and the high standard."""

    name = "Default kit with linear interpolation between std low and std high"

    def fit(self, std_low: Point, std_high: Point, value: float) -> float:
        if std_high.value == std_low.value:
            raise CalibrationError(
                f"Standards are not distinguishable: low and high both read {std_low.value} mV"
            )

        m = (std_high.concentration - std_low.concentration) / (std_high.value - std_low.value)
        b = std_high.concentration - m * std_high.value
        concentration = m * value + b
        if not math.isfinite(concentration):
            raise CalibrationError(f"Fit produced a non-finite concentration for value {value}")
        return concentration


class QuantItDsDnaHsKit(LinearKit):
    """Thermo Fisher Quant-iT dsDNA HS Assay (Q33120), linear."""

    name = "Quant-iT dsDNA Assay Kit, High Sensitivity (Q33120)"


KITS: Dict[str, Type[Kit]] = {
    "default": LinearKit,
    "quant-it-dsdna-hs": QuantItDsDnaHsKit,
}


def get_kit(name: str = "default") -> Kit:
    """Return a kit instance by registry name."""

    try:
        return KITS[name]()
    except KeyError:
        raise ValueError(f"Unknown kit: {name} (available: {', '.join(sorted(KITS))})") from None


def adjust_to_led_power(first_air: FirstAirMeasurementResult, led_power: int) -> SingleMeasurement:
    """Re-express a first air result at another LED power."""

    return first_air.adjust_to_led_power(led_power)


def calculate_factors(
    concentration_low: float,
    concentration_high: float,
    measurements_std_low: Sequence[Measurement],
    measurements_std_high: Sequence[Measurement],
) -> Factors:
    """Average the replicate groups of both standards into calibration anchors.

    Raises:
        CalibrationError: If a group is empty or both averages are equal.
    """

    if not measurements_std_low:
        raise CalibrationError("No measurements for the low standard")
    if not measurements_std_high:
        raise CalibrationError("No measurements for the high standard")

    std_low = float(np.mean([m.value() for m in measurements_std_low]))
    std_high = float(np.mean([m.value() for m in measurements_std_high]))
    if std_low == std_high:
        raise CalibrationError(f"Low and high standard have the same mean signal {std_low} mV")

    factors = Factors(
        std_low=Point(concentration=concentration_low, value=std_low),
        std_high=Point(concentration=concentration_high, value=std_high),
    )
    logger.info("Calculated factors %s", factors)
    return factors


def compute_results(measurement: Measurement, factors: Factors, kit: Optional[Kit] = None) -> Results:
    """Return the concentration of a measurement for the given factors."""

    kit = kit or LinearKit()
    return Results(concentration=kit.fit(factors.std_low, factors.std_high, measurement.value()))
