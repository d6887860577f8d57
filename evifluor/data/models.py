"""Value types for optical readings, calibration and device results."""

from __future__ import annotations

import math
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator

from ..exceptions import CalibrationError

# Absolute tolerance for comparing concentrations
RESULTS_TOLERANCE = 1e-9


def _interpolate(x0: float, y0: float, x1: float, y1: float, x: float) -> float:
    return y0 + (y1 - y0) / (x1 - x0) * (x - x0)


class Channel(BaseModel):
    """One optical channel reading, measured in mV."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    dark: float = Field(0.0, description="Dark value in mV")
    value: float = Field(0.0, description="Illuminated value in mV")
    led_power: int = Field(0, ge=0, le=255, alias="ledPower", description="LED power assigned by the device")

    def delta(self) -> float:
        """Return the background corrected signal in mV."""

        return self.value - self.dark

    def __str__(self) -> str:
        return f"Dark:{self.dark} Value:{self.value} LedPower:{self.led_power}"


class SingleMeasurement(BaseModel):
    """A single physical reading of the 470 nm channel.

    Serialised flat, i.e. as the channel object itself.
    """

    model_config = ConfigDict(frozen=True)

    channel470: Channel = Field(default_factory=Channel)

    @model_validator(mode="before")
    @classmethod
    def _wrap_flat_channel(cls, data: Any) -> Any:
        if isinstance(data, Channel):
            return {"channel470": data}
        if isinstance(data, dict) and "channel470" not in data:
            return {"channel470": data}
        return data

    @model_serializer(mode="plain")
    def _serialize_flat(self) -> Dict[str, Any]:
        return self.channel470.model_dump(by_alias=True)

    def delta(self) -> float:
        return self.channel470.delta()

    def __str__(self) -> str:
        return f"470: [{self.channel470}]"


class Point(BaseModel):
    """A calibration anchor: a known concentration and its corrected signal."""

    concentration: float
    value: float


class Factors(BaseModel):
    """The two calibration anchors of a two-point fit."""

    std_low: Point
    std_high: Point

    def __str__(self) -> str:
        return (
            f"StdLow: {self.std_low.concentration}/{self.std_low.value} "
            f"StdHigh: {self.std_high.concentration}/{self.std_high.value}"
        )


class Results(BaseModel):
    """Calculated results of one measurement.

    The unit of the concentration is the unit of the high standard.
    """

    concentration: float

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Results):
            return NotImplemented
        return math.isclose(self.concentration, other.concentration, rel_tol=0.0, abs_tol=RESULTS_TOLERANCE)


class AutoGainResult(BaseModel):
    """Outcome of the device auto-gain search."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    found: bool
    led_power: int = Field(..., ge=0, le=255, alias="ledPower")


class FirstAirMeasurementResult(BaseModel):
    """Air readings taken at the minimum and maximum LED power."""

    model_config = ConfigDict(frozen=True)

    min_measurement: SingleMeasurement
    max_measurement: SingleMeasurement

    def adjust_to_led_power(self, led_power: int) -> SingleMeasurement:
        """Re-express the air reading as if it had been taken at ``led_power``.

        ``dark`` and ``value`` are interpolated independently along the line
        through the minimum and maximum power readings.

        Raises:
            CalibrationError: If both reference readings use the same LED power.
        """

        low = self.min_measurement.channel470
        high = self.max_measurement.channel470
        if low.led_power == high.led_power:
            raise CalibrationError(f"Cannot adjust to LED power {led_power}: both air readings use LED power {low.led_power}")

        dark = _interpolate(low.led_power, low.dark, high.led_power, high.dark, led_power)
        value = _interpolate(low.led_power, low.value, high.led_power, high.value, led_power)
        return SingleMeasurement(channel470=Channel(dark=dark, value=value, led_power=led_power))


class FirstSampleMeasurementResult(BaseModel):
    """The auto-gain outcome and the reading taken at the chosen LED power."""

    model_config = ConfigDict(frozen=True)

    auto_gain_result: AutoGainResult
    measurement: SingleMeasurement


class SelfTestResult(BaseModel):
    """Bit field returned by the device self test."""

    result: int = 0

    def has_problems(self) -> bool:
        return self.result != 0

    def has_problem_with_communication(self) -> bool:
        return bool(self.result & 0x00000001)


class Measurement(BaseModel):
    """An air reading paired with a sample reading."""

    model_config = ConfigDict(frozen=True)

    air: SingleMeasurement
    sample: SingleMeasurement
    comment: str = ""

    @classmethod
    def from_first(
        cls,
        first_air: FirstAirMeasurementResult,
        first_sample: FirstSampleMeasurementResult,
        comment: str = "",
    ) -> "Measurement":
        """Combine the first air and first sample steps of a run.

        The air reading is adjusted to the LED power chosen by auto-gain so
        that both readings share one basis before subtraction.
        """

        air = first_air.adjust_to_led_power(first_sample.auto_gain_result.led_power)
        return cls(air=air, sample=first_sample.measurement, comment=comment)

    def value(self) -> float:
        """Return the sample signal corrected by the air signal."""

        return self.sample.delta() - self.air.delta()

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "air": self.air.model_dump(),
            "sample": self.sample.model_dump(),
        }
        if self.comment:
            payload["comment"] = self.comment
        return payload

    def __str__(self) -> str:
        return f"air:{self.air} sample:{self.sample}"
