"""Quality-control checks for readings, auto-gain outcomes and results."""

from __future__ import annotations

import logging
from enum import IntEnum, IntFlag
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from ..config import VerificationThresholds, settings
from ..data.models import (
    AutoGainResult,
    FirstAirMeasurementResult,
    FirstSampleMeasurementResult,
    Measurement,
    Results,
    SingleMeasurement,
)

logger = logging.getLogger(__name__)


class ProblemId(IntEnum):
    """Problems a verification can record."""

    SATURATION = 1
    CUVETTE_MISSING = 2
    AUTO_GAIN_RESULT = 5
    WRONG_LEVEL = 6
    NEGATIVE_CONCENTRATION = 7


class Hints(IntFlag):
    """Context for a check."""

    NONE = 0
    MUST_HAVE_CUVETTE = 1
    STD_HIGH = 2


Checkable = Union[
    AutoGainResult,
    SingleMeasurement,
    FirstAirMeasurementResult,
    FirstSampleMeasurementResult,
    Measurement,
    Results,
]


class VerificationEntry:
    """One recorded problem and the data that caused it."""

    __slots__ = ("problem", "data")

    def __init__(self, problem: ProblemId, data: Checkable) -> None:
        self.problem = problem
        self.data = data

    def __repr__(self) -> str:
        return f"{self.problem.name}({int(self.problem)}) {self.data}"

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "problem_id": int(self.problem),
            "description": self.problem.name,
        }
        if isinstance(self.data, BaseModel):
            payload["data"] = self.data.model_dump(mode="json", by_alias=True)
        return payload


class Verification:
    """Accumulates findings over any number of checks.

    Checks never raise for bad data and never stop at the first problem: every
    finding is recorded and the boolean return value of a composite check is
    the logical AND of its sub-checks.
    """

    def __init__(self, thresholds: Optional[VerificationThresholds] = None) -> None:
        self._thresholds = thresholds or settings.verification
        self._entries: List[VerificationEntry] = []

    @property
    def thresholds(self) -> VerificationThresholds:
        return self._thresholds

    @property
    def entries(self) -> List[VerificationEntry]:
        """Recorded findings in the order they were found."""

        return list(self._entries)

    def success(self) -> bool:
        return not self._entries

    def failed(self) -> bool:
        return bool(self._entries)

    def has_problem(self, problem: ProblemId) -> bool:
        return any(entry.problem == problem for entry in self._entries)

    def to_json(self) -> List[Dict[str, Any]]:
        return [entry.to_json() for entry in self._entries]

    def __repr__(self) -> str:
        return f"Verification(entries={self._entries!r})"

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    def check(self, obj: Checkable, hints: Hints = Hints.NONE) -> bool:
        """Route ``obj`` to the check for its type.

        Raises:
            TypeError: If ``obj`` is not one of the checkable types.
        """

        if isinstance(obj, AutoGainResult):
            return self.check_auto_gain(obj, hints)
        if isinstance(obj, SingleMeasurement):
            return self.check_single(obj, hints)
        if isinstance(obj, FirstAirMeasurementResult):
            return self.check_first_air(obj, hints)
        if isinstance(obj, FirstSampleMeasurementResult):
            return self.check_first_sample(obj, hints)
        if isinstance(obj, Measurement):
            return self.check_measurement(obj, hints)
        if isinstance(obj, Results):
            return self.check_results(obj, hints)
        raise TypeError(f"Unsupported class {type(obj).__name__}")

    def check_auto_gain(self, result: AutoGainResult, hints: Hints = Hints.NONE) -> bool:
        if not result.found:
            self._add(ProblemId.AUTO_GAIN_RESULT, result)
            return False
        return True

    def check_single(self, measurement: SingleMeasurement, hints: Hints = Hints.NONE) -> bool:
        limits = self._thresholds
        channel = measurement.channel470
        ok = True

        if channel.value >= limits.max_signal:
            self._add(ProblemId.SATURATION, measurement)
            ok = False

        if hints & Hints.MUST_HAVE_CUVETTE and not self.has_cuvette(measurement):
            self._add(ProblemId.CUVETTE_MISSING, measurement)
            ok = False

        if hints & Hints.STD_HIGH:
            low = limits.std_high_target - limits.std_high_delta
            high = limits.std_high_target + limits.std_high_delta
            if channel.value < low or channel.value > high:
                self._add(ProblemId.WRONG_LEVEL, measurement)
                ok = False

        return ok

    def check_first_air(self, result: FirstAirMeasurementResult, hints: Hints = Hints.NONE) -> bool:
        ok_min = self.check_single(result.min_measurement, Hints.MUST_HAVE_CUVETTE)
        ok_max = self.check_single(result.max_measurement, Hints.MUST_HAVE_CUVETTE)
        return ok_min and ok_max

    def check_first_sample(self, result: FirstSampleMeasurementResult, hints: Hints = Hints.NONE) -> bool:
        ok_gain = self.check_auto_gain(result.auto_gain_result, hints)
        ok_reading = self.check_single(result.measurement, Hints.MUST_HAVE_CUVETTE | Hints.STD_HIGH)
        return ok_gain and ok_reading

    def check_measurement(self, measurement: Measurement, hints: Hints = Hints.NONE) -> bool:
        ok_air = self.check_single(measurement.air, Hints.MUST_HAVE_CUVETTE)
        ok_sample = self.check_single(measurement.sample, hints | Hints.MUST_HAVE_CUVETTE)
        return ok_air and ok_sample

    def check_results(self, results: Results, hints: Hints = Hints.NONE) -> bool:
        if results.concentration < self._thresholds.threshold_negative_concentration:
            self._add(ProblemId.NEGATIVE_CONCENTRATION, results)
            return False
        return True

    def has_cuvette(self, measurement: SingleMeasurement) -> bool:
        """Heuristic cuvette presence test.

        The expected RFU at the reading's LED power is interpolated between the
        two expected points; the corrected signal must exceed it scaled by the
        threshold multiplier.
        """

        limits = self._thresholds
        if limits.expected_max_led_power == limits.expected_min_led_power:
            raise ValueError("LED power interpolation division by 0")

        slope = (limits.expected_max_rfu - limits.expected_min_rfu) / (
            limits.expected_max_led_power - limits.expected_min_led_power
        )
        led_power = measurement.channel470.led_power
        expected_rfu = slope * (led_power - limits.expected_min_led_power) + limits.expected_min_rfu
        return measurement.delta() > expected_rfu * limits.rfu_threshold_multiplier

    def _add(self, problem: ProblemId, data: Checkable) -> None:
        logger.warning("Verification problem %s: %s", problem.name, data)
        self._entries.append(VerificationEntry(problem, data))
