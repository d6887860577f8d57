"""Guided measurement run: standards first, then unknown samples."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import VerificationThresholds, settings
from ..data.models import Factors, FirstAirMeasurementResult, Measurement, SingleMeasurement
from ..data.repository import RunLog
from ..exceptions import CalibrationError, SequencerError
from ..instrument import FluorometerInterface
from .calibration import Kit, LinearKit, calculate_factors
from .instrument_manager import InstrumentManager
from .verification import Hints, Verification

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    FIRST_AIR = "first_air"
    FIRST_SAMPLE = "first_sample"
    AIR = "air"
    SAMPLE = "sample"


class MeasurementRun:
    """Drives one device through a calibrated run and logs every measurement.

    The first ``nr_of_std_high`` stored measurements are the high standard,
    the next ``nr_of_std_low`` the low standard and every further one an
    unknown sample. Once all standards are stored the calibration factors are
    computed a single time and results are filled into every entry that lacks
    them. The log is written to disk after every step.
    """

    def __init__(
        self,
        instrument_manager: InstrumentManager,
        nr_of_std_low: int,
        nr_of_std_high: int,
        concentration_std_high: float,
        concentration_std_low: float = 0.0,
        path: Optional[Path] = None,
        filename: Optional[str] = None,
        kit: Optional[Kit] = None,
        thresholds: Optional[VerificationThresholds] = None,
    ) -> None:
        if nr_of_std_low < 1 or nr_of_std_high < 1:
            raise ValueError("At least one low and one high standard are required")

        self._instrument_manager = instrument_manager
        if not instrument_manager.is_connected:
            instrument_manager.connect()

        self._nr_of_std_low = nr_of_std_low
        self._nr_of_std_high = nr_of_std_high
        self._concentration_std_high = concentration_std_high
        self._concentration_std_low = concentration_std_low
        self._kit = kit or LinearKit()
        self._thresholds = thresholds or settings.verification

        self._run_log = RunLog()
        self._state = RunState.FIRST_AIR
        self._count = 0
        self._factors: Optional[Factors] = None
        self._verification = Verification(self._thresholds)
        self._first_air: Optional[FirstAirMeasurementResult] = None
        self._air: Optional[SingleMeasurement] = None
        self._failed = False

        if filename is None:
            serial = instrument_manager.serial_number()
            filename = f"evifluor-{serial}-{datetime.now():%Y_%m_%d_%H_%M_%S}.json"
        self._path: Optional[Path] = None
        if filename:
            self._path = Path(path if path is not None else settings.data_root) / filename

        logger.info(
            "Run started: %d high standard(s) at %s, %d low standard(s) at %s, kit %s, file %s",
            nr_of_std_high,
            concentration_std_high,
            nr_of_std_low,
            concentration_std_low,
            self._kit,
            self._path,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> RunState:
        return self._state

    @property
    def count(self) -> int:
        """Number of completed steps."""
        return self._count

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def run_log(self) -> RunLog:
        return self._run_log

    @property
    def factors(self) -> Optional[Factors]:
        return self._factors

    @property
    def verification(self) -> Verification:
        """Findings of the current air/sample pair."""
        return self._verification

    @property
    def failed(self) -> bool:
        """True once the standards failed to calibrate."""
        return self._failed

    @property
    def nr_of_standards(self) -> int:
        return self._nr_of_std_low + self._nr_of_std_high

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def measure(self, comment: Optional[str] = None) -> Verification:
        """Execute the next step of the run.

        Args:
            comment: Stored with the measurement on sample steps. ``None``
                stores a generated label, ``""`` stores no comment.

        Returns:
            The verification holding the findings of the current pair.

        Raises:
            CalibrationError: The standards do not give usable factors. The
                log is saved and the run accepts no further steps.
            SequencerError: The run was aborted or the device is not connected.
        """
        if self._failed:
            raise SequencerError("Run aborted after a calibration failure")
        device = self._device()

        if self._state == RunState.FIRST_AIR:
            self._verification = Verification(self._thresholds)
            self._first_air = device.first_air_measurement()
            self._verification.check(self._first_air)
            self._transition(RunState.FIRST_SAMPLE)

        elif self._state == RunState.FIRST_SAMPLE:
            if self._first_air is None:
                raise SequencerError("First air measurement missing")
            first_sample = device.first_sample_measurement(settings.autogain_level)
            self._verification.check(first_sample)
            label = self._label(comment)
            measurement = Measurement.from_first(self._first_air, first_sample, label)
            self._run_log.append(measurement, label, device.logging(), self._verification)
            self._transition(RunState.AIR)

        elif self._state == RunState.AIR:
            self._verification = Verification(self._thresholds)
            self._air = device.measure()
            self._verification.check(self._air, Hints.MUST_HAVE_CUVETTE)
            self._transition(RunState.SAMPLE)

        elif self._state == RunState.SAMPLE:
            if self._air is None:
                raise SequencerError("Air measurement missing")
            sample = device.measure()
            self._verification.check(sample, Hints.MUST_HAVE_CUVETTE)
            label = self._label(comment)
            measurement = Measurement(air=self._air, sample=sample, comment=label)
            self._run_log.append(measurement, label, device.logging(), self._verification)
            self._transition(RunState.AIR)

        try:
            self._recalculate()
        except CalibrationError:
            self._failed = True
            logger.error("Calibration failed, run aborted after %d entries", len(self._run_log))
            raise
        finally:
            self._save()
        self._count += 1
        return self._verification

    def check_empty(self) -> bool:
        """Return True if the cuvette holder of the device is empty."""
        return self._device().is_cuvette_holder_empty()

    def close(self) -> None:
        """Release the device."""
        self._instrument_manager.disconnect()
        logger.info("Run closed after %d step(s)", self._count)

    def __enter__(self) -> "MeasurementRun":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _device(self) -> FluorometerInterface:
        if not self._instrument_manager.is_connected:
            raise SequencerError("Device is not connected")
        return self._instrument_manager.instrument

    def _transition(self, state: RunState) -> None:
        logger.info("Run state %s -> %s", self._state.value, state.value)
        self._state = state

    def _label(self, comment: Optional[str]) -> str:
        if comment is not None:
            return comment

        index = len(self._run_log)
        if index < self._nr_of_std_high:
            return f"STD High #{index + 1} {self._concentration_std_high:.1f} ng/ul"
        index -= self._nr_of_std_high
        if index < self._nr_of_std_low:
            return f"STD Low #{index + 1} {self._concentration_std_low:.1f} ng/ul"
        return f"Sample #{index - self._nr_of_std_low + 1}"

    def _standards(self) -> Tuple[List[Measurement], List[Measurement]]:
        measurements = self._run_log.measurements()
        highs = measurements[: self._nr_of_std_high]
        lows = measurements[self._nr_of_std_high: self.nr_of_standards]
        return lows, highs

    def _recalculate(self) -> None:
        if self._factors is None and len(self._run_log) == self.nr_of_standards:
            lows, highs = self._standards()
            self._factors = calculate_factors(
                self._concentration_std_low,
                self._concentration_std_high,
                lows,
                highs,
            )

        if self._factors is None:
            return

        for index, entry in enumerate(self._run_log):
            if entry.has_results():
                continue
            results = self._run_log.apply_results(index, self._factors, self._kit)
            verification = Verification(self._thresholds)
            verification.check_results(results)
            self._run_log.add_findings(index, verification)

    def _save(self) -> None:
        if self._path is None:
            raise SequencerError("No output file for the run log")
        self._run_log.save(self._path)
        logger.info("Saved run log with %d entries to %s", len(self._run_log), self._path)
