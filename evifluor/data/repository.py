"""Persistence of the append-only run log."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .models import Factors, Measurement, Results, SingleMeasurement

if TYPE_CHECKING:
    from ..services.calibration import Kit
    from ..services.verification import Verification

logger = logging.getLogger(__name__)

MEASUREMENTS = "measurements"
RESULTS = "results"
COMMENT = "comment"
LOGGING = "logging"
DATE_TIME = "date_time"
ERRORS = "errors"


class FindingRecord(BaseModel):
    """A persisted verification finding."""

    model_config = ConfigDict(extra="allow")

    problem_id: int
    description: str
    data: Optional[Dict[str, Any]] = None


class RunLogEntry(BaseModel):
    """Structured view of one persisted log entry.

    Keys this model does not know are kept in ``model_extra``. The entry also
    holds a reference to the raw node it was read from so that results can be
    written back without re-serialising the entry.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    air: SingleMeasurement
    sample: SingleMeasurement
    comment: Optional[str] = None
    device_log_lines: List[str] = Field(default_factory=list, alias=LOGGING)
    timestamp: Optional[datetime] = Field(None, alias=DATE_TIME)
    verification_findings: Optional[List[FindingRecord]] = Field(None, alias=ERRORS)
    results: Optional[Results] = None

    _node: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "RunLogEntry":
        entry = cls.model_validate(node)
        entry._node = node
        return entry

    @property
    def measurement(self) -> Measurement:
        return Measurement(air=self.air, sample=self.sample, comment=self.comment or "")

    def has_results(self) -> bool:
        return self.results is not None

    def apply_results(self, factors: Factors, kit: Optional["Kit"] = None) -> Results:
        """Compute results and write them into the raw node."""

        from ..services.calibration import compute_results

        results = compute_results(self.measurement, factors, kit)
        if self._node is not None:
            self._node[RESULTS] = results.model_dump(mode="json")
        self.results = results
        return results


class RunLog:
    """Ordered, append-only log of measurement entries.

    The log is kept as the raw JSON document so that fields written by other
    tools survive a load, modify and save cycle unchanged.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = data if data is not None else {}
        self._data.setdefault(MEASUREMENTS, [])
        if not isinstance(self._data[MEASUREMENTS], list):
            raise ValueError(f"'{MEASUREMENTS}' must be a list")

    @classmethod
    def load(cls, path: Path) -> "RunLog":
        """Read a run log from disk."""

        with Path(path).open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, dict):
            raise ValueError(f"{path} does not contain a run log object")
        return cls(payload)

    @property
    def data(self) -> Dict[str, Any]:
        """The raw document."""

        return self._data

    @property
    def _nodes(self) -> List[Dict[str, Any]]:
        return self._data[MEASUREMENTS]

    # ------------------------------------------------------------------
    # Appending
    # ------------------------------------------------------------------
    def append(
        self,
        measurement: Measurement,
        comment: str = "",
        logging: Optional[Sequence[str]] = None,
        verification: Optional["Verification"] = None,
    ) -> RunLogEntry:
        """Append a measurement as the newest entry."""

        return self._append(measurement, None, comment, logging, verification)

    def append_with_results(
        self,
        measurement: Measurement,
        results: Results,
        comment: str = "",
        logging: Optional[Sequence[str]] = None,
        verification: Optional["Verification"] = None,
    ) -> RunLogEntry:
        """Append a measurement together with already known results."""

        return self._append(measurement, results, comment, logging, verification)

    def _append(
        self,
        measurement: Measurement,
        results: Optional[Results],
        comment: str,
        device_log_lines: Optional[Sequence[str]],
        verification: Optional["Verification"],
    ) -> RunLogEntry:
        if measurement is None:
            raise ValueError("No measurement object provided to append!")

        node = measurement.to_json()
        if results is not None:
            node[RESULTS] = results.model_dump(mode="json")
        if comment:
            node[COMMENT] = comment
        if device_log_lines:
            node[LOGGING] = list(device_log_lines)
        node[DATE_TIME] = datetime.now(timezone.utc).isoformat()
        if verification is not None and verification.failed():
            node[ERRORS] = verification.to_json()

        self._nodes.append(node)
        logger.debug("Appended entry %d", len(self._nodes) - 1)
        return RunLogEntry.from_node(node)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, index: int) -> RunLogEntry:
        if index < 0 or index >= len(self._nodes):
            raise IndexError(f"Run log index {index} out of range")
        return RunLogEntry.from_node(self._nodes[index])

    def __iter__(self) -> Iterator[RunLogEntry]:
        for node in self._nodes:
            yield RunLogEntry.from_node(node)

    def measurements(self) -> List[Measurement]:
        return [entry.measurement for entry in self]

    def results(self) -> List[Results]:
        """Results of all entries that have them."""

        return [entry.results for entry in self if entry.results is not None]

    # ------------------------------------------------------------------
    # Back-filling
    # ------------------------------------------------------------------
    def apply_results(self, index: int, factors: Factors, kit: Optional["Kit"] = None) -> Results:
        """Compute and store the results of one entry."""

        return self[index].apply_results(factors, kit)

    def add_findings(self, index: int, verification: "Verification") -> None:
        """Append the findings of ``verification`` to an entry's errors."""

        if not verification.failed():
            return
        node = self[index]._node
        node.setdefault(ERRORS, []).extend(verification.to_json())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, path: Path) -> Path:
        """Write the whole log to ``path``.

        The document is written to a sibling temporary file first and then
        renamed over the target.
        """

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(self._data, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.replace(path)
        logger.debug("Saved %d entries to %s", len(self), path)
        return path
