"""Tabular export of a run log."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from .repository import RunLog

logger = logging.getLogger(__name__)

COLUMNS = [
    "comment",
    "air dark",
    "air value",
    "air ledPower",
    "sample dark",
    "sample value",
    "sample ledPower",
    "concentration",
    "date_time",
]


def to_dataframe(run_log: RunLog) -> pd.DataFrame:
    """Return one row per log entry."""

    rows: List[Dict[str, Any]] = []
    for entry in run_log:
        air = entry.air.channel470
        sample = entry.sample.channel470
        rows.append(
            {
                "comment": entry.comment or "",
                "air dark": air.dark,
                "air value": air.value,
                "air ledPower": air.led_power,
                "sample dark": sample.dark,
                "sample value": sample.value,
                "sample ledPower": sample.led_power,
                "concentration": entry.results.concentration if entry.results is not None else None,
                "date_time": entry.timestamp.isoformat() if entry.timestamp is not None else None,
            }
        )
    return pd.DataFrame(rows, columns=COLUMNS)


def export_csv(run_log: RunLog, path: Path, delimiter: str = ",") -> Path:
    """Write the run log as CSV and return the written path."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    to_dataframe(run_log).to_csv(path, sep=delimiter, index=False)
    logger.info("Exported %d entries to %s", len(run_log), path)
    return path
