from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Protocol

import polars as pl

from secgate.outcomes import Outcome

FINDINGS_SCHEMA: dict[str, Any] = {
    "run_id": pl.String,
    "stage": pl.String,
    "status": pl.String,
    "rule_id": pl.String,
    "severity": pl.String,
    "message": pl.String,
    "location": pl.String,
    "tool": pl.String,
}


class ReportSink(Protocol):
    def publish(self, run_id: str, stage: str, outcome: Outcome) -> None: ...

    def close(self) -> None: ...


def _safe_filename(stage: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in stage) or "stage"


class JsonReportSink:
    """Writes one JSON report per stage under ``<directory>/<run_id>/``."""

    name = "json-reports"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def publish(self, run_id: str, stage: str, outcome: Outcome) -> None:
        target_dir = self.directory / _safe_filename(run_id)
        target_dir.mkdir(parents=True, exist_ok=True)
        payload = {"run_id": run_id, "stage": stage, **outcome.to_dict()}
        path = target_dir / f"{_safe_filename(stage)}.json"
        path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

    def close(self) -> None:
        return None


class ParquetFindingsSink:
    """Collects every finding of a run and writes them as one Parquet table on close."""

    name = "findings-parquet"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._rows: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def publish(self, run_id: str, stage: str, outcome: Outcome) -> None:
        rows = [
            {
                "run_id": run_id,
                "stage": stage,
                "status": outcome.status.value,
                "rule_id": finding.rule_id,
                "severity": finding.severity.label,
                "message": finding.message,
                "location": finding.location,
                "tool": finding.tool,
            }
            for finding in outcome.findings
        ]
        with self._lock:
            self._rows.extend(rows)

    def to_frame(self) -> pl.DataFrame:
        with self._lock:
            rows = list(self._rows)
        if not rows:
            return pl.DataFrame(schema=FINDINGS_SCHEMA)
        return pl.DataFrame(rows, schema=FINDINGS_SCHEMA)

    def close(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().write_parquet(self.path)
