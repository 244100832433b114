from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from secgate.diagnostics import NonFatalSinkError, RunDiagnostics
from secgate.gate import GateDecision
from secgate.outcomes import Outcome


class RunState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    GATED = "gated"
    ABORTED = "aborted"
    PUBLISHED = "published"
    DENIED = "denied"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {RunState.ABORTED, RunState.PUBLISHED, RunState.DENIED, RunState.FAILED}
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class StageRecord:
    stage: str
    outcome: Outcome
    frontier_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "frontier": int(self.frontier_index),
            **self.outcome.to_dict(),
        }


@dataclass(slots=True)
class PipelineRun:
    """Ordered record of one controller execution.

    Only the owning controller writes to a run. Records appear in dispatch
    order, so ``records`` is always a valid topological order of the graph.
    """

    run_id: str
    diagnostics: RunDiagnostics
    publish_stage: str | None = None
    state: RunState = RunState.PENDING
    records: list[StageRecord] = field(default_factory=list)
    gate_decision: GateDecision | None = None
    publish_outcome: Outcome | None = None
    abort_reason: str | None = None
    late_outcomes: list[StageRecord] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def outcomes(self) -> dict[str, Outcome]:
        with self._lock:
            return {record.stage: record.outcome for record in self.records}

    @property
    def completed(self) -> frozenset[str]:
        with self._lock:
            return frozenset(record.stage for record in self.records)

    def outcome_for(self, stage: str) -> Outcome | None:
        return self.outcomes.get(stage)

    def record(self, stage: str, outcome: Outcome, frontier_index: int) -> StageRecord:
        item = StageRecord(stage=stage, outcome=outcome, frontier_index=frontier_index)
        with self._lock:
            if self.is_terminal:
                self.late_outcomes.append(item)
            else:
                self.records.append(item)
        return item

    def record_sink_error(self, error: NonFatalSinkError) -> None:
        with self._lock:
            self.diagnostics = RunDiagnostics(
                settings=self.diagnostics.settings,
                frontiers=self.diagnostics.frontiers,
                non_fatal_errors=(*self.diagnostics.non_fatal_errors, error),
            )

    def record_frontier(self, frontier: tuple[str, ...]) -> int:
        with self._lock:
            self.diagnostics = RunDiagnostics(
                settings=self.diagnostics.settings,
                frontiers=self.diagnostics.frontiers.record(frontier),
                non_fatal_errors=self.diagnostics.non_fatal_errors,
            )
            return len(self.diagnostics.frontiers.frontiers) - 1

    def summary(self) -> str:
        prefix = f"pipeline {self.run_id} {self.state.value}"
        if self.state is RunState.DENIED and self.gate_decision is not None:
            blocking = ", ".join(
                f"{stage} ({outcome.status.value}"
                + (f": {outcome.detail}" if outcome.detail else "")
                + ")"
                for stage, outcome in self.gate_decision.denied_by
            )
            return f"{prefix}: stages blocking release: {blocking}"
        if self.state is RunState.PUBLISHED:
            return f"{prefix}: security gate passed, publish stage '{self.publish_stage}' succeeded"
        if self.state is RunState.FAILED and self.publish_outcome is not None:
            detail = self.publish_outcome.detail or self.publish_outcome.status.value
            return f"{prefix}: publish stage '{self.publish_stage}' did not succeed: {detail}"
        if self.state is RunState.ABORTED:
            return f"{prefix}: {self.abort_reason or 'no reason given'}"
        return prefix

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            payload: dict[str, Any] = {
                "run_id": self.run_id,
                "state": self.state.value,
                "summary": self.summary(),
                "stages": [record.to_dict() for record in self.records],
                "diagnostics": self.diagnostics.to_dict(),
            }
            if self.gate_decision is not None:
                payload["gate"] = self.gate_decision.to_dict()
            if self.publish_outcome is not None:
                payload["publish"] = {
                    "stage": self.publish_stage,
                    **self.publish_outcome.to_dict(),
                }
            if self.abort_reason is not None:
                payload["abort_reason"] = self.abort_reason
            if self.late_outcomes:
                payload["late_outcomes"] = [record.to_dict() for record in self.late_outcomes]
            if self.started_at is not None:
                payload["started_at"] = self.started_at.isoformat()
            if self.finished_at is not None:
                payload["finished_at"] = self.finished_at.isoformat()
            return payload
