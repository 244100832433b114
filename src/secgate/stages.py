from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from secgate.findings import Finding, Severity
from secgate.outcomes import Outcome, freeze_value


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class ActionResult:
    """What a stage action reports back to the runner.

    ``failed`` lets an action declare a disqualifying verdict directly; otherwise
    the runner derives one from ``findings`` and the stage's severity threshold.
    """

    findings: tuple[Finding, ...] = ()
    outputs: Mapping[str, str] = field(default_factory=_empty_mapping)
    diagnostics: Mapping[str, Any] = field(default_factory=_empty_mapping)
    failed: bool = False
    detail: str = ""


@dataclass(frozen=True, slots=True)
class StageContext:
    stage: str
    run_id: str
    settings: Mapping[str, Any] = field(default_factory=_empty_mapping)
    upstream: Mapping[str, Outcome] = field(default_factory=_empty_mapping)
    tags: tuple[str, ...] = ()
    timeout_seconds: float | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    started_at: float = field(default_factory=time.monotonic)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def remaining_seconds(self) -> float | None:
        if self.timeout_seconds is None:
            return None
        return max(0.0, self.timeout_seconds - (time.monotonic() - self.started_at))

    def upstream_outputs(self) -> dict[str, Mapping[str, str]]:
        return {name: outcome.outputs for name, outcome in self.upstream.items()}


StageAction = Callable[[StageContext], ActionResult]


@dataclass(frozen=True, slots=True)
class StageDefinition:
    name: str
    action: StageAction
    needs: tuple[str, ...] = ()
    timeout_seconds: float | None = None
    retries: int = 0
    severity_threshold: Severity = Severity.HIGH
    continue_on_error: bool = False
    settings: Mapping[str, Any] = field(default_factory=_empty_mapping)
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        name = self.name.strip() if isinstance(self.name, str) else ""
        if not name:
            raise ValueError("stage name must be a non-empty string")
        object.__setattr__(self, "name", name)
        if not callable(self.action):
            raise TypeError(f"stage '{name}' action must be callable")
        needs = tuple(item.strip() for item in self.needs)
        if len(set(needs)) != len(needs):
            raise ValueError(f"stage '{name}' lists a prerequisite more than once")
        object.__setattr__(self, "needs", needs)
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(f"stage '{name}' timeout_seconds must be > 0")
        if self.retries < 0:
            raise ValueError(f"stage '{name}' retries must be >= 0")
        object.__setattr__(self, "severity_threshold", Severity.parse(self.severity_threshold))
        object.__setattr__(self, "settings", freeze_value(dict(self.settings)))
        object.__setattr__(self, "tags", tuple(self.tags))
