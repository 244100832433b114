from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


def _sorted_dict(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: values[key] for key in sorted(values)}


@dataclass(frozen=True, slots=True)
class FrontierLog:
    frontiers: tuple[tuple[str, ...], ...] = ()

    def record(self, frontier: tuple[str, ...]) -> "FrontierLog":
        return FrontierLog(frontiers=(*self.frontiers, tuple(frontier)))

    def to_list(self) -> list[list[str]]:
        return [list(frontier) for frontier in self.frontiers]


@dataclass(frozen=True, slots=True)
class SettingsSnapshot:
    concurrency_limit: int
    fail_fast: bool
    required_stages: tuple[str, ...]
    continue_on_error: tuple[str, ...] = ()
    stage_timeouts: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "concurrency_limit": int(self.concurrency_limit),
            "fail_fast": self.fail_fast,
            "required_stages": list(self.required_stages),
            "continue_on_error": sorted(self.continue_on_error),
            "stage_timeouts": {k: float(v) for k, v in _sorted_dict(self.stage_timeouts).items()},
        }


@dataclass(frozen=True, slots=True)
class NonFatalSinkError:
    sink: str
    error_type: str
    detail: str

    def to_dict(self) -> dict[str, str]:
        return {
            "sink": self.sink,
            "error_type": self.error_type,
            "detail": self.detail,
        }


@dataclass(frozen=True, slots=True)
class RunDiagnostics:
    settings: SettingsSnapshot
    frontiers: FrontierLog = field(default_factory=FrontierLog)
    non_fatal_errors: tuple[NonFatalSinkError, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "settings": self.settings.to_dict(),
            "frontiers": self.frontiers.to_list(),
        }
        if self.non_fatal_errors:
            payload["non_fatal_errors"] = [item.to_dict() for item in self.non_fatal_errors]
        return payload
