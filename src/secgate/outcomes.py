from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from secgate.findings import Finding, count_by_severity


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"
    SKIPPED = "skipped"

    @property
    def is_blocking(self) -> bool:
        """Failure and Error block downstream stages and the gate."""
        return self in (OutcomeStatus.FAILURE, OutcomeStatus.ERROR)


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


def freeze_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze_value(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(freeze_value(item) for item in value)
    if isinstance(value, set):
        return frozenset(freeze_value(item) for item in value)
    return value


def thaw_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): thaw_value(v) for k, v in value.items()}
    if isinstance(value, (tuple, list)):
        return [thaw_value(item) for item in value]
    if isinstance(value, frozenset):
        return sorted(thaw_value(item) for item in value)
    return value


@dataclass(frozen=True, slots=True)
class Outcome:
    status: OutcomeStatus
    detail: str = ""
    findings: tuple[Finding, ...] = ()
    outputs: Mapping[str, str] = field(default_factory=_empty_mapping)
    diagnostics: Mapping[str, Any] = field(default_factory=_empty_mapping)
    attempts: int = 1
    duration_seconds: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.status, OutcomeStatus):
            object.__setattr__(self, "status", OutcomeStatus(self.status))
        object.__setattr__(self, "findings", tuple(self.findings))
        object.__setattr__(
            self,
            "outputs",
            MappingProxyType({str(k): str(v) for k, v in dict(self.outputs).items()}),
        )
        object.__setattr__(self, "diagnostics", freeze_value(dict(self.diagnostics)))

    @classmethod
    def success(cls, detail: str = "", **kwargs: Any) -> "Outcome":
        return cls(OutcomeStatus.SUCCESS, detail, **kwargs)

    @classmethod
    def failure(cls, detail: str = "", **kwargs: Any) -> "Outcome":
        return cls(OutcomeStatus.FAILURE, detail, **kwargs)

    @classmethod
    def error(cls, detail: str = "", **kwargs: Any) -> "Outcome":
        return cls(OutcomeStatus.ERROR, detail, **kwargs)

    @classmethod
    def skipped(cls, detail: str = "", **kwargs: Any) -> "Outcome":
        return cls(OutcomeStatus.SKIPPED, detail, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": self.status.value,
            "detail": self.detail,
            "attempts": int(self.attempts),
            "duration_seconds": round(float(self.duration_seconds), 6),
            "severity_counts": count_by_severity(self.findings),
        }
        if self.findings:
            payload["findings"] = [item.to_dict() for item in self.findings]
        if self.outputs:
            payload["outputs"] = {key: self.outputs[key] for key in sorted(self.outputs)}
        if self.diagnostics:
            payload["diagnostics"] = thaw_value(self.diagnostics)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | str) -> "Outcome":
        """Rebuild a summary outcome from ``to_dict()`` output or a bare status."""
        if isinstance(payload, str):
            return cls(OutcomeStatus(payload.strip().lower()))
        if "status" not in payload:
            raise ValueError("outcome payload requires a 'status' key")
        return cls(
            OutcomeStatus(str(payload["status"]).strip().lower()),
            str(payload.get("detail", "")),
            outputs=payload.get("outputs", {}),
            diagnostics=payload.get("diagnostics", {}),
            attempts=int(payload.get("attempts", 1)),
            duration_seconds=float(payload.get("duration_seconds", 0.0)),
        )
