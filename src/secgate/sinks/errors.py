from __future__ import annotations

from dataclasses import dataclass

from secgate.errors import SecGateError


class SinkError(SecGateError):
    """Base report/notification sink error."""


@dataclass(slots=True)
class SinkDeliveryError(SinkError):
    """Raised when a sink cannot deliver a report or notification."""

    sink: str
    detail: str

    def __str__(self) -> str:
        return f"sink '{self.sink}' delivery failed: {self.detail}"
