from __future__ import annotations

from dataclasses import dataclass

from secgate.errors import SecGateError


class ActionError(SecGateError):
    """Base stage action error."""


class ActionLoadError(ActionError):
    """Raised when an action reference cannot be imported."""


class ActionValidationError(ActionError):
    """Raised when an action's signature contract is invalid."""


@dataclass(slots=True)
class CommandExecutionError(ActionError):
    """Raised when an external command cannot produce a verdict."""

    command: str
    returncode: int | None
    detail: str

    def __str__(self) -> str:
        status = "" if self.returncode is None else f" (exit code {self.returncode})"
        return f"command '{self.command}' failed{status}: {self.detail}"
