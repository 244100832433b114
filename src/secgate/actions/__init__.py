from __future__ import annotations

from secgate.actions.command import CommandAction
from secgate.actions.errors import (
    ActionError,
    ActionLoadError,
    ActionValidationError,
    CommandExecutionError,
)
from secgate.actions.loader import import_callable, load_action

__all__ = [
    "ActionError",
    "ActionLoadError",
    "ActionValidationError",
    "CommandAction",
    "CommandExecutionError",
    "import_callable",
    "load_action",
]
