from __future__ import annotations

import importlib
import inspect
from collections.abc import Callable
from typing import Any, get_origin, get_type_hints

from secgate.actions.errors import ActionLoadError, ActionValidationError
from secgate.stages import ActionResult, StageAction, StageContext


def import_callable(callable_ref: str) -> Callable[..., Any]:
    if ":" not in callable_ref:
        raise ActionLoadError(
            f"invalid callable ref '{callable_ref}'. expected 'module:function'"
        )
    module_name, attr = callable_ref.split(":", 1)
    if not module_name or not attr:
        raise ActionLoadError(
            f"invalid callable ref '{callable_ref}'. expected 'module:function'"
        )
    try:
        module = importlib.import_module(module_name)
    except Exception as exc:
        raise ActionLoadError(f"failed importing module '{module_name}': {exc}") from exc
    try:
        loaded = getattr(module, attr)
    except AttributeError as exc:
        raise ActionLoadError(
            f"callable '{attr}' not found in module '{module_name}'"
        ) from exc
    if not callable(loaded):
        raise ActionLoadError(f"reference '{callable_ref}' does not resolve to callable")
    return loaded


def _annotation_matches(annotation: Any, expected: Any) -> bool:
    if annotation is inspect.Signature.empty:
        return False
    if annotation is expected:
        return True
    return get_origin(annotation) is expected


def validate_action_signature(name: str, func: Callable[..., Any]) -> None:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError) as exc:
        raise ActionValidationError(f"action for stage '{name}' has no signature: {exc}") from exc
    try:
        hints = get_type_hints(func)
    except Exception as exc:
        raise ActionValidationError(
            f"action for stage '{name}' has invalid type annotations: {exc}"
        ) from exc

    params = list(sig.parameters.values())
    positional_kinds = {
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
    }
    if len(params) != 1 or params[0].kind not in positional_kinds:
        raise ActionValidationError(
            f"action for stage '{name}' must accept exactly one positional arg (context)"
        )
    first = params[0]
    if not _annotation_matches(hints.get(first.name, first.annotation), StageContext):
        raise ActionValidationError(
            f"action for stage '{name}' arg must be annotated as StageContext"
        )
    if not _annotation_matches(hints.get("return", sig.return_annotation), ActionResult):
        raise ActionValidationError(
            f"action for stage '{name}' return annotation must be ActionResult"
        )


def load_action(name: str, callable_ref: str) -> StageAction:
    func = import_callable(callable_ref)
    validate_action_signature(name, func)
    return func
