from __future__ import annotations

import sys
import threading
from typing import ForwardRef

from secgate.findings import Finding, Severity
from secgate.stages import ActionResult, StageContext

CALLS: list[str] = []
CALLS_LOCK = threading.Lock()


def _note(ctx: StageContext) -> None:
    with CALLS_LOCK:
        CALLS.append(ctx.stage)


def passing(ctx: StageContext) -> ActionResult:
    _note(ctx)
    return ActionResult(outputs={"stage": ctx.stage})


def failing(ctx: StageContext) -> ActionResult:
    _note(ctx)
    return ActionResult(failed=True, detail=str(ctx.settings.get("detail", "lint errors")))


def raising(ctx: StageContext) -> ActionResult:
    _note(ctx)
    raise RuntimeError("scanner crashed")


def exiting(ctx: StageContext) -> ActionResult:
    _note(ctx)
    sys.exit(2)


def with_findings(ctx: StageContext) -> ActionResult:
    _note(ctx)
    severity = Severity.parse(ctx.settings.get("severity", "high"))
    return ActionResult(
        findings=(
            Finding(
                rule_id="CVE-2024-0001",
                severity=severity,
                message="vulnerable package",
                location="requirements.txt:3",
                tool="trivy",
            ),
        )
    )


def build_image(ctx: StageContext) -> ActionResult:
    _note(ctx)
    return ActionResult(outputs={"image": f"registry.local/app:{ctx.run_id}"})


def scan_image(ctx: StageContext) -> ActionResult:
    _note(ctx)
    image = ctx.upstream_outputs().get("image-build", {}).get("image", "")
    if not image:
        return ActionResult(failed=True, detail="no image to scan")
    return ActionResult(outputs={"scanned": image})


def publish_image(ctx: StageContext) -> ActionResult:
    _note(ctx)
    return ActionResult(outputs={"pushed": ",".join(ctx.tags)})


def failing_publish(ctx: StageContext) -> ActionResult:
    _note(ctx)
    raise RuntimeError("registry unavailable")


def slow(ctx: StageContext) -> ActionResult:
    _note(ctx)
    ctx.cancel_event.wait(float(ctx.settings.get("seconds", 5.0)))
    return ActionResult(detail="slow stage finished")


def wrong_return(ctx: StageContext) -> ActionResult:
    _ = ctx
    return "not a result"  # type: ignore[return-value]


def untyped_action(ctx):
    return ActionResult()


def two_args(ctx: StageContext, extra: int) -> ActionResult:
    _ = (ctx, extra)
    return ActionResult()


_UnknownRef = ForwardRef("UnknownType")


def bad_annotation_action(ctx: _UnknownRef) -> "ActionResult":
    _ = ctx
    return ActionResult()


NOT_CALLABLE = 42
