from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from secgate.errors import SecGateError
from secgate.findings import findings_at_or_above
from secgate.outcomes import Outcome, OutcomeStatus
from secgate.stages import ActionResult, StageContext, StageDefinition

LOGGER = logging.getLogger(__name__)


class CheckRunner:
    """Executes one stage action and always reports an ``Outcome``.

    Faults raised by the action, invalid return values and timeouts become
    ``Outcome.error``. Errors are retried up to ``stage.retries`` extra times;
    failures are verdicts and are never retried. A timed-out attempt may still
    be running, so it is not retried either.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock

    def run(self, stage: StageDefinition, context: StageContext) -> Outcome:
        started = self._clock()
        max_attempts = stage.retries + 1
        attempts = 0
        while True:
            attempts += 1
            if context.cancelled:
                outcome = Outcome.error(
                    "cancelled before attempt started",
                    diagnostics={"cancelled": True},
                )
                break
            attempt_context = replace(context, started_at=time.monotonic())
            outcome = self._attempt(stage, attempt_context)
            if (
                outcome.status is not OutcomeStatus.ERROR
                or attempts >= max_attempts
                or context.cancelled
            ):
                break
            LOGGER.warning(
                "stage %s attempt %d/%d errored: %s; retrying",
                stage.name,
                attempts,
                max_attempts,
                outcome.detail,
            )
        elapsed = self._clock() - started
        LOGGER.info(
            "stage %s finished status=%s attempts=%d duration=%.3fs",
            stage.name,
            outcome.status.value,
            attempts,
            elapsed,
        )
        return replace(outcome, attempts=attempts, duration_seconds=elapsed)

    def _attempt(self, stage: StageDefinition, context: StageContext) -> Outcome:
        if stage.timeout_seconds is None:
            return self._invoke(stage, context)

        holder: dict[str, Outcome] = {}
        finished = threading.Event()

        def _target() -> None:
            try:
                holder["outcome"] = self._invoke(stage, context)
            finally:
                finished.set()

        worker = threading.Thread(
            target=_target, name=f"secgate-stage-{stage.name}", daemon=True
        )
        worker.start()
        if not finished.wait(stage.timeout_seconds):
            context.cancel_event.set()
            LOGGER.warning("stage %s timed out after %gs", stage.name, stage.timeout_seconds)
            return Outcome.error(
                f"timed out after {stage.timeout_seconds:g}s",
                diagnostics={"timeout_seconds": stage.timeout_seconds},
            )
        outcome = holder.get("outcome")
        if outcome is None:
            return Outcome.error("stage worker exited without an outcome")
        return outcome

    def _invoke(self, stage: StageDefinition, context: StageContext) -> Outcome:
        # sys.exit() inside an action is a stage fault, not a process exit.
        try:
            result = stage.action(context)
        except (Exception, SystemExit) as exc:
            detail = str(exc) if isinstance(exc, SecGateError) else f"{type(exc).__name__}: {exc}"
            LOGGER.warning("stage %s raised %s", stage.name, detail)
            return Outcome.error(detail, diagnostics={"error_type": type(exc).__name__})
        if not isinstance(result, ActionResult):
            return Outcome.error(
                f"action returned invalid type '{type(result).__name__}', expected ActionResult"
            )
        return judge_result(stage, result)


def judge_result(stage: StageDefinition, result: ActionResult) -> Outcome:
    blocking = findings_at_or_above(result.findings, stage.severity_threshold)
    diagnostics: dict[str, Any] = dict(result.diagnostics)
    diagnostics["severity_threshold"] = stage.severity_threshold.label
    diagnostics["blocking_findings"] = len(blocking)
    if result.failed or blocking:
        detail = result.detail or (
            f"{len(blocking)} finding(s) at or above {stage.severity_threshold.label}"
        )
        return Outcome.failure(
            detail,
            findings=result.findings,
            outputs=result.outputs,
            diagnostics=diagnostics,
        )
    return Outcome.success(
        result.detail,
        findings=result.findings,
        outputs=result.outputs,
        diagnostics=diagnostics,
    )
