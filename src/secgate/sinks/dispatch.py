from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

from secgate.diagnostics import NonFatalSinkError
from secgate.outcomes import Outcome
from secgate.sinks.reports import ReportSink

LOGGER = logging.getLogger(__name__)


def sink_name(sink: object) -> str:
    return str(getattr(sink, "name", type(sink).__name__))


class ReportDispatcher:
    """Forwards outcomes to report sinks on a background worker.

    Delivery is off the gating path: a failing sink is logged and reported
    through ``on_error`` and never affects the run.
    """

    def __init__(
        self,
        sinks: Iterable[ReportSink] = (),
        *,
        on_error: Callable[[NonFatalSinkError], None] | None = None,
    ) -> None:
        self._sinks = tuple(sinks)
        self._on_error = on_error
        self._executor: ThreadPoolExecutor | None = None
        if self._sinks:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="secgate-report"
            )

    @property
    def sinks(self) -> tuple[ReportSink, ...]:
        return self._sinks

    def submit(self, run_id: str, stage: str, outcome: Outcome) -> None:
        if self._executor is None:
            return
        for sink in self._sinks:
            self._executor.submit(self._deliver, sink, run_id, stage, outcome)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        for sink in self._sinks:
            try:
                sink.close()
            except Exception as exc:
                self._fail(sink, exc)

    def _deliver(self, sink: ReportSink, run_id: str, stage: str, outcome: Outcome) -> None:
        try:
            sink.publish(run_id, stage, outcome)
        except Exception as exc:
            self._fail(sink, exc)

    def _fail(self, sink: object, exc: Exception) -> None:
        name = sink_name(sink)
        LOGGER.warning("report sink %s failed: %s", name, exc)
        if self._on_error is not None:
            self._on_error(
                NonFatalSinkError(sink=name, error_type=type(exc).__name__, detail=str(exc))
            )
