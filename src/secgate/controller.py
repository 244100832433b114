from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from secgate.diagnostics import NonFatalSinkError, RunDiagnostics, SettingsSnapshot
from secgate.errors import (
    ConfigValidationError,
    DuplicateStageError,
    GraphError,
    InvalidTransitionError,
    UnknownDependencyError,
)
from secgate.gate import GATE_STAGE_NAME, GateEvaluator
from secgate.graph import DependencyGraph
from secgate.objects import PipelineRun, RunState, utc_now
from secgate.outcomes import Outcome, OutcomeStatus
from secgate.runner import CheckRunner
from secgate.sinks.dispatch import ReportDispatcher, sink_name
from secgate.sinks.notify import Notifier
from secgate.sinks.reports import ReportSink
from secgate.stages import StageContext, StageDefinition

LOGGER = logging.getLogger(__name__)

_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.PENDING: frozenset({RunState.RUNNING, RunState.ABORTED}),
    RunState.RUNNING: frozenset({RunState.GATED, RunState.ABORTED}),
    RunState.GATED: frozenset({RunState.PUBLISHED, RunState.DENIED, RunState.FAILED}),
}


def _frozen_timeouts() -> Mapping[str, float]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class ControllerSettings:
    """Explicit run configuration handed to the controller at construction.

    ``required_stages=None`` means every check stage is required by the gate.
    """

    required_stages: tuple[str, ...] | None = None
    continue_on_error: frozenset[str] = frozenset()
    stage_timeouts: Mapping[str, float] = field(default_factory=_frozen_timeouts)
    concurrency_limit: int = 4
    fail_fast: bool = False
    poll_interval_seconds: float = 0.05
    run_id: str | None = None

    def __post_init__(self) -> None:
        if self.concurrency_limit < 1:
            raise ConfigValidationError("concurrency_limit must be >= 1")
        if self.poll_interval_seconds <= 0:
            raise ConfigValidationError("poll_interval_seconds must be > 0")
        for stage, timeout in self.stage_timeouts.items():
            if timeout <= 0:
                raise ConfigValidationError(f"timeout for stage '{stage}' must be > 0")
        if self.required_stages is not None:
            object.__setattr__(self, "required_stages", tuple(dict.fromkeys(self.required_stages)))
        object.__setattr__(self, "continue_on_error", frozenset(self.continue_on_error))
        object.__setattr__(
            self,
            "stage_timeouts",
            MappingProxyType({str(k): float(v) for k, v in dict(self.stage_timeouts).items()}),
        )


def build_graph(stages: Iterable[StageDefinition]) -> DependencyGraph:
    graph = DependencyGraph(deferred=True)
    for stage in stages:
        graph.add_stage(stage.name, stage.needs)
    graph.validate()
    return graph


def with_prerequisites(graph: DependencyGraph, required: Iterable[str]) -> tuple[str, ...]:
    """Required stages plus their transitive prerequisites, declared order first."""
    declared = tuple(dict.fromkeys(required))
    implied = {ancestor for name in declared for ancestor in graph.ancestors(name)}
    return declared + tuple(
        name for name in graph.names if name in implied and name not in declared
    )


class PipelineController:
    """Drives check stages through the dependency graph, gates, then publishes.

    One controller executes one run. The controller is the only writer of the
    ``PipelineRun``; ``abort()`` may be called from any thread.
    """

    def __init__(
        self,
        stages: Iterable[StageDefinition],
        publish: StageDefinition,
        settings: ControllerSettings | None = None,
        *,
        runner: CheckRunner | None = None,
        evaluator: GateEvaluator | None = None,
        report_sinks: Iterable[ReportSink] = (),
        notifiers: Iterable[Notifier] = (),
    ) -> None:
        self._stages = tuple(stages)
        self._publish = publish
        self.settings = settings or ControllerSettings()
        self._runner = runner or CheckRunner()
        self._evaluator = evaluator or GateEvaluator()
        self._report_sinks = tuple(report_sinks)
        self._notifiers = tuple(notifiers)
        self._run: PipelineRun | None = None
        self._guard = threading.Lock()
        self._abort_requested = threading.Event()
        self._abort_reason: str | None = None
        self._inflight: dict[str, StageContext] = {}

    @property
    def stages(self) -> tuple[StageDefinition, ...]:
        return self._stages

    @property
    def publish_stage(self) -> StageDefinition:
        return self._publish

    @property
    def run_record(self) -> PipelineRun | None:
        return self._run

    @property
    def state(self) -> RunState:
        return self._run.state if self._run is not None else RunState.PENDING

    def run(self) -> PipelineRun:
        with self._guard:
            if self._run is not None:
                raise InvalidTransitionError(self._run.state.value, RunState.RUNNING.value)
            run = PipelineRun(
                run_id=self.settings.run_id or uuid.uuid4().hex[:12],
                diagnostics=RunDiagnostics(settings=self._snapshot()),
                publish_stage=self._publish.name,
            )
            run.started_at = utc_now()
            self._run = run

        dispatcher = ReportDispatcher(self._report_sinks, on_error=run.record_sink_error)
        try:
            if self._abort_requested.is_set():
                self._transition(run, RunState.ABORTED, reason=self._abort_reason)
                return run
            try:
                graph, required = self._prepare()
            except GraphError as exc:
                LOGGER.error("pipeline %s configuration defect: %s", run.run_id, exc)
                self._transition(run, RunState.ABORTED, reason=str(exc))
                return run
            if not self._transition(run, RunState.RUNNING):
                return run
            LOGGER.info(
                "pipeline %s running %d check stage(s), publish stage '%s'",
                run.run_id,
                len(graph),
                self._publish.name,
            )
            self._execute(run, graph, required, dispatcher)
            if not run.is_terminal:
                self._gate_and_publish(run, required, dispatcher)
            return run
        finally:
            dispatcher.close()
            self._notify(run)

    def abort(self, reason: str = "abort requested") -> bool:
        """Request an abort. Returns True if the run moved to Aborted."""
        self._abort_reason = reason
        self._abort_requested.set()
        run = self._run
        if run is None:
            return False
        with run.lock:
            moved = self._transition(run, RunState.ABORTED, reason=reason)
            for name, context in list(self._inflight.items()):
                LOGGER.info("requesting cancellation of stage %s", name)
                context.cancel_event.set()
        return moved

    def _snapshot(self) -> SettingsSnapshot:
        timeouts = {
            stage.name: float(stage.timeout_seconds)
            for stage in (*self._stages, self._publish)
            if stage.timeout_seconds is not None
        }
        timeouts.update(self.settings.stage_timeouts)
        required = self.settings.required_stages
        return SettingsSnapshot(
            concurrency_limit=self.settings.concurrency_limit,
            fail_fast=self.settings.fail_fast,
            required_stages=required
            if required is not None
            else tuple(stage.name for stage in self._stages),
            continue_on_error=tuple(sorted(self._continue_on_error())),
            stage_timeouts=timeouts,
        )

    def _continue_on_error(self) -> frozenset[str]:
        flagged = {stage.name for stage in self._stages if stage.continue_on_error}
        return frozenset(flagged | set(self.settings.continue_on_error))

    def _prepare(self) -> tuple[DependencyGraph, tuple[str, ...]]:
        graph = build_graph(self._stages)
        if self._publish.name in graph:
            raise DuplicateStageError(self._publish.name)
        required = self.settings.required_stages
        if required is None:
            required = graph.names
        for name in required:
            if name not in graph:
                raise UnknownDependencyError(stage=GATE_STAGE_NAME, dependency=name)
        for name in self.settings.continue_on_error:
            if name not in graph:
                raise UnknownDependencyError(stage=GATE_STAGE_NAME, dependency=name)
        for name in self.settings.stage_timeouts:
            if name not in graph and name != self._publish.name:
                raise UnknownDependencyError(stage=GATE_STAGE_NAME, dependency=name)
        return graph, with_prerequisites(graph, required)

    def _transition(
        self, run: PipelineRun, target: RunState, *, reason: str | None = None
    ) -> bool:
        with run.lock:
            if run.is_terminal:
                LOGGER.debug(
                    "pipeline %s already %s, ignoring %s", run.run_id, run.state.value, target.value
                )
                return False
            if target not in _TRANSITIONS.get(run.state, frozenset()):
                if target is RunState.ABORTED:
                    LOGGER.warning(
                        "pipeline %s cannot abort while %s", run.run_id, run.state.value
                    )
                    return False
                raise InvalidTransitionError(run.state.value, target.value)
            LOGGER.info("pipeline %s %s -> %s", run.run_id, run.state.value, target.value)
            run.state = target
            if reason is not None:
                run.abort_reason = reason
            if target.is_terminal:
                run.finished_at = utc_now()
            return True

    def _stage(self, name: str) -> StageDefinition:
        for stage in self._stages:
            if stage.name == name:
                return self._with_timeout(stage)
        raise UnknownDependencyError(stage=name, dependency=name)

    def _with_timeout(self, stage: StageDefinition) -> StageDefinition:
        override = self.settings.stage_timeouts.get(stage.name)
        if override is None:
            return stage
        return replace(stage, timeout_seconds=override)

    def _blocks_downstream(self, name: str, outcome: Outcome) -> bool:
        if outcome.status is OutcomeStatus.SKIPPED:
            return True
        return outcome.status.is_blocking and name not in self._continue_on_error()

    def _denies_gate(self, name: str, outcome: Outcome, required: tuple[str, ...]) -> bool:
        return (
            name in required
            and outcome.status.is_blocking
            and name not in self._continue_on_error()
        )

    def _execute(
        self,
        run: PipelineRun,
        graph: DependencyGraph,
        required: tuple[str, ...],
        dispatcher: ReportDispatcher,
    ) -> None:
        completed: dict[str, Outcome] = {}
        halted_by: str | None = None
        pool = ThreadPoolExecutor(
            max_workers=self.settings.concurrency_limit, thread_name_prefix="secgate-check"
        )
        try:
            while not run.is_terminal:
                frontier = graph.runnable_stages(completed)
                if not frontier:
                    return
                index = run.record_frontier(frontier)
                skipped: dict[str, Outcome] = {}
                futures: dict[str, Future[Outcome]] = {}
                for name in frontier:
                    if halted_by is not None:
                        skipped[name] = Outcome.skipped(
                            f"fail-fast after '{halted_by}' did not succeed"
                        )
                        continue
                    blockers = [
                        dep
                        for dep in graph.prerequisites(name)
                        if self._blocks_downstream(dep, completed[dep])
                    ]
                    if blockers:
                        skipped[name] = Outcome.skipped(
                            "prerequisites did not succeed: " + ", ".join(blockers),
                            diagnostics={"blocked_by": blockers},
                        )
                        continue
                    stage = self._stage(name)
                    context = StageContext(
                        stage=name,
                        run_id=run.run_id,
                        settings=stage.settings,
                        upstream={dep: completed[dep] for dep in graph.prerequisites(name)},
                        timeout_seconds=stage.timeout_seconds,
                    )
                    with run.lock:
                        if run.is_terminal:
                            self._orphan(run, futures, index)
                            return
                        self._inflight[name] = context
                    futures[name] = pool.submit(self._runner.run, stage, context)
                LOGGER.info(
                    "pipeline %s frontier %d: dispatched=%s skipped=%s",
                    run.run_id,
                    index,
                    list(futures),
                    list(skipped),
                )

                results = self._await_frontier(run, futures, index)
                if results is None:
                    return
                for name in frontier:
                    outcome = skipped[name] if name in skipped else results[name]
                    run.record(name, outcome, index)
                    dispatcher.submit(run.run_id, name, outcome)
                    completed[name] = outcome
                    if (
                        self.settings.fail_fast
                        and halted_by is None
                        and self._denies_gate(name, outcome, required)
                    ):
                        halted_by = name
        finally:
            pool.shutdown(wait=not run.is_terminal, cancel_futures=run.is_terminal)

    def _await_frontier(
        self, run: PipelineRun, futures: Mapping[str, Future[Outcome]], index: int
    ) -> dict[str, Outcome] | None:
        pending = set(futures.values())
        while pending:
            if run.is_terminal:
                self._orphan(run, futures, index)
                return None
            _, pending = wait(
                pending, timeout=self.settings.poll_interval_seconds, return_when=FIRST_COMPLETED
            )
        with run.lock:
            if run.is_terminal:
                self._orphan(run, futures, index)
                return None
            for name in futures:
                self._inflight.pop(name, None)
        return {name: self._collect(name, future) for name, future in futures.items()}

    def _orphan(
        self, run: PipelineRun, futures: Mapping[str, Future[Outcome]], index: int
    ) -> None:
        for name, future in futures.items():
            future.cancel()
            future.add_done_callback(
                lambda done, stage=name: self._record_late(run, stage, done, index)
            )

    def _record_late(
        self, run: PipelineRun, name: str, future: Future[Outcome], index: int
    ) -> None:
        with run.lock:
            self._inflight.pop(name, None)
        if future.cancelled():
            return
        outcome = self._collect(name, future)
        LOGGER.info(
            "pipeline %s late outcome for %s: %s", run.run_id, name, outcome.status.value
        )
        run.record(name, outcome, index)

    def _collect(self, name: str, future: Future[Outcome]) -> Outcome:
        try:
            return future.result()
        except (Exception, SystemExit) as exc:
            LOGGER.error("runner for stage %s raised %s", name, exc)
            return Outcome.error(
                f"runner raised {type(exc).__name__}: {exc}",
                diagnostics={"error_type": type(exc).__name__},
            )

    def _gate_and_publish(
        self, run: PipelineRun, required: tuple[str, ...], dispatcher: ReportDispatcher
    ) -> None:
        if not self._transition(run, RunState.GATED):
            return
        decision = self._evaluator.evaluate(run.outcomes, required, self._continue_on_error())
        with run.lock:
            run.gate_decision = decision
        if not decision.admitted:
            LOGGER.warning(
                "pipeline %s gate denied by %s", run.run_id, list(decision.denying_stages)
            )
            self._transition(run, RunState.DENIED)
            return

        LOGGER.info("pipeline %s gate admitted, publishing via '%s'", run.run_id, self._publish.name)
        publish = self._with_timeout(self._publish)
        context = StageContext(
            stage=publish.name,
            run_id=run.run_id,
            settings=publish.settings,
            upstream=run.outcomes,
            tags=publish.tags,
            timeout_seconds=publish.timeout_seconds,
        )
        try:
            outcome = self._runner.run(publish, context)
        except (Exception, SystemExit) as exc:
            LOGGER.error("runner for publish stage %s raised %s", publish.name, exc)
            outcome = Outcome.error(f"runner raised {type(exc).__name__}: {exc}")
        with run.lock:
            run.publish_outcome = outcome
        dispatcher.submit(run.run_id, publish.name, outcome)
        if outcome.status is OutcomeStatus.SUCCESS:
            self._transition(run, RunState.PUBLISHED)
        else:
            self._transition(run, RunState.FAILED)

    def _notify(self, run: PipelineRun) -> None:
        for notifier in self._notifiers:
            try:
                notifier.notify(run)
            except Exception as exc:
                name = sink_name(notifier)
                LOGGER.warning("notifier %s failed: %s", name, exc)
                run.record_sink_error(
                    NonFatalSinkError(sink=name, error_type=type(exc).__name__, detail=str(exc))
                )
