from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from secgate.actions import CommandAction, load_action
from secgate.config import ActionConfig, PipelineConfig, load_pipeline_config
from secgate.controller import ControllerSettings, PipelineController
from secgate.errors import ConfigValidationError, RuntimeInitializationError, SecGateError
from secgate.findings import Severity
from secgate.objects import PipelineRun
from secgate.sinks import (
    JsonReportSink,
    LoggingNotifier,
    Notifier,
    ParquetFindingsSink,
    ReportSink,
    WebhookNotifier,
)
from secgate.stages import StageAction, StageDefinition


def _build_action(config: ActionConfig) -> StageAction:
    if config.callable is not None:
        return load_action(config.name, config.callable)
    command = config.command
    if command is None:
        raise ConfigValidationError(
            f"stage '{config.name}' must define exactly one of 'callable' or 'command'"
        )
    return CommandAction(
        argv=command.argv,
        cwd=command.cwd,
        env=command.env,
        inherit_env=command.inherit_env,
        report_format=command.report_format,
        report_path=command.report_path,
        failure_exit_codes=command.failure_exit_codes,
        capture_stdout_as=command.capture_stdout_as,
    )


def build_stage_definitions(
    config: PipelineConfig,
) -> tuple[tuple[StageDefinition, ...], StageDefinition]:
    stages = tuple(
        StageDefinition(
            name=stage.name,
            action=_build_action(stage),
            needs=stage.needs,
            timeout_seconds=stage.timeout_seconds,
            retries=stage.retries,
            severity_threshold=Severity.parse(stage.severity_threshold),
            continue_on_error=stage.continue_on_error,
            settings=stage.settings,
        )
        for stage in config.stages
    )
    publish = StageDefinition(
        name=config.publish.name,
        action=_build_action(config.publish),
        timeout_seconds=config.publish.timeout_seconds,
        retries=config.publish.retries,
        severity_threshold=Severity.parse(config.publish.severity_threshold),
        settings=config.publish.settings,
        tags=config.publish.tags,
    )
    return stages, publish


@dataclass(frozen=True, slots=True)
class ReleaseRuntime:
    pipeline_config: PipelineConfig
    pipeline_config_path: Path
    stages: tuple[StageDefinition, ...]
    publish: StageDefinition

    @classmethod
    def from_configs(cls, pipeline_config_path: str | Path) -> "ReleaseRuntime":
        pipeline_path = Path(pipeline_config_path).expanduser().resolve()
        try:
            pipeline_config = load_pipeline_config(pipeline_path)
            stages, publish = build_stage_definitions(pipeline_config)
        except SecGateError:
            raise
        except Exception as exc:
            raise RuntimeInitializationError(pipeline_path, str(exc)) from exc
        return cls(
            pipeline_config=pipeline_config,
            pipeline_config_path=pipeline_path,
            stages=stages,
            publish=publish,
        )

    def controller_settings(self, *, run_id: str | None = None) -> ControllerSettings:
        runtime = self.pipeline_config.runtime
        gate = self.pipeline_config.gate
        return ControllerSettings(
            required_stages=gate.required,
            continue_on_error=frozenset(gate.continue_on_error),
            concurrency_limit=runtime.concurrency_limit,
            fail_fast=runtime.fail_fast,
            poll_interval_seconds=runtime.poll_interval_seconds,
            run_id=run_id or runtime.run_id,
        )

    def report_sinks(self) -> tuple[ReportSink, ...]:
        reports = self.pipeline_config.reports
        sinks: list[ReportSink] = []
        if reports.directory is not None:
            sinks.append(JsonReportSink(reports.directory))
        if reports.findings_parquet is not None:
            sinks.append(ParquetFindingsSink(reports.findings_parquet))
        return tuple(sinks)

    def notifiers(self) -> tuple[Notifier, ...]:
        notify = self.pipeline_config.notify
        notifiers: list[Notifier] = []
        if notify.log:
            notifiers.append(LoggingNotifier())
        if notify.webhook_url is not None:
            notifiers.append(
                WebhookNotifier(notify.webhook_url, timeout=notify.webhook_timeout_seconds)
            )
        return tuple(notifiers)

    def build_controller(self, *, run_id: str | None = None) -> PipelineController:
        return PipelineController(
            self.stages,
            self.publish,
            self.controller_settings(run_id=run_id),
            report_sinks=self.report_sinks(),
            notifiers=self.notifiers(),
        )

    def run(self, *, run_id: str | None = None) -> PipelineRun:
        return self.build_controller(run_id=run_id).run()
