from __future__ import annotations

import json
from pathlib import Path

import polars as pl
import pytest

from secgate.actions import ActionLoadError, ActionValidationError, CommandAction
from secgate.config import PipelineConfig, PublishConfig, StageConfig
from secgate.errors import ConfigValidationError
from secgate.findings import Severity
from secgate.objects import RunState
from secgate.outcomes import OutcomeStatus
from secgate.runtime import ReleaseRuntime, build_stage_definitions
from secgate.sinks import JsonReportSink, LoggingNotifier, ParquetFindingsSink, WebhookNotifier
from tests.actions import fixture_actions

ACTIONS = "tests.actions.fixture_actions"


def test_runtime_from_configs_builds_definitions(pipeline_config_path: Path) -> None:
    runtime = ReleaseRuntime.from_configs(pipeline_config_path)
    assert [stage.name for stage in runtime.stages] == [
        "lint",
        "secret-scan",
        "image-build",
        "image-scan",
    ]
    assert runtime.stages[0].action is fixture_actions.passing
    assert runtime.stages[1].severity_threshold is Severity.CRITICAL
    assert runtime.stages[2].timeout_seconds == 30
    assert runtime.publish.name == "build-and-push"
    assert runtime.publish.tags == ("latest", "run-1")
    settings = runtime.controller_settings()
    assert settings.required_stages == ("lint", "secret-scan", "image-scan")
    assert settings.concurrency_limit == 3
    assert settings.run_id == "run-1"
    assert [type(sink) for sink in runtime.report_sinks()] == [
        JsonReportSink,
        ParquetFindingsSink,
    ]
    assert [type(item) for item in runtime.notifiers()] == [LoggingNotifier]


def test_runtime_run_publishes_and_writes_reports(pipeline_config_path: Path) -> None:
    runtime = ReleaseRuntime.from_configs(pipeline_config_path)
    run = runtime.run()
    assert run.state is RunState.PUBLISHED
    assert run.run_id == "run-1"
    # secret-scan finding is high, below its critical threshold
    assert run.outcomes["secret-scan"].status is OutcomeStatus.SUCCESS
    assert fixture_actions.CALLS[-1] == "build-and-push"

    reports_dir = runtime.pipeline_config.reports.directory
    assert reports_dir is not None
    lint_report = json.loads((reports_dir / "run-1" / "lint.json").read_text(encoding="utf-8"))
    assert lint_report["status"] == "success"
    assert (reports_dir / "run-1" / "build-and-push.json").exists()
    frame = pl.read_parquet(reports_dir / "findings.parquet")
    assert frame["stage"].to_list() == ["secret-scan"]


def test_runtime_run_id_override(pipeline_config_path: Path) -> None:
    run = ReleaseRuntime.from_configs(pipeline_config_path).run(run_id="manual")
    assert run.run_id == "manual"


def test_runtime_denied_pipeline(denied_pipeline_config_path: Path) -> None:
    run = ReleaseRuntime.from_configs(denied_pipeline_config_path).run()
    assert run.state is RunState.DENIED
    assert run.outcomes["image-scan"].status is OutcomeStatus.SKIPPED
    assert "publish" not in fixture_actions.CALLS


def test_runtime_cycle_aborts(cyclic_pipeline_config_path: Path) -> None:
    run = ReleaseRuntime.from_configs(cyclic_pipeline_config_path).run()
    assert run.state is RunState.ABORTED
    assert "dependency cycle detected" in (run.abort_reason or "")


def test_runtime_builds_command_actions_and_webhook(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.toml"
    path.write_text(
        f"""
[[stages]]
name = "trivy"
severity_threshold = "critical"

[stages.command]
argv = ["trivy", "image", "app:latest", "--format", "sarif"]
report_format = "sarif"

[publish]
callable = "{ACTIONS}:publish_image"

[notify]
log = false
webhook_url = "https://chat.example/hook"
webhook_timeout_seconds = 2
""".strip(),
        encoding="utf-8",
    )
    runtime = ReleaseRuntime.from_configs(path)
    action = runtime.stages[0].action
    assert isinstance(action, CommandAction)
    assert action.argv[0] == "trivy"
    assert action.report_format == "sarif"
    notifiers = runtime.notifiers()
    assert len(notifiers) == 1 and isinstance(notifiers[0], WebhookNotifier)
    assert notifiers[0].timeout == 2


def test_runtime_bad_callable_raises_action_errors(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.toml"
    path.write_text(
        f"""
[[stages]]
name = "lint"
callable = "{ACTIONS}:untyped_action"

[publish]
callable = "{ACTIONS}:publish_image"
""".strip(),
        encoding="utf-8",
    )
    with pytest.raises(ActionValidationError):
        ReleaseRuntime.from_configs(path)

    path.write_text(
        f"""
[[stages]]
name = "lint"
callable = "{ACTIONS}:nope"

[publish]
callable = "{ACTIONS}:publish_image"
""".strip(),
        encoding="utf-8",
    )
    with pytest.raises(ActionLoadError):
        ReleaseRuntime.from_configs(path)


def test_runtime_invalid_config_propagates(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.toml"
    path.write_text("[runtime]\nfail_fast = 'yes'\n", encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        ReleaseRuntime.from_configs(path)


def test_stage_without_action_is_config_error() -> None:
    config = PipelineConfig.model_construct(
        stages=(StageConfig.model_construct(name="lint"),),
        publish=PublishConfig.model_construct(callable=f"{ACTIONS}:publish_image"),
    )
    with pytest.raises(ConfigValidationError, match="stage 'lint' must define exactly one"):
        build_stage_definitions(config)
