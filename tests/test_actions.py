from __future__ import annotations

import json
import sys
import threading
from pathlib import Path

import pytest

from secgate.actions import (
    ActionLoadError,
    ActionValidationError,
    CommandAction,
    CommandExecutionError,
    import_callable,
    load_action,
)
from secgate.findings import Severity
from secgate.outcomes import Outcome
from secgate.stages import StageContext
from tests.actions import fixture_actions

ACTIONS = "tests.actions.fixture_actions"


def _context(**kwargs) -> StageContext:
    return StageContext(stage="scan", run_id="run-1", **kwargs)


def _python(code: str) -> tuple[str, ...]:
    # argv entries are format templates; literal braces are doubled
    return (sys.executable, "-c", code.replace("{", "{{").replace("}", "}}"))


def test_load_action_resolves_annotated_callable() -> None:
    action = load_action("lint", f"{ACTIONS}:passing")
    assert action is fixture_actions.passing


@pytest.mark.parametrize(
    "ref",
    [
        "no_colon",
        ":passing",
        f"{ACTIONS}:",
        "tests.actions.does_not_exist:passing",
        f"{ACTIONS}:missing",
        f"{ACTIONS}:NOT_CALLABLE",
    ],
)
def test_import_callable_errors(ref: str) -> None:
    with pytest.raises(ActionLoadError):
        import_callable(ref)


@pytest.mark.parametrize(
    ("attr", "needle"),
    [
        ("untyped_action", "annotated as StageContext"),
        ("two_args", "exactly one positional arg"),
        ("bad_annotation_action", "invalid type annotations"),
    ],
)
def test_load_action_rejects_bad_signatures(attr: str, needle: str) -> None:
    with pytest.raises(ActionValidationError, match=needle):
        load_action("lint", f"{ACTIONS}:{attr}")


def test_command_success_captures_stdout() -> None:
    action = CommandAction(
        argv=_python("print('sha256:abc')"),
        capture_stdout_as="digest",
    )
    result = action(_context())
    assert not result.failed
    assert dict(result.outputs) == {"digest": "sha256:abc"}
    assert result.diagnostics["returncode"] == 0


def test_command_failure_exit_code_is_verdict() -> None:
    action = CommandAction(argv=_python("import sys; sys.exit(1)"))
    result = action(_context())
    assert result.failed
    assert result.detail == "exit code 1"


def test_command_unexpected_exit_code_raises() -> None:
    action = CommandAction(
        argv=_python("import sys; sys.stderr.write('bad flag'); sys.exit(2)")
    )
    with pytest.raises(CommandExecutionError) as excinfo:
        action(_context())
    assert excinfo.value.returncode == 2
    assert "bad flag" in str(excinfo.value)


def test_command_missing_executable_raises() -> None:
    action = CommandAction(argv=("secgate-definitely-missing-binary",))
    with pytest.raises(CommandExecutionError, match="cannot start"):
        action(_context())


def test_command_parses_jsonl_findings_from_stdout() -> None:
    line = json.dumps({"DetectorName": "AWS", "Verified": True})
    action = CommandAction(
        argv=_python(f"print({line!r})"),
        report_format="jsonl",
    )
    result = action(_context())
    assert [item.severity for item in result.findings] == [Severity.CRITICAL]
    assert result.diagnostics["severity_counts"]["critical"] == 1


def test_command_reads_report_file(tmp_path: Path) -> None:
    report = tmp_path / "dockle.json"
    payload = {"details": [{"code": "CIS-DI-0001", "level": "WARN", "title": "user"}]}
    code = f"import pathlib; pathlib.Path('dockle.json').write_text({json.dumps(payload)!r})"
    action = CommandAction(
        argv=_python(code),
        cwd=tmp_path,
        report_format="dockle",
        report_path=Path("dockle.json"),
    )
    result = action(_context())
    assert [item.rule_id for item in result.findings] == ["CIS-DI-0001"]
    assert result.diagnostics["report_path"] == str(report)


def test_command_missing_report_file_raises(tmp_path: Path) -> None:
    action = CommandAction(
        argv=_python("pass"),
        report_format="sarif",
        report_path=tmp_path / "missing.sarif",
    )
    with pytest.raises(CommandExecutionError, match="cannot read report"):
        action(_context())


def test_command_renders_upstream_placeholders() -> None:
    upstream = {"image-build": Outcome.success(outputs={"image": "app:1"})}
    ctx = StageContext(stage="image-scan", run_id="r9", upstream=upstream, tags=("latest", "r9"))
    action = CommandAction(
        argv=("trivy", "image", "{image-build.image}", "--tag={tags}", "--run={run_id}")
    )
    assert action.render(ctx) == ["trivy", "image", "app:1", "--tag=latest,r9", "--run=r9"]


def test_command_unknown_placeholder_raises() -> None:
    ctx = StageContext(stage="scan", run_id="r9")
    action = CommandAction(argv=("trivy", "image", "{build.image}"))
    with pytest.raises(CommandExecutionError, match="cannot render"):
        action.render(ctx)


def test_command_is_killed_when_cancelled() -> None:
    event = threading.Event()
    timer = threading.Timer(0.2, event.set)
    timer.start()
    action = CommandAction(
        argv=_python("import time; time.sleep(30)"),
        poll_interval_seconds=0.05,
    )
    try:
        with pytest.raises(CommandExecutionError, match="cancelled"):
            action(_context(cancel_event=event))
    finally:
        timer.cancel()


def test_command_times_out() -> None:
    action = CommandAction(
        argv=_python("import time; time.sleep(30)"),
        poll_interval_seconds=0.05,
    )
    with pytest.raises(CommandExecutionError, match="timed out"):
        action(_context(timeout_seconds=0.2))


def test_command_rejects_zero_failure_code() -> None:
    with pytest.raises(ValueError):
        CommandAction(argv=("true",), failure_exit_codes=(0, 1))
