from __future__ import annotations

from pathlib import Path

from secgate.actions.errors import CommandExecutionError
from secgate.errors import (
    CycleError,
    DuplicateStageError,
    GraphError,
    InvalidTransitionError,
    RuntimeInitializationError,
    SecGateError,
    UnknownDependencyError,
)
from secgate.sinks.errors import SinkDeliveryError


def test_runtime_initialization_error_string() -> None:
    err = RuntimeInitializationError(
        pipeline_config_path=Path("/tmp/pipeline.toml"),
        detail="missing file",
    )
    assert (
        str(err)
        == "runtime initialization failed for '/tmp/pipeline.toml': missing file"
    )


def test_graph_error_family() -> None:
    for err in (
        CycleError(("a", "b", "a")),
        UnknownDependencyError(stage="scan", dependency="build"),
        DuplicateStageError(stage="lint"),
    ):
        assert isinstance(err, GraphError)
        assert isinstance(err, SecGateError)
    assert str(DuplicateStageError("lint")) == "stage 'lint' is already registered"


def test_invalid_transition_string() -> None:
    assert (
        str(InvalidTransitionError("published", "running"))
        == "invalid pipeline transition published -> running"
    )


def test_command_execution_error_string() -> None:
    assert str(CommandExecutionError("trivy", 2, "bad flag")) == (
        "command 'trivy' failed (exit code 2): bad flag"
    )
    assert str(CommandExecutionError("trivy", None, "timed out")) == (
        "command 'trivy' failed: timed out"
    )


def test_sink_delivery_error_is_secgate_error() -> None:
    err = SinkDeliveryError("webhook", "503")
    assert isinstance(err, SecGateError)
    assert "webhook" in str(err)
