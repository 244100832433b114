from __future__ import annotations

from pathlib import Path

from secgate.actions import CommandAction
from secgate.runtime import ReleaseRuntime

EXAMPLE = Path(__file__).resolve().parents[1] / "examples" / "security_pipeline.toml"


def test_example_pipeline_builds_runtime() -> None:
    runtime = ReleaseRuntime.from_configs(EXAMPLE)
    names = [stage.name for stage in runtime.stages]
    assert names == ["semgrep", "sonar", "secrets-scan", "image-build", "trivy", "dockle"]
    assert all(isinstance(stage.action, CommandAction) for stage in runtime.stages)
    assert runtime.publish.name == "build-and-push"
    assert runtime.publish.tags == ()
    assert isinstance(runtime.publish.action, CommandAction)
    assert "registry.example.com/secure-microservice:{run_id}" in runtime.publish.action.argv
    assert [stage.name for stage in runtime.stages if stage.continue_on_error] == ["sonar"]

    controller = runtime.build_controller()
    assert controller.settings.required_stages is None
    assert controller.settings.concurrency_limit == 3
