from __future__ import annotations

import os
from pathlib import Path

import pytest
from hypothesis import HealthCheck, settings

from tests.actions import fixture_actions


settings.register_profile(
    "ci_smoke",
    max_examples=30,
    derandomize=True,
    deadline=None,
    suppress_health_check=(HealthCheck.too_slow, HealthCheck.function_scoped_fixture),
)
settings.register_profile(
    "nightly_deep",
    max_examples=300,
    derandomize=True,
    deadline=None,
    suppress_health_check=(HealthCheck.too_slow, HealthCheck.function_scoped_fixture),
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci_smoke"))

ACTIONS = "tests.actions.fixture_actions"


@pytest.fixture(autouse=True)
def _reset_fixture_calls() -> None:
    with fixture_actions.CALLS_LOCK:
        fixture_actions.CALLS.clear()


@pytest.fixture()
def pipeline_config_path(tmp_path: Path) -> Path:
    reports_dir = tmp_path / "reports"
    config = f"""
[runtime]
concurrency_limit = 3
run_id = "run-1"

[[stages]]
name = "lint"
callable = "{ACTIONS}:passing"

[[stages]]
name = "secret-scan"
callable = "{ACTIONS}:with_findings"
severity_threshold = "critical"

[stages.settings]
severity = "high"

[[stages]]
name = "image-build"
callable = "{ACTIONS}:build_image"
timeout_seconds = 30

[[stages]]
name = "image-scan"
callable = "{ACTIONS}:scan_image"
needs = ["image-build"]

[gate]
required = ["lint", "secret-scan", "image-scan"]

[publish]
name = "build-and-push"
callable = "{ACTIONS}:publish_image"
tags = ["latest", "run-1"]

[reports]
directory = "{reports_dir}"
findings_parquet = "{reports_dir / 'findings.parquet'}"

[notify]
log = true
""".strip()
    path = tmp_path / "pipeline.toml"
    path.write_text(config, encoding="utf-8")
    return path


@pytest.fixture()
def denied_pipeline_config_path(tmp_path: Path) -> Path:
    config = f"""
[runtime]
run_id = "run-denied"

[[stages]]
name = "lint"
callable = "{ACTIONS}:failing"

[[stages]]
name = "secret-scan"
callable = "{ACTIONS}:passing"

[[stages]]
name = "image-scan"
callable = "{ACTIONS}:passing"
needs = ["lint"]

[publish]
callable = "{ACTIONS}:publish_image"

[notify]
log = false
""".strip()
    path = tmp_path / "pipeline_denied.toml"
    path.write_text(config, encoding="utf-8")
    return path


@pytest.fixture()
def cyclic_pipeline_config_path(tmp_path: Path) -> Path:
    config = f"""
[[stages]]
name = "a"
callable = "{ACTIONS}:passing"
needs = ["b"]

[[stages]]
name = "b"
callable = "{ACTIONS}:passing"
needs = ["a"]

[publish]
callable = "{ACTIONS}:publish_image"

[notify]
log = false
""".strip()
    path = tmp_path / "pipeline_cycle.toml"
    path.write_text(config, encoding="utf-8")
    return path
