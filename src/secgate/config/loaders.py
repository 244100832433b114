from __future__ import annotations

from pathlib import Path
from typing import Any

from secgate.config.models import ActionConfig, PipelineConfig, ReportsConfig
from secgate.errors import ConfigValidationError

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigValidationError(f"cannot read config file '{path}': {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigValidationError(f"invalid TOML in '{path}': {exc}") from exc


def load_pipeline_config(path: str | Path) -> PipelineConfig:
    config_path = Path(path).expanduser().resolve()
    raw = _read_toml(config_path)
    raw_stages = raw.get("stages")
    if isinstance(raw_stages, dict):
        raise ConfigValidationError("'stages' must be an array of tables ([[stages]])")
    try:
        config = PipelineConfig.model_validate(raw)
    except Exception as exc:  # pydantic ValidationError
        raise ConfigValidationError(
            f"invalid pipeline config '{config_path}': {exc}"
        ) from exc
    return _resolve_pipeline_paths(config, config_path.parent)


def _absolute(path: Path | None, base_dir: Path) -> Path | None:
    if path is None:
        return None
    path = path.expanduser()
    if path.is_absolute():
        return path
    return (base_dir / path).resolve()


def _resolve_action_paths(action: ActionConfig, base_dir: Path) -> ActionConfig:
    command = action.command
    if command is None:
        return action
    cwd = _absolute(command.cwd, base_dir)
    report_path = command.report_path
    if report_path is not None and cwd is None:
        report_path = _absolute(report_path, base_dir)
    resolved = command.model_copy(update={"cwd": cwd, "report_path": report_path})
    return action.model_copy(update={"command": resolved})


def _resolve_pipeline_paths(config: PipelineConfig, base_dir: Path) -> PipelineConfig:
    stages = tuple(_resolve_action_paths(stage, base_dir) for stage in config.stages)
    publish = _resolve_action_paths(config.publish, base_dir)
    reports = ReportsConfig(
        directory=_absolute(config.reports.directory, base_dir),
        findings_parquet=_absolute(config.reports.findings_parquet, base_dir),
    )
    return config.model_copy(
        update={"stages": stages, "publish": publish, "reports": reports}
    )
