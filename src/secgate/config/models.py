from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SeverityName = Literal["info", "low", "medium", "high", "critical"]
ReportFormatName = Literal["none", "sarif", "jsonl", "dockle"]


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)


def _coerce_str_tuple(value: object, label: str) -> object:
    if value is None:
        return ()
    if isinstance(value, list):
        value = tuple(value)
    if isinstance(value, tuple):
        cleaned: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise TypeError(f"{label} entries must be strings")
            stripped = item.strip()
            if not stripped:
                raise ValueError(f"{label} entries must be non-empty")
            cleaned.append(stripped)
        return tuple(cleaned)
    return value


def _coerce_optional_path(value: object, label: str) -> Path | None:
    if value is None or isinstance(value, Path):
        return value
    if isinstance(value, str):
        return Path(value)
    raise TypeError(f"{label} must be a path-like string")


class CommandConfig(StrictModel):
    argv: tuple[str, ...]
    cwd: Path | None = None
    env: dict[str, str] = Field(default_factory=dict)
    inherit_env: bool = True
    report_format: ReportFormatName = "none"
    report_path: Path | None = None
    failure_exit_codes: tuple[int, ...] = (1,)
    capture_stdout_as: str | None = None

    @field_validator("argv", mode="before")
    @classmethod
    def _coerce_argv(cls, value: object) -> object:
        if isinstance(value, list):
            return tuple(value)
        return value

    @field_validator("argv")
    @classmethod
    def _argv_non_empty(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value or not value[0].strip():
            raise ValueError("command.argv must name an executable")
        return value

    @field_validator("cwd", "report_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: object) -> Path | None:
        return _coerce_optional_path(value, "command path")

    @field_validator("failure_exit_codes", mode="before")
    @classmethod
    def _coerce_exit_codes(cls, value: object) -> object:
        if isinstance(value, list):
            return tuple(value)
        return value

    @field_validator("failure_exit_codes")
    @classmethod
    def _no_zero_exit_code(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if 0 in value:
            raise ValueError("exit code 0 cannot be a failure exit code")
        return value


class ActionConfig(StrictModel):
    name: str
    callable: str | None = None
    command: CommandConfig | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)
    retries: int = Field(default=0, ge=0, le=10)
    severity_threshold: SeverityName = "high"
    settings: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("stage name must be non-empty")
        return cleaned

    @model_validator(mode="after")
    def _exactly_one_action(self) -> "ActionConfig":
        if (self.callable is None) == (self.command is None):
            raise ValueError(
                f"stage '{self.name}' must define exactly one of 'callable' or 'command'"
            )
        return self


class StageConfig(ActionConfig):
    needs: tuple[str, ...] = ()
    continue_on_error: bool = False

    @field_validator("needs", mode="before")
    @classmethod
    def _coerce_needs(cls, value: object) -> object:
        return _coerce_str_tuple(value, "needs")


class PublishConfig(ActionConfig):
    name: str = "publish"
    tags: tuple[str, ...] = ()

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: object) -> object:
        return _coerce_str_tuple(value, "tags")


class GateConfig(StrictModel):
    required: tuple[str, ...] | None = None
    continue_on_error: tuple[str, ...] = ()

    @field_validator("required", mode="before")
    @classmethod
    def _coerce_required(cls, value: object) -> object:
        if value is None:
            return None
        return _coerce_str_tuple(value, "gate.required")

    @field_validator("continue_on_error", mode="before")
    @classmethod
    def _coerce_exempt(cls, value: object) -> object:
        return _coerce_str_tuple(value, "gate.continue_on_error")


class RuntimeConfig(StrictModel):
    concurrency_limit: int = Field(default=4, ge=1)
    fail_fast: bool = False
    poll_interval_seconds: float = Field(default=0.05, gt=0)
    run_id: str | None = None


class ReportsConfig(StrictModel):
    directory: Path | None = None
    findings_parquet: Path | None = None

    @field_validator("directory", "findings_parquet", mode="before")
    @classmethod
    def _coerce_path(cls, value: object) -> Path | None:
        return _coerce_optional_path(value, "reports path")


class NotifyConfig(StrictModel):
    log: bool = True
    webhook_url: str | None = None
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("webhook_url")
    @classmethod
    def _validate_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned.startswith(("http://", "https://")):
            raise ValueError("notify.webhook_url must be an http(s) URL")
        return cleaned


class PipelineConfig(StrictModel):
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    stages: tuple[StageConfig, ...]
    gate: GateConfig = Field(default_factory=GateConfig)
    publish: PublishConfig
    reports: ReportsConfig = Field(default_factory=ReportsConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)

    @field_validator("stages", mode="before")
    @classmethod
    def _coerce_stages(cls, value: object) -> object:
        if isinstance(value, list):
            return tuple(value)
        return value

    @field_validator("stages")
    @classmethod
    def _stages_non_empty(cls, value: tuple[StageConfig, ...]) -> tuple[StageConfig, ...]:
        if not value:
            raise ValueError("at least one [[stages]] entry is required")
        return value

    def stage_names(self) -> tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)
