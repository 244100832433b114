from __future__ import annotations

from secgate.config.loaders import load_pipeline_config
from secgate.config.models import (
    ActionConfig,
    CommandConfig,
    GateConfig,
    NotifyConfig,
    PipelineConfig,
    PublishConfig,
    ReportsConfig,
    RuntimeConfig,
    StageConfig,
)

__all__ = [
    "ActionConfig",
    "CommandConfig",
    "GateConfig",
    "NotifyConfig",
    "PipelineConfig",
    "PublishConfig",
    "ReportsConfig",
    "RuntimeConfig",
    "StageConfig",
    "load_pipeline_config",
]
