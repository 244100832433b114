from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class SecGateError(Exception):
    """Base exception for config, graph, controller, and action failures."""


class ConfigValidationError(SecGateError):
    """Raised when a pipeline file or controller settings are invalid."""


class GraphError(SecGateError):
    """Base class for dependency graph defects. Always fatal to a run."""


@dataclass(slots=True)
class CycleError(GraphError):
    """Raised when a prerequisite edge would close a cycle."""

    path: tuple[str, ...]

    def __str__(self) -> str:
        return "dependency cycle detected: " + " -> ".join(self.path)


@dataclass(slots=True)
class UnknownDependencyError(GraphError):
    """Raised when a stage references a stage that is not registered."""

    stage: str
    dependency: str

    def __str__(self) -> str:
        return f"stage '{self.stage}' references unknown stage '{self.dependency}'"


@dataclass(slots=True)
class DuplicateStageError(GraphError):
    stage: str

    def __str__(self) -> str:
        return f"stage '{self.stage}' is already registered"


@dataclass(slots=True)
class InvalidTransitionError(SecGateError):
    """Raised when the controller is driven through an illegal state change."""

    current: str
    target: str

    def __str__(self) -> str:
        return f"invalid pipeline transition {self.current} -> {self.target}"


@dataclass(slots=True)
class RuntimeInitializationError(SecGateError):
    """Raised when a runtime cannot be constructed from a pipeline file."""

    pipeline_config_path: Path
    detail: str

    def __str__(self) -> str:
        return (
            f"runtime initialization failed for '{self.pipeline_config_path}': {self.detail}"
        )
