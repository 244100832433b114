from __future__ import annotations

from importlib import import_module

from secgate.__about__ import __version__

__all__ = [
    "ActionResult",
    "CheckRunner",
    "CommandAction",
    "ControllerSettings",
    "Decision",
    "DependencyGraph",
    "Finding",
    "GateDecision",
    "GateEvaluator",
    "Outcome",
    "OutcomeStatus",
    "PipelineController",
    "PipelineRun",
    "ReleaseRuntime",
    "RunState",
    "Severity",
    "StageContext",
    "StageDefinition",
    "evaluate_gate",
    "load_action",
    "load_pipeline_config",
    "__version__",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "CommandAction": ("secgate.actions", "CommandAction"),
    "load_action": ("secgate.actions", "load_action"),
    "load_pipeline_config": ("secgate.config", "load_pipeline_config"),
    "ControllerSettings": ("secgate.controller", "ControllerSettings"),
    "PipelineController": ("secgate.controller", "PipelineController"),
    "Finding": ("secgate.findings", "Finding"),
    "Severity": ("secgate.findings", "Severity"),
    "Decision": ("secgate.gate", "Decision"),
    "GateDecision": ("secgate.gate", "GateDecision"),
    "GateEvaluator": ("secgate.gate", "GateEvaluator"),
    "evaluate_gate": ("secgate.gate", "evaluate_gate"),
    "DependencyGraph": ("secgate.graph", "DependencyGraph"),
    "PipelineRun": ("secgate.objects", "PipelineRun"),
    "RunState": ("secgate.objects", "RunState"),
    "Outcome": ("secgate.outcomes", "Outcome"),
    "OutcomeStatus": ("secgate.outcomes", "OutcomeStatus"),
    "CheckRunner": ("secgate.runner", "CheckRunner"),
    "ReleaseRuntime": ("secgate.runtime", "ReleaseRuntime"),
    "ActionResult": ("secgate.stages", "ActionResult"),
    "StageContext": ("secgate.stages", "StageContext"),
    "StageDefinition": ("secgate.stages", "StageDefinition"),
}

_SUBMODULES = {
    "actions",
    "config",
    "findings",
    "gate",
    "graph",
    "sinks",
}


def __getattr__(name: str) -> object:
    if name in _SUBMODULES:
        module = import_module(f"secgate.{name}")
        globals()[name] = module
        return module

    target = _LAZY_IMPORTS.get(name)
    if target is None:
        raise AttributeError(f"module 'secgate' has no attribute '{name}'")
    module_name, attr_name = target
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
