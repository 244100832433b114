from __future__ import annotations

import argparse
import json
import signal
from pathlib import Path
from typing import Any

from secgate.config import load_pipeline_config
from secgate.controller import build_graph
from secgate.errors import ConfigValidationError
from secgate.gate import evaluate_gate
from secgate.graph import DependencyGraph
from secgate.objects import RunState
from secgate.outcomes import Outcome
from secgate.runtime import ReleaseRuntime, build_stage_definitions

_EXIT_OK = 0
_EXIT_GENERIC = 1
_EXIT_FAILED = 4
_EXIT_ABORTED = 5

_RUN_EXIT_CODES = {
    RunState.PUBLISHED: _EXIT_OK,
    RunState.DENIED: _EXIT_GENERIC,
    RunState.FAILED: _EXIT_FAILED,
    RunState.ABORTED: _EXIT_ABORTED,
}


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def handle_run(args: argparse.Namespace) -> int:
    runtime = ReleaseRuntime.from_configs(args.pipeline_config)
    controller = runtime.build_controller(run_id=args.run_id)

    def _on_sigterm(signum: int, _frame: object) -> None:
        controller.abort(f"received signal {signal.Signals(signum).name}")

    previous = signal.signal(signal.SIGTERM, _on_sigterm)
    try:
        run = controller.run()
    except KeyboardInterrupt:
        controller.abort("interrupted")
        run = controller.run_record
        if run is None:
            raise
    finally:
        signal.signal(signal.SIGTERM, previous)
    _print_json(run.to_dict())
    return _RUN_EXIT_CODES.get(run.state, _EXIT_GENERIC)


def handle_config_validate(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.pipeline)
    stages, _ = build_stage_definitions(cfg)
    build_graph(stages)
    _print_json(cfg.model_dump(mode="json"))
    return _EXIT_OK


def handle_graph(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.pipeline)
    graph = DependencyGraph.from_edges(
        ((stage.name, stage.needs) for stage in cfg.stages), deferred=True
    )
    _print_json(
        {
            "pipeline": str(Path(args.pipeline).expanduser().resolve()),
            "stages": {name: list(graph.prerequisites(name)) for name in graph.names},
            "frontiers": [list(frontier) for frontier in graph.frontiers()],
            "topological_order": list(graph.topological_order()),
            "publish": cfg.publish.name,
        }
    )
    return _EXIT_OK


def _load_outcomes(path: str) -> dict[str, Outcome]:
    source = Path(path).expanduser().resolve()
    try:
        raw = json.loads(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigValidationError(f"cannot read outcomes file '{source}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigValidationError(f"invalid JSON in '{source}': {exc}") from exc
    if isinstance(raw, dict) and isinstance(raw.get("stages"), list):
        # output of `secgate run`
        raw = {item["stage"]: item for item in raw["stages"] if isinstance(item, dict)}
    if not isinstance(raw, dict):
        raise ConfigValidationError("outcomes file must contain a JSON object")
    try:
        return {str(stage): Outcome.from_dict(value) for stage, value in raw.items()}
    except (TypeError, ValueError, KeyError) as exc:
        raise ConfigValidationError(f"invalid outcome in '{source}': {exc}") from exc


def handle_gate(args: argparse.Namespace) -> int:
    outcomes = _load_outcomes(args.outcomes)
    required = tuple(args.required) if args.required else tuple(outcomes)
    decision = evaluate_gate(outcomes, required, args.continue_on_error)
    _print_json(
        {
            **decision.to_dict(),
            "required": list(required),
            "continue_on_error": sorted(set(args.continue_on_error)),
        }
    )
    return _EXIT_OK if decision.admitted else _EXIT_GENERIC
