from __future__ import annotations

import argparse

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="secgate")
    parser.add_argument("--log-level", default="WARNING", choices=_LOG_LEVELS)
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Run the security-gated pipeline from TOML config")
    run_parser.add_argument("--pipeline-config", required=True)
    run_parser.add_argument("--run-id", default=None)

    config_parser = sub.add_parser("config", help="Pipeline config operations")
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)
    config_validate = config_sub.add_parser("validate", help="Validate pipeline config")
    config_validate.add_argument("--pipeline", required=True)

    graph_parser = sub.add_parser(
        "graph",
        help="Print dispatch frontiers and topological order of the check stages",
    )
    graph_parser.add_argument("--pipeline", required=True)

    gate_parser = sub.add_parser(
        "gate",
        help="Evaluate the security gate against recorded stage outcomes",
    )
    gate_parser.add_argument(
        "--outcomes",
        required=True,
        help="JSON file mapping stage name to a status string or outcome object",
    )
    gate_parser.add_argument(
        "--required",
        action="append",
        default=None,
        help="Required stage (repeatable). Defaults to every stage in --outcomes",
    )
    gate_parser.add_argument("--continue-on-error", action="append", default=[])

    return parser
