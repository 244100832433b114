from __future__ import annotations

import logging
import sys

from secgate.actions.errors import (
    ActionLoadError,
    ActionValidationError,
    CommandExecutionError,
)
from secgate.cli.handlers import (
    handle_config_validate,
    handle_gate,
    handle_graph,
    handle_run,
)
from secgate.cli.parser import build_parser
from secgate.errors import (
    ConfigValidationError,
    GraphError,
    RuntimeInitializationError,
    SecGateError,
)

_EXIT_GENERIC = 1
_EXIT_CONFIG = 2
_EXIT_ACTION = 3


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        if args.command == "run":
            return handle_run(args)
        if args.command == "config" and args.config_command == "validate":
            return handle_config_validate(args)
        if args.command == "graph":
            return handle_graph(args)
        if args.command == "gate":
            return handle_gate(args)
    except (ConfigValidationError, GraphError, RuntimeInitializationError) as exc:
        print(str(exc), file=sys.stderr)
        return _EXIT_CONFIG
    except (ActionLoadError, ActionValidationError, CommandExecutionError) as exc:
        print(str(exc), file=sys.stderr)
        return _EXIT_ACTION
    except SecGateError as exc:
        print(str(exc), file=sys.stderr)
        return _EXIT_GENERIC

    parser.error("unhandled command")
    return _EXIT_GENERIC


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
