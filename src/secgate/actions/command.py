from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType, SimpleNamespace
from typing import Any

from secgate.actions.errors import CommandExecutionError
from secgate.findings import Finding, ReportFormat, count_by_severity, parse_report
from secgate.stages import ActionResult, StageContext

LOGGER = logging.getLogger(__name__)

_STDERR_TAIL = 2000


def _empty_env() -> Mapping[str, str]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class CommandAction:
    """Runs an external analyzer, builder or publisher as a stage action.

    Exit code 0 is a pass, codes listed in ``failure_exit_codes`` are a
    disqualifying verdict, and anything else means the tool could not produce a
    verdict. ``argv`` entries may reference upstream outputs as
    ``{stage.output}`` plus ``{run_id}``, ``{stage}`` and ``{tags}``.
    """

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] = field(default_factory=_empty_env)
    inherit_env: bool = True
    report_format: ReportFormat = "none"
    report_path: Path | None = None
    failure_exit_codes: tuple[int, ...] = (1,)
    capture_stdout_as: str | None = None
    poll_interval_seconds: float = 0.1

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("command argv must not be empty")
        object.__setattr__(self, "argv", tuple(str(item) for item in self.argv))
        object.__setattr__(self, "failure_exit_codes", tuple(self.failure_exit_codes))
        if 0 in self.failure_exit_codes:
            raise ValueError("exit code 0 cannot be a failure exit code")

    def render(self, ctx: StageContext) -> list[str]:
        values: dict[str, Any] = {
            name: SimpleNamespace(**dict(outputs))
            for name, outputs in ctx.upstream_outputs().items()
        }
        values.update(run_id=ctx.run_id, stage=ctx.stage, tags=",".join(ctx.tags))
        try:
            return [item.format_map(values) for item in self.argv]
        except (KeyError, AttributeError, IndexError, ValueError) as exc:
            raise CommandExecutionError(
                self.argv[0], None, f"cannot render argument placeholders: {exc!r}"
            ) from exc

    def _resolve(self, path: Path) -> Path:
        if path.is_absolute() or self.cwd is None:
            return path
        return self.cwd / path

    def __call__(self, ctx: StageContext) -> ActionResult:
        argv = self.render(ctx)
        env = {**os.environ, **self.env} if self.inherit_env else dict(self.env)
        LOGGER.info("stage %s running %s", ctx.stage, argv)
        try:
            proc = subprocess.Popen(
                argv,
                cwd=self.cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            raise CommandExecutionError(argv[0], None, f"cannot start: {exc}") from exc

        with proc:
            while True:
                try:
                    stdout, stderr = proc.communicate(timeout=self.poll_interval_seconds)
                    break
                except subprocess.TimeoutExpired:
                    remaining = ctx.remaining_seconds()
                    if ctx.cancelled or (remaining is not None and remaining <= 0):
                        proc.kill()
                        proc.communicate()
                        reason = "cancelled" if ctx.cancelled else "timed out"
                        raise CommandExecutionError(argv[0], None, reason) from None

        returncode = proc.returncode
        diagnostics: dict[str, Any] = {
            "command": argv,
            "returncode": returncode,
        }
        if stderr:
            diagnostics["stderr_tail"] = stderr[-_STDERR_TAIL:]
        if returncode != 0 and returncode not in self.failure_exit_codes:
            raise CommandExecutionError(
                argv[0], returncode, (stderr or stdout or "no output").strip()[-_STDERR_TAIL:]
            )

        findings = self._parse_findings(argv[0], stdout)
        if self.report_format != "none":
            diagnostics["severity_counts"] = count_by_severity(findings)
        if self.report_path is not None:
            diagnostics["report_path"] = str(self._resolve(self.report_path))

        outputs: dict[str, str] = {}
        if self.capture_stdout_as:
            outputs[self.capture_stdout_as] = stdout.strip()

        failed = returncode in self.failure_exit_codes
        return ActionResult(
            findings=findings,
            outputs=outputs,
            diagnostics=diagnostics,
            failed=failed,
            detail=f"exit code {returncode}" if failed else "",
        )

    def _parse_findings(self, command: str, stdout: str) -> tuple[Finding, ...]:
        if self.report_format == "none":
            return ()
        text = stdout
        if self.report_path is not None:
            path = self._resolve(self.report_path)
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise CommandExecutionError(
                    command, None, f"cannot read report '{path}': {exc}"
                ) from exc
        try:
            return parse_report(text, self.report_format)
        except ValueError as exc:
            raise CommandExecutionError(command, None, str(exc)) from exc
