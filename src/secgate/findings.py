from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Literal

ReportFormat = Literal["none", "sarif", "jsonl", "dockle"]


class Severity(IntEnum):
    INFO = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: str | int | "Severity") -> "Severity":
        if isinstance(value, Severity):
            return value
        if isinstance(value, int):
            return cls(value)
        key = str(value).strip().upper()
        alias = _SEVERITY_ALIASES.get(key)
        if alias is not None:
            return alias
        try:
            return cls[key]
        except KeyError as exc:
            raise ValueError(f"unknown severity '{value}'") from exc

    @property
    def label(self) -> str:
        return self.name.lower()


_SEVERITY_ALIASES: dict[str, Severity] = {
    "UNKNOWN": Severity.INFO,
    "NOTE": Severity.LOW,
    "WARNING": Severity.MEDIUM,
    "WARN": Severity.MEDIUM,
    "ERROR": Severity.HIGH,
    "FATAL": Severity.CRITICAL,
}

_SARIF_LEVELS: dict[str, Severity] = {
    "none": Severity.INFO,
    "note": Severity.LOW,
    "warning": Severity.MEDIUM,
    "error": Severity.HIGH,
}

_DOCKLE_LEVELS: dict[str, Severity] = {
    "PASS": Severity.INFO,
    "SKIP": Severity.INFO,
    "IGNORE": Severity.INFO,
    "INFO": Severity.INFO,
    "WARN": Severity.MEDIUM,
    "FATAL": Severity.CRITICAL,
}


@dataclass(frozen=True, slots=True)
class Finding:
    rule_id: str
    severity: Severity
    message: str = ""
    location: str | None = None
    tool: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity.label,
            "message": self.message,
            "location": self.location,
            "tool": self.tool,
        }


def count_by_severity(findings: Iterable[Finding]) -> dict[str, int]:
    counts = {severity.label: 0 for severity in Severity}
    for finding in findings:
        counts[finding.severity.label] += 1
    return counts


def findings_at_or_above(
    findings: Iterable[Finding], threshold: Severity
) -> tuple[Finding, ...]:
    return tuple(finding for finding in findings if finding.severity >= threshold)


def severity_from_score(score: float) -> Severity:
    """Map a CVSS-style ``security-severity`` score onto the severity scale."""
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0.0:
        return Severity.LOW
    return Severity.INFO


def parse_report(text: str, report_format: ReportFormat) -> tuple[Finding, ...]:
    if report_format == "none" or not text.strip():
        return ()
    if report_format == "sarif":
        return parse_sarif(_load_json(text, "sarif"))
    if report_format == "jsonl":
        return parse_json_lines(text)
    if report_format == "dockle":
        return parse_dockle(_load_json(text, "dockle"))
    raise ValueError(f"unsupported report format '{report_format}'")


def _load_json(text: str, report_format: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid {report_format} report: {exc}") from exc


def parse_sarif(payload: Mapping[str, Any]) -> tuple[Finding, ...]:
    findings: list[Finding] = []
    for run in payload.get("runs", []) or []:
        driver = (run.get("tool") or {}).get("driver") or {}
        tool_name = driver.get("name")
        rules = {
            str(rule.get("id")): rule
            for rule in driver.get("rules", []) or []
            if rule.get("id") is not None
        }
        for result in run.get("results", []) or []:
            rule_id = str(result.get("ruleId") or "unknown")
            findings.append(
                Finding(
                    rule_id=rule_id,
                    severity=_sarif_severity(result, rules.get(rule_id, {})),
                    message=str((result.get("message") or {}).get("text", "")),
                    location=_sarif_location(result),
                    tool=tool_name,
                )
            )
    return tuple(findings)


def _sarif_severity(result: Mapping[str, Any], rule: Mapping[str, Any]) -> Severity:
    properties = rule.get("properties") or {}
    score = properties.get("security-severity")
    if score is not None:
        try:
            return severity_from_score(float(score))
        except (TypeError, ValueError):
            pass
    level = result.get("level") or (rule.get("defaultConfiguration") or {}).get("level")
    return _SARIF_LEVELS.get(str(level or "warning").lower(), Severity.MEDIUM)


def _sarif_location(result: Mapping[str, Any]) -> str | None:
    locations = result.get("locations") or []
    if not locations:
        return None
    physical = locations[0].get("physicalLocation") or {}
    uri = (physical.get("artifactLocation") or {}).get("uri")
    line = (physical.get("region") or {}).get("startLine")
    if uri is None:
        return None
    return f"{uri}:{line}" if line is not None else str(uri)


def parse_json_lines(text: str) -> tuple[Finding, ...]:
    """Parse TruffleHog-style JSON-lines output. Verified secrets are critical."""
    findings: list[Finding] = []
    for index, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped:
            continue
        try:
            item = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid jsonl report line {index}: {exc}") from exc
        if not isinstance(item, dict):
            continue
        if "severity" in item:
            severity = Severity.parse(item["severity"])
        elif item.get("Verified") is True:
            severity = Severity.CRITICAL
        else:
            severity = Severity.HIGH
        findings.append(
            Finding(
                rule_id=str(item.get("DetectorName") or item.get("rule_id") or "secret"),
                severity=severity,
                message=str(item.get("message") or item.get("DecoderName") or ""),
                location=_jsonl_location(item),
                tool=str(item["tool"]) if "tool" in item else "trufflehog",
            )
        )
    return tuple(findings)


def _jsonl_location(item: Mapping[str, Any]) -> str | None:
    if item.get("location"):
        return str(item["location"])
    data = (item.get("SourceMetadata") or {}).get("Data") or {}
    for source in data.values():
        if isinstance(source, Mapping) and source.get("file"):
            line = source.get("line")
            return f"{source['file']}:{line}" if line is not None else str(source["file"])
    return None


def parse_dockle(payload: Mapping[str, Any]) -> tuple[Finding, ...]:
    findings: list[Finding] = []
    for item in payload.get("details", []) or []:
        level = str(item.get("level", "INFO")).upper()
        alerts = item.get("alerts") or []
        findings.append(
            Finding(
                rule_id=str(item.get("code", "unknown")),
                severity=_DOCKLE_LEVELS.get(level, Severity.INFO),
                message=str(item.get("title", "")) + (f": {alerts[0]}" if alerts else ""),
                tool="dockle",
            )
        )
    return tuple(findings)
