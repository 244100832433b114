from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from secgate.errors import UnknownDependencyError
from secgate.outcomes import Outcome

GATE_STAGE_NAME = "security-gate"


class Decision(str, Enum):
    ADMIT = "admit"
    DENY = "deny"


@dataclass(frozen=True, slots=True)
class GateDecision:
    decision: Decision
    denied_by: tuple[tuple[str, Outcome], ...] = ()

    @property
    def admitted(self) -> bool:
        return self.decision is Decision.ADMIT

    @property
    def denying_stages(self) -> tuple[str, ...]:
        return tuple(stage for stage, _ in self.denied_by)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "denied_by": [
                {
                    "stage": stage,
                    "status": outcome.status.value,
                    "detail": outcome.detail,
                }
                for stage, outcome in self.denied_by
            ],
        }


class GateEvaluator:
    """Aggregates stage outcomes into a single admit/deny decision.

    Deny iff a required stage ended in Failure or Error and is not exempted by
    ``continue_on_error``. The evaluator holds no state; the same inputs always
    produce the same decision.
    """

    def evaluate(
        self,
        outcomes: Mapping[str, Outcome],
        required_stages: Iterable[str],
        continue_on_error: Iterable[str] = (),
    ) -> GateDecision:
        return evaluate_gate(outcomes, required_stages, continue_on_error)


def evaluate_gate(
    outcomes: Mapping[str, Outcome],
    required_stages: Iterable[str],
    continue_on_error: Iterable[str] = (),
) -> GateDecision:
    exempt = frozenset(continue_on_error)
    denied: list[tuple[str, Outcome]] = []
    for stage in dict.fromkeys(required_stages):
        outcome = outcomes.get(stage)
        if outcome is None:
            raise UnknownDependencyError(stage=GATE_STAGE_NAME, dependency=stage)
        if outcome.status.is_blocking and stage not in exempt:
            denied.append((stage, outcome))
    if denied:
        return GateDecision(decision=Decision.DENY, denied_by=tuple(denied))
    return GateDecision(decision=Decision.ADMIT)
