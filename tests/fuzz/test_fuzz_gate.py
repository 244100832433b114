from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from secgate.gate import Decision, evaluate_gate
from tests.fuzz.invariants import expected_denials
from tests.fuzz.strategies import outcome_maps


@pytest.mark.fuzz
@given(outcomes=outcome_maps(), data=st.data())
def test_fuzz_gate_denies_exactly_blocking_required_stages(outcomes, data) -> None:
    names = list(outcomes)
    required = data.draw(st.lists(st.sampled_from(names), min_size=1))
    exempt = data.draw(st.lists(st.sampled_from(names), unique=True))
    decision = evaluate_gate(outcomes, required, exempt)
    denials = expected_denials(outcomes, required, exempt)
    assert decision.denying_stages == denials
    assert (decision.decision is Decision.DENY) == bool(denials)
    assert evaluate_gate(outcomes, required, exempt) == decision
