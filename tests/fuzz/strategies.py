from __future__ import annotations

from hypothesis import strategies as st

from secgate.outcomes import Outcome, OutcomeStatus

STAGE_NAMES = st.text(
    alphabet="abcdefghijklmnopqrstuvwxyz0123456789-_", min_size=1, max_size=12
).filter(lambda value: value.strip("-_") != "")

OUTCOME_STATUSES = st.sampled_from(list(OutcomeStatus))


@st.composite
def acyclic_graphs(draw, max_stages: int = 8) -> list[tuple[str, tuple[str, ...]]]:
    names = draw(st.lists(STAGE_NAMES, min_size=1, max_size=max_stages, unique=True))
    edges: list[tuple[str, tuple[str, ...]]] = []
    for index, name in enumerate(names):
        earlier = names[:index]
        needs = draw(st.lists(st.sampled_from(earlier), unique=True)) if earlier else []
        edges.append((name, tuple(needs)))
    order = draw(st.permutations(range(len(edges))))
    return [edges[i] for i in order]


@st.composite
def cyclic_graphs(draw, max_stages: int = 8) -> list[tuple[str, tuple[str, ...]]]:
    names = draw(st.lists(STAGE_NAMES, min_size=2, max_size=max_stages, unique=True))
    length = draw(st.integers(min_value=2, max_value=len(names)))
    ring = names[:length]
    edges = {name: [] for name in names}
    for index, name in enumerate(ring):
        edges[name].append(ring[index - 1])
    return [(name, tuple(needs)) for name, needs in edges.items()]


@st.composite
def outcome_maps(draw, max_stages: int = 6) -> dict[str, Outcome]:
    names = draw(st.lists(STAGE_NAMES, min_size=1, max_size=max_stages, unique=True))
    return {name: Outcome(draw(OUTCOME_STATUSES)) for name in names}
