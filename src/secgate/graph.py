from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from secgate.errors import CycleError, DuplicateStageError, UnknownDependencyError

LOGGER = logging.getLogger(__name__)


class DependencyGraph:
    """Prerequisite relation between stage names.

    Stages are kept in declaration order, which is also the tie-break order for
    every frontier the graph hands out. In strict mode (the default) a
    prerequisite must be registered before its dependents; with
    ``deferred=True`` forward references are accepted and ``validate()`` must
    be called once before the graph drives a run.
    """

    def __init__(self, *, deferred: bool = False) -> None:
        self._deferred = deferred
        self._prerequisites: dict[str, tuple[str, ...]] = {}
        self._validated = not deferred

    @classmethod
    def from_edges(
        cls, edges: Iterable[tuple[str, Iterable[str]]], *, deferred: bool = False
    ) -> "DependencyGraph":
        graph = cls(deferred=deferred)
        for name, prerequisites in edges:
            graph.add_stage(name, prerequisites)
        if deferred:
            graph.validate()
        return graph

    def add_stage(self, name: str, prerequisites: Iterable[str] = ()) -> None:
        if name in self._prerequisites:
            raise DuplicateStageError(name)
        needs = tuple(dict.fromkeys(prerequisites))
        if name in needs:
            raise CycleError((name, name))
        if not self._deferred:
            for dependency in needs:
                if dependency not in self._prerequisites:
                    raise UnknownDependencyError(stage=name, dependency=dependency)
        else:
            # A forward reference back to ``name`` closes a cycle once ``name`` exists.
            path = self._path_to(needs, name)
            if path is not None:
                raise CycleError((name, *path))
            self._validated = False
        self._prerequisites[name] = needs
        LOGGER.debug("registered stage %s needs=%s", name, list(needs))

    def validate(self) -> None:
        for name, needs in self._prerequisites.items():
            for dependency in needs:
                if dependency not in self._prerequisites:
                    raise UnknownDependencyError(stage=name, dependency=dependency)
        cycle = self._find_cycle()
        if cycle is not None:
            raise CycleError(cycle)
        self._validated = True

    @property
    def validated(self) -> bool:
        return self._validated

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._prerequisites)

    def __contains__(self, name: object) -> bool:
        return name in self._prerequisites

    def __len__(self) -> int:
        return len(self._prerequisites)

    def __iter__(self) -> Iterator[str]:
        return iter(self._prerequisites)

    def prerequisites(self, name: str) -> tuple[str, ...]:
        try:
            return self._prerequisites[name]
        except KeyError as exc:
            raise UnknownDependencyError(stage=name, dependency=name) from exc

    def dependents(self, name: str) -> tuple[str, ...]:
        self.prerequisites(name)
        return tuple(
            candidate for candidate, needs in self._prerequisites.items() if name in needs
        )

    def descendants(self, name: str) -> tuple[str, ...]:
        seen: set[str] = set()
        pending = list(self.dependents(name))
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self.dependents(current))
        return tuple(candidate for candidate in self._prerequisites if candidate in seen)

    def ancestors(self, name: str) -> tuple[str, ...]:
        seen: set[str] = set()
        pending = list(self.prerequisites(name))
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self.prerequisites(current))
        return tuple(candidate for candidate in self._prerequisites if candidate in seen)

    def runnable_stages(self, completed: Iterable[str]) -> tuple[str, ...]:
        done = set(completed)
        return tuple(
            name
            for name, needs in self._prerequisites.items()
            if name not in done and done.issuperset(needs)
        )

    def frontiers(self) -> tuple[tuple[str, ...], ...]:
        """The frontiers a run dispatches when every stage completes."""
        self._require_valid()
        completed: set[str] = set()
        waves: list[tuple[str, ...]] = []
        while len(completed) < len(self._prerequisites):
            frontier = self.runnable_stages(completed)
            waves.append(frontier)
            completed.update(frontier)
        return tuple(waves)

    def topological_order(self) -> tuple[str, ...]:
        return tuple(name for wave in self.frontiers() for name in wave)

    def _require_valid(self) -> None:
        if not self._validated:
            self.validate()

    def _path_to(self, starts: Iterable[str], target: str) -> tuple[str, ...] | None:
        """Walk prerequisite edges from ``starts``; return the path reaching ``target``."""
        stack: list[tuple[str, tuple[str, ...]]] = [(start, (start,)) for start in starts]
        seen: set[str] = set()
        while stack:
            current, path = stack.pop()
            if current == target:
                return path
            if current in seen:
                continue
            seen.add(current)
            for dependency in self._prerequisites.get(current, ()):
                stack.append((dependency, (*path, dependency)))
        return None

    def _find_cycle(self) -> tuple[str, ...] | None:
        visiting: list[str] = []
        state: dict[str, int] = {}

        def visit(name: str) -> tuple[str, ...] | None:
            state[name] = 1
            visiting.append(name)
            for dependency in self._prerequisites.get(name, ()):
                mark = state.get(dependency, 0)
                if mark == 1:
                    start = visiting.index(dependency)
                    return (*visiting[start:], dependency)
                if mark == 0:
                    found = visit(dependency)
                    if found is not None:
                        return found
            visiting.pop()
            state[name] = 2
            return None

        for name in self._prerequisites:
            if state.get(name, 0) == 0:
                found = visit(name)
                if found is not None:
                    return found
        return None
