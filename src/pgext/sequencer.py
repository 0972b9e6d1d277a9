# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Dependency ordering for build plans.

Edges run from an entry to each of its dependencies. Ordering uses Kahn's
algorithm with a name-sorted ready queue, so the same catalog always yields the
same plan.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass

from .catalog.models import BuildProfile, CatalogEntry
from .errors import CycleError, UnknownDependencyError

DependencyGraph = Mapping[str, Sequence[str]]


@dataclass(frozen=True, slots=True)
class BuildPlan:
    """Ordered entries whose dependencies always precede them."""

    entries: tuple[CatalogEntry, ...]
    levels: tuple[tuple[str, ...], ...]

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(entry.name for entry in self.entries)

    def get(self, name: str) -> CatalogEntry | None:
        return next((entry for entry in self.entries if entry.name == name), None)

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        """Return the dependencies of ``name`` that are built within this plan."""

        entry = self.get(name)
        if entry is None:
            return ()
        planned = set(self.names)
        return tuple(sorted(dependency for dependency in entry.dependencies if dependency in planned))

    def subset(self, names: Iterable[str]) -> BuildPlan:
        """Return the plan restricted to ``names`` and everything they depend on.

        Args:
            names: Entry names to keep.

        Returns:
            BuildPlan: Smaller plan preserving the original order and levels.

        Raises:
            KeyError: If a name is not part of this plan.
        """

        wanted: set[str] = set()
        stack = list(names)
        while stack:
            name = stack.pop()
            if name in wanted:
                continue
            if self.get(name) is None:
                raise KeyError(name)
            wanted.add(name)
            stack.extend(self.dependencies_of(name))
        levels = tuple(
            kept for kept in (tuple(name for name in level if name in wanted) for level in self.levels) if kept
        )
        return BuildPlan(entries=tuple(entry for entry in self.entries if entry.name in wanted), levels=levels)


def find_unknown_dependencies(
    entries: Iterable[CatalogEntry],
    known_names: Iterable[str],
) -> list[UnknownDependencyError]:
    """Return one error per dependency naming an entry outside ``known_names``.

    Args:
        entries: Entries whose dependencies are checked.
        known_names: Every name defined by the catalog.

    Returns:
        list[UnknownDependencyError]: Errors sorted by entry then missing name.
    """

    known = set(known_names)
    errors = [
        UnknownDependencyError(entry.name, dependency)
        for entry in entries
        for dependency in entry.dependencies
        if dependency not in known
    ]
    return sorted(errors, key=lambda error: (error.entry or "", error.missing))


def build_graph(entries: Iterable[CatalogEntry]) -> dict[str, tuple[str, ...]]:
    """Return the dependency graph restricted to ``entries``."""

    members = {entry.name: entry for entry in entries}
    return {
        name: tuple(sorted(dependency for dependency in entry.dependencies if dependency in members))
        for name, entry in members.items()
    }


def find_cycles(graph: DependencyGraph) -> list[tuple[str, ...]]:
    """Return one cycle for every strongly connected component with a cycle.

    Each cycle is listed in dependency order starting from its smallest name:
    for ``A -> B -> C -> A`` the result is ``("A", "B", "C")``.

    Args:
        graph: Mapping of entry name to the names it depends on.

    Returns:
        list[tuple[str, ...]]: Cycles sorted by their first name.
    """

    cycles = []
    for component in _strongly_connected_components(graph):
        if len(component) > 1:
            cycles.append(_cycle_within(graph, component))
    return sorted(cycles)


def sequence(
    entries: Iterable[CatalogEntry],
    *,
    known_names: Iterable[str] | None = None,
    profile: BuildProfile = BuildProfile.PRODUCTION,
) -> BuildPlan:
    """Order the entries that need a build step.

    Only entries that are active under ``profile``, not builtin and not
    installed from a package repository are planned. Dependencies on entries
    outside that set are satisfied elsewhere and add no edge.

    Args:
        entries: Catalog entries (typically a whole :class:`Catalog`).
        known_names: Every name in the full catalog; defaults to ``entries``.
        profile: Enablement profile selecting active entries.

    Returns:
        BuildPlan: Deterministic plan with topological levels.

    Raises:
        UnknownDependencyError: If a planned entry depends on an unknown name.
        CycleError: If the planned entries contain a dependency cycle.
    """

    all_entries = list(entries)
    names = set(known_names) if known_names is not None else {entry.name for entry in all_entries}
    candidates = {entry.name: entry for entry in all_entries if entry.is_build_candidate(profile)}

    unknown = find_unknown_dependencies(candidates.values(), names)
    if unknown:
        raise unknown[0]

    graph = build_graph(candidates.values())
    remaining = {name: len(dependencies) for name, dependencies in graph.items()}
    dependents: dict[str, list[str]] = {name: [] for name in graph}
    for name, dependencies in graph.items():
        for dependency in dependencies:
            dependents[dependency].append(name)

    ready = [name for name, count in remaining.items() if count == 0]
    heapq.heapify(ready)
    order: list[str] = []
    depth: dict[str, int] = {}
    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        depth[name] = max((depth[dependency] + 1 for dependency in graph[name]), default=0)
        for dependent in dependents[name]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) < len(graph):
        blocked = {name: graph[name] for name in graph if name not in depth}
        raise CycleError(find_cycles(blocked)[0])

    level_count = max(depth.values(), default=-1) + 1
    levels = tuple(tuple(sorted(name for name in order if depth[name] == level)) for level in range(level_count))
    return BuildPlan(entries=tuple(candidates[name] for name in order), levels=levels)


def _strongly_connected_components(graph: DependencyGraph) -> list[list[str]]:
    """Return the strongly connected components of ``graph`` (Tarjan)."""

    index_of: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    for root in sorted(graph):
        if root in index_of:
            continue
        work: list[tuple[str, Iterator[str]]] = [(root, iter(graph.get(root, ())))]
        index_of[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        while work:
            node, successors = work[-1]
            advanced = False
            for successor in successors:
                if successor not in graph:
                    continue
                if successor not in index_of:
                    index_of[successor] = lowlink[successor] = counter
                    counter += 1
                    stack.append(successor)
                    on_stack.add(successor)
                    work.append((successor, iter(graph.get(successor, ()))))
                    advanced = True
                    break
                if successor in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[successor])
            if advanced:
                continue
            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            if lowlink[node] == index_of[node]:
                component: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(sorted(component))
    return components


def _cycle_within(graph: DependencyGraph, component: Sequence[str]) -> tuple[str, ...]:
    """Return a cycle through the smallest node of ``component``."""

    members = set(component)
    start = min(component)
    path = [start]
    visited = {start}

    def walk(node: str) -> bool:
        for successor in graph.get(node, ()):
            if successor not in members:
                continue
            if successor == start:
                return True
            if successor in visited:
                continue
            visited.add(successor)
            path.append(successor)
            if walk(successor):
                return True
            path.pop()
        return False

    walk(start)
    return tuple(path)


__all__ = [
    "BuildPlan",
    "DependencyGraph",
    "build_graph",
    "find_cycles",
    "find_unknown_dependencies",
    "sequence",
]
