"""
Dependency graph of resource URNs.

Edges read "key depends on value". The edge relation is kept acyclic at
insertion time: an edge that would close a cycle is rejected and the graph
is left exactly as it was. Nodes and edges keep insertion order, which makes
every traversal (and therefore ``topological_sort``) deterministic.
"""

from __future__ import annotations

import threading
from typing import Iterable

import structlog

from cloudweave.core.errors import DependencyError

logger = structlog.get_logger()


class DependencyGraph:
    """Directed acyclic graph for tracking resource dependencies."""

    def __init__(self) -> None:
        # dicts used as insertion-ordered sets
        self._nodes: dict[str, None] = {}
        self._edges: dict[str, dict[str, None]] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __contains__(self, urn: object) -> bool:
        with self._lock:
            return urn in self._nodes

    @property
    def nodes(self) -> list[str]:
        with self._lock:
            return list(self._nodes)

    @property
    def edges(self) -> dict[str, set[str]]:
        with self._lock:
            return {urn: set(deps) for urn, deps in self._edges.items()}

    def snapshot(self) -> DependencyGraph:
        """Copy of the graph taken under the lock, for diagnostics."""
        copy = DependencyGraph()
        with self._lock:
            copy._nodes = dict(self._nodes)
            copy._edges = {urn: dict(deps) for urn, deps in self._edges.items()}
        return copy

    def add_node(self, urn: str) -> None:
        """Add a node; adding an existing node is a no-op."""
        with self._lock:
            self._add_node(urn)

    def add_edge(self, from_urn: str, to_urn: str) -> None:
        """
        Record that ``from_urn`` depends on ``to_urn``.

        Raises:
            DependencyError: on a self-dependency or when ``to_urn`` can already
                reach ``from_urn``. The graph is unchanged in both cases.
        """
        with self._lock:
            self._check_edge(from_urn, to_urn)
            self._add_node(from_urn)
            self._add_node(to_urn)
            self._edges[from_urn][to_urn] = None

    def add_edges(self, from_urn: str, to_urns: Iterable[str]) -> None:
        """
        Record a node and all of its dependencies as one atomic step.

        Either every edge is accepted or the graph is restored to its prior
        state and the first DependencyError is raised.
        """
        with self._lock:
            new_nodes: list[str] = []
            new_edges: list[tuple[str, str]] = []
            try:
                if from_urn not in self._nodes:
                    new_nodes.append(from_urn)
                    self._add_node(from_urn)
                for to_urn in to_urns:
                    self._check_edge(from_urn, to_urn)
                    if to_urn not in self._nodes:
                        new_nodes.append(to_urn)
                        self._add_node(to_urn)
                    if to_urn not in self._edges[from_urn]:
                        new_edges.append((from_urn, to_urn))
                        self._edges[from_urn][to_urn] = None
            except DependencyError:
                for src, dst in new_edges:
                    del self._edges[src][dst]
                for urn in new_nodes:
                    del self._nodes[urn]
                    del self._edges[urn]
                raise

    def topological_sort(self) -> list[str]:
        """
        Return every node with dependencies before their dependents.

        Raises:
            DependencyError: if a cycle is found. ``add_edge`` makes this
                impossible, so finding one indicates a bug.
        """
        with self._lock:
            nodes = list(self._nodes)
            edges = {urn: list(deps) for urn, deps in self._edges.items()}

        result: list[str] = []
        visited: set[str] = set()
        in_progress: set[str] = set()

        for root in nodes:
            if root in visited:
                continue
            in_progress.add(root)
            stack = [(root, iter(edges.get(root, ())))]
            while stack:
                node, pending = stack[-1]
                for dep in pending:
                    if dep in in_progress:
                        path = [urn for urn, _ in stack]
                        cycle = path[path.index(dep):] + [dep]
                        logger.error("dependency_cycle_detected", cycle=cycle)
                        raise DependencyError("Cycle detected in dependency graph", cycle)
                    if dep not in visited:
                        in_progress.add(dep)
                        stack.append((dep, iter(edges.get(dep, ()))))
                        break
                else:
                    stack.pop()
                    in_progress.discard(node)
                    visited.add(node)
                    result.append(node)

        return result

    def direct_dependencies(self, urn: str) -> set[str]:
        """Get the resources ``urn`` depends on directly."""
        with self._lock:
            return set(self._edges.get(urn, ()))

    def all_dependencies(self, urn: str) -> set[str]:
        """Get every resource ``urn`` depends on, transitively."""
        with self._lock:
            result: set[str] = set()
            stack = list(self._edges.get(urn, ()))
            while stack:
                current = stack.pop()
                if current in result:
                    continue
                result.add(current)
                stack.extend(self._edges.get(current, ()))
            return result

    def dependents(self, urn: str) -> set[str]:
        """Get resources that directly depend on ``urn``."""
        with self._lock:
            return {node for node, deps in self._edges.items() if urn in deps}

    def _add_node(self, urn: str) -> None:
        if urn not in self._nodes:
            self._nodes[urn] = None
            self._edges[urn] = {}

    def _check_edge(self, from_urn: str, to_urn: str) -> None:
        if from_urn == to_urn:
            raise DependencyError("Resource cannot depend on itself", [from_urn])
        path = self._find_path(to_urn, from_urn)
        if path is not None:
            cycle = [from_urn] + path
            logger.warning("dependency_cycle_rejected", from_urn=from_urn, to_urn=to_urn)
            raise DependencyError("Adding dependency would create a cycle", cycle)

    def _find_path(self, start: str, target: str) -> list[str] | None:
        """Return the edge path ``start ... target`` if one exists."""
        if start not in self._nodes:
            return None
        parents: dict[str, str | None] = {start: None}
        stack = [start]
        while stack:
            current = stack.pop()
            if current == target:
                path = [current]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])  # type: ignore[arg-type]
                path.reverse()
                return path
            for dep in self._edges.get(current, ()):
                if dep not in parents:
                    parents[dep] = current
                    stack.append(dep)
        return None
