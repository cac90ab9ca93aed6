"""Deterministic adjacency-list dependency graph over task ids."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from heapq import heapify, heappop, heappush

from teamwork.domain.errors import CycleError
from teamwork.domain.models import Task


class TaskGraph:
    """
    Directed graph where an edge ``blocker -> dependent`` means the dependent task waits
    for the blocker to resolve.

    Traversal order is deterministic: ties are always broken by task id.
    """

    __slots__ = ("_nodes", "_children", "_parents", "_missing")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._nodes: set[str] = set()
        self._children: dict[str, set[str]] = {}
        self._parents: dict[str, set[str]] = {}
        self._missing: dict[str, tuple[str, ...]] = {}

        if nodes is not None:
            for node_id in nodes:
                self.add_node(node_id)

        if edges is not None:
            for parent, child in edges:
                self.add_edge(parent, child)

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> TaskGraph:
        """
        Build the graph from ``blocked_by`` lists.

        Dependencies on ids that are not among ``tasks`` are left out of the graph and
        reported through :attr:`missing_dependencies`.
        """
        task_list = list(tasks)
        graph = cls(nodes=(task.id for task in task_list))
        for task in task_list:
            unknown: list[str] = []
            for blocker in task.blocked_by:
                if blocker in graph._nodes:
                    graph.add_edge(blocker, task.id)
                else:
                    unknown.append(blocker)
            if unknown:
                graph._missing[task.id] = tuple(sorted(unknown))
        return graph

    @property
    def missing_dependencies(self) -> dict[str, tuple[str, ...]]:
        """Task id -> dependency ids that name no known task."""
        return dict(sorted(self._missing.items()))

    def add_node(self, node_id: str) -> None:
        """Add a node if it does not already exist."""
        self._validate_node_id(node_id)
        if node_id in self._nodes:
            return

        self._nodes.add(node_id)
        self._children[node_id] = set()
        self._parents[node_id] = set()

    def add_edge(self, parent: str, child: str) -> None:
        """Add a directed edge ``parent -> child``."""
        self._validate_node_id(parent)
        self._validate_node_id(child)

        if parent not in self._nodes:
            self.add_node(parent)
        if child not in self._nodes:
            self.add_node(child)

        if child in self._children[parent]:
            return

        self._children[parent].add(child)
        self._parents[child].add(parent)

    def topological_sort(self) -> tuple[str, ...]:
        """Return a deterministic topological ordering or raise ``CycleError``."""
        indegree: dict[str, int] = {node: len(self._parents[node]) for node in self._nodes}
        ready: list[str] = [node for node, degree in indegree.items() if degree == 0]
        heapify(ready)

        order: list[str] = []
        while ready:
            node = heappop(ready)
            order.append(node)

            for child in sorted(self._children[node]):
                indegree[child] -= 1
                if indegree[child] == 0:
                    heappush(ready, child)

        if len(order) != len(self._nodes):
            raise CycleError(self.detect_cycles())

        return tuple(order)

    def layers(self) -> tuple[tuple[str, ...], ...]:
        """
        Kahn layering: layer ``n + 1`` holds every node whose in-degree drops to zero once
        layers ``1..n`` are removed.

        Each node lands in the earliest layer all of its dependencies allow.
        """
        indegree: dict[str, int] = {node: len(self._parents[node]) for node in self._nodes}
        current = sorted(node for node, degree in indegree.items() if degree == 0)

        layered: list[tuple[str, ...]] = []
        placed = 0
        while current:
            layered.append(tuple(current))
            placed += len(current)
            following: list[str] = []
            for node in current:
                for child in self._children[node]:
                    indegree[child] -= 1
                    if indegree[child] == 0:
                        following.append(child)
            current = sorted(following)

        if placed != len(self._nodes):
            raise CycleError(self.detect_cycles())

        return tuple(layered)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """
        Detect directed cycles.

        Returns cycle paths as closed paths, e.g. ``("A", "B", "C", "A")``.
        """
        state: dict[str, int] = {}
        stack: list[str] = []
        stack_index: dict[str, int] = {}
        cycles: dict[tuple[str, ...], None] = {}

        for start in sorted(self._nodes):
            if state.get(start, 0) != 0:
                continue

            state[start] = 1
            stack.append(start)
            stack_index[start] = len(stack) - 1
            frames: list[tuple[str, Iterator[str]]] = [(start, iter(sorted(self._children[start])))]

            while frames:
                node, child_iter = frames[-1]

                try:
                    child = next(child_iter)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    del stack_index[node]
                    continue

                child_state = state.get(child, 0)
                if child_state == 0:
                    state[child] = 1
                    stack_index[child] = len(stack)
                    stack.append(child)
                    frames.append((child, iter(sorted(self._children[child]))))
                    continue

                if child_state == 1:
                    start_index = stack_index[child]
                    cycle = tuple(stack[start_index:] + [child])
                    cycles[self._canonicalize_cycle(cycle)] = None

        return tuple(sorted(cycles))

    @staticmethod
    def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
        if len(cycle) < 2:
            raise ValueError("Cycle path must contain at least two nodes.")

        core = tuple(cycle[:-1])
        if len(core) == 1:
            return (core[0], core[0])

        best = core
        for offset in range(1, len(core)):
            rotated = core[offset:] + core[:offset]
            if rotated < best:
                best = rotated

        return best + (best[0],)

    @staticmethod
    def _validate_node_id(node_id: str) -> None:
        if not node_id:
            raise ValueError("Node ID must be non-empty.")


__all__ = ["TaskGraph"]
