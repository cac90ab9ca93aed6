"""Unit tests for planning.task_graph."""

from __future__ import annotations

import random
from datetime import UTC, datetime

import pytest

from teamwork.domain.errors import CycleError
from teamwork.domain.models import Task
from teamwork.planning.task_graph import TaskGraph

_T0 = datetime(2026, 10, 1, 9, 0, 0, tzinfo=UTC)


def _task(task_id: str, *blocked_by: str) -> Task:
    return Task(id=task_id, title=task_id, created_at=_T0, updated_at=_T0, blocked_by=blocked_by)


def test_diamond_graph_layers() -> None:
    graph = TaskGraph(
        edges=(
            ("A", "B"),
            ("A", "C"),
            ("B", "D"),
            ("C", "D"),
        )
    )

    assert graph.layers() == (("A",), ("B", "C"), ("D",))


def test_layers_place_each_node_as_early_as_possible() -> None:
    graph = TaskGraph(nodes=("x", "y"), edges=(("a", "b"), ("b", "c"), ("a", "c")))

    assert graph.layers() == (("a", "x", "y"), ("b",), ("c",))


def test_cycle_detection_returns_cycle() -> None:
    graph = TaskGraph(
        edges=(
            ("A", "B"),
            ("B", "C"),
            ("C", "A"),
            ("C", "D"),
        )
    )

    cycles = graph.detect_cycles()
    assert cycles == (("A", "B", "C", "A"),)

    with pytest.raises(CycleError) as error:
        graph.topological_sort()
    assert error.value.cycles == cycles
    with pytest.raises(CycleError):
        graph.layers()


def test_self_dependency_is_a_cycle() -> None:
    graph = TaskGraph(edges=(("solo", "solo"),))

    assert graph.detect_cycles() == (("solo", "solo"),)


def test_from_tasks_reports_unknown_dependencies() -> None:
    graph = TaskGraph.from_tasks([_task("t1"), _task("t2", "t1", "ghost"), _task("t3", "t2")])

    assert graph.missing_dependencies == {"t2": ("ghost",)}
    assert graph.layers() == (("t1",), ("t2",), ("t3",))


def test_empty_node_ids_are_rejected() -> None:
    graph = TaskGraph()

    with pytest.raises(ValueError):
        graph.add_node("")
    with pytest.raises(ValueError):
        graph.add_edge("a", "")


def test_seeded_random_dag_with_1000_nodes_topological_sort_stress() -> None:
    rng = random.Random(2_026_100_1)
    node_count = 1_000
    node_ids = [f"task-{index:04d}" for index in range(node_count)]

    graph = TaskGraph(nodes=node_ids)
    edges: list[tuple[str, str]] = []

    for child_index in range(1, node_count):
        fan_in = min(4, child_index)
        for parent_index in rng.sample(range(child_index), fan_in):
            if rng.random() < 0.55:
                edge = (node_ids[parent_index], node_ids[child_index])
                graph.add_edge(*edge)
                edges.append(edge)

    order = graph.topological_sort()
    assert len(order) == node_count

    position = {node_id: index for index, node_id in enumerate(order)}
    assert len(position) == node_count
    for parent, child in edges:
        assert position[parent] < position[child]
