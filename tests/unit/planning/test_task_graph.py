"""Unit tests for planning.task_graph."""

from __future__ import annotations

import random

import pytest

from moon_verify.planning.task_graph import TaskGraph


def test_cycle_detection_returns_each_cycle_once() -> None:
    graph = TaskGraph(
        edges=(
            ("b:build", "c:build"),
            ("c:build", "a:build"),
            ("a:build", "b:build"),
            ("c:build", "d:build"),
        )
    )

    assert graph.detect_cycles() == (("a:build", "b:build", "c:build", "a:build"),)


def test_self_loop_is_a_two_element_cycle() -> None:
    graph = TaskGraph(edges=(("app:lint", "app:lint"),))

    assert graph.detect_cycles() == (("app:lint", "app:lint"),)


def test_disjoint_cycles_are_sorted() -> None:
    graph = TaskGraph(
        edges=(
            ("z:a", "z:b"),
            ("z:b", "z:a"),
            ("a:x", "a:y"),
            ("a:y", "a:x"),
        )
    )

    assert graph.detect_cycles() == (("a:x", "a:y", "a:x"), ("z:a", "z:b", "z:a"))


def test_nodes_and_edges_are_sorted() -> None:
    graph = TaskGraph(
        nodes=("node-b", "node-a", "node-e"),
        edges=(
            ("node-d", "node-c"),
            ("node-d", "node-b"),
            ("node-c", "node-a"),
            ("node-b", "node-a"),
            ("node-b", "node-a"),
        ),
    )

    assert graph.nodes == ("node-a", "node-b", "node-c", "node-d", "node-e")
    assert graph.edges == (
        ("node-b", "node-a"),
        ("node-c", "node-a"),
        ("node-d", "node-b"),
        ("node-d", "node-c"),
    )
    assert graph.detect_cycles() == ()


@pytest.mark.parametrize("node_id", ["", None])
def test_empty_node_ids_are_rejected(node_id: object) -> None:
    with pytest.raises(ValueError):
        TaskGraph(nodes=(node_id,))  # type: ignore[arg-type]


def test_seeded_random_dag_with_1000_nodes_has_one_cycle_after_a_back_edge() -> None:
    rng = random.Random(2_026_101_8)
    node_count = 1_000
    node_ids = [f"project-{index:04d}:build" for index in range(node_count)]

    graph = TaskGraph(nodes=node_ids)
    for child_index in range(1, node_count):
        graph.add_edge(node_ids[child_index], node_ids[child_index - 1])
        for parent_index in rng.sample(range(child_index), min(3, child_index)):
            if rng.random() < 0.5:
                graph.add_edge(node_ids[child_index], node_ids[parent_index])

    assert graph.detect_cycles() == ()

    graph.add_edge(node_ids[0], node_ids[1])

    assert graph.detect_cycles() == ((node_ids[0], node_ids[1], node_ids[0]),)
