"""Deterministic adjacency-list graph over ``project:task`` (or project) node IDs.

Edges point from a node to something it depends on: ``add_edge("app:build",
"lib:build")`` records that ``app:build`` needs ``lib:build`` first.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence


class TaskGraph:
    """Dependency graph whose nodes, edges and cycles always come out sorted."""

    __slots__ = ("_requires",)

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._requires: dict[str, set[str]] = {}
        for node_id in nodes or ():
            self.add_node(node_id)
        for dependent, dependency in edges or ():
            self.add_edge(dependent, dependency)

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(sorted(self._requires))

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """``(dependent, dependency)`` pairs, sorted."""
        return tuple(
            (dependent, dependency)
            for dependent in sorted(self._requires)
            for dependency in sorted(self._requires[dependent])
        )

    def add_node(self, node_id: str) -> None:
        if not isinstance(node_id, str) or not node_id:
            raise ValueError("Node ID must be a non-empty string.")
        self._requires.setdefault(node_id, set())

    def add_edge(self, dependent: str, dependency: str) -> None:
        """Record that ``dependent`` needs ``dependency``; unknown nodes are added."""
        self.add_node(dependent)
        self.add_node(dependency)
        self._requires[dependent].add(dependency)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """
        Find every distinct directed cycle reachable by depth-first search.

        A cycle is a closed path rotated to start at its smallest node, e.g.
        ``("a:build", "b:build", "a:build")``; a self-loop is ``("a:x", "a:x")``.
        """
        done: set[str] = set()
        path: list[str] = []
        on_path: dict[str, int] = {}
        found: set[tuple[str, ...]] = set()

        for start in sorted(self._requires):
            if start in done:
                continue
            on_path[start] = 0
            path.append(start)
            frames: list[Iterator[str]] = [iter(sorted(self._requires[start]))]

            while frames:
                dependency = next(frames[-1], None)
                if dependency is None:
                    frames.pop()
                    finished = path.pop()
                    del on_path[finished]
                    done.add(finished)
                elif dependency in on_path:
                    found.add(_rotate(path[on_path[dependency] :]))
                elif dependency not in done:
                    on_path[dependency] = len(path)
                    path.append(dependency)
                    frames.append(iter(sorted(self._requires[dependency])))

        return tuple(sorted(found))


def _rotate(loop: Sequence[str]) -> tuple[str, ...]:
    pivot = loop.index(min(loop))
    ordered = tuple(loop[pivot:]) + tuple(loop[:pivot])
    return ordered + (ordered[0],)


__all__ = ["TaskGraph"]
