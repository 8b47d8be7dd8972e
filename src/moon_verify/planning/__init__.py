"""
moon-verify — planning package

File: src/moon_verify/planning/__init__.py
Last updated: 2026-10-18

Purpose
- Task graph construction: inheritance merge, reference resolution, graph utilities.

Functional requirements
- Must output one node per qualified task and one edge per resolved dependency.

Non-functional requirements
- Must produce identical graphs for identical workspaces.
"""

from __future__ import annotations

from moon_verify.planning.builder import BuildResult, build_task_graph, merge_task_fields
from moon_verify.planning.task_graph import TaskGraph

__all__ = [
    "BuildResult",
    "TaskGraph",
    "build_task_graph",
    "merge_task_fields",
]
