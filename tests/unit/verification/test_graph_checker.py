"""Unit tests for cycle detection findings and advisory task heuristics."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from moon_verify.domain.models import Severity, TaskDefinition
from moon_verify.planning.builder import build_task_graph
from moon_verify.verification.graph_checker import (
    Heuristics,
    check_graph,
    check_task,
    is_templated,
)
from moon_verify.workspace.loader import load_workspace


def _write(path: Path, contents: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")


def _check(root: Path, files: Mapping[str, str]) -> list:
    for relative, contents in files.items():
        _write(root / relative, contents)
    return check_graph(build_task_graph(load_workspace(root)))


def _codes(task: TaskDefinition, heuristics: Heuristics | None = None) -> list[str]:
    return [finding.code for finding in check_task(task, heuristics or Heuristics())]


def test_task_cycle_is_reported_exactly_once(tmp_path: Path) -> None:
    findings = _check(
        tmp_path,
        {
            ".moon/workspace.yml": "projects: ['apps/*']\n",
            "apps/a/moon.yml": (
                "tasks:\n"
                "  build:\n"
                "    command: tsc\n"
                "    deps: ['b:build']\n"
                "    inputs: ['src/**/*']\n"
                "    outputs: ['dist']\n"
            ),
            "apps/b/moon.yml": (
                "tasks:\n"
                "  build:\n"
                "    command: tsc\n"
                "    deps: ['a:build']\n"
                "    inputs: ['src/**/*']\n"
                "    outputs: ['dist']\n"
            ),
        },
    )

    assert len(findings) == 1
    cycle = findings[0]
    assert cycle.severity is Severity.ERROR
    assert cycle.code == "task.cycle"
    assert cycle.message == "dependency cycle: a:build -> b:build -> a:build"
    assert cycle.source_file == "apps/a/moon.yml"
    assert cycle.line_hint == 4


def test_project_cycles_precede_task_findings(tmp_path: Path) -> None:
    findings = _check(
        tmp_path,
        {
            ".moon/workspace.yml": "projects: ['apps/*']\n",
            "apps/a/moon.yml": "dependsOn: [b]\ntasks:\n  lint:\n    command: eslint\n",
            "apps/b/moon.yml": "dependsOn: [a]\n",
        },
    )

    assert [(f.code, f.message) for f in findings] == [
        ("project.cycle", "dependency cycle: a -> b -> a"),
        ("task.no_inputs", "Task a:lint has no inputs defined (cannot be cached meaningfully)"),
    ]
    assert findings[0].source_file == "apps/a/moon.yml"
    assert findings[0].line_hint == 1
    assert findings[1].line_hint == 3


def test_templates_are_checked_once_and_inherited_copies_skipped(tmp_path: Path) -> None:
    findings = _check(
        tmp_path,
        {
            ".moon/workspace.yml": "projects: ['apps/*']\n",
            ".moon/tasks.yml": "tasks:\n  build:\n    command: tsc\n",
            "apps/one/moon.yml": "tasks: {}\n",
            "apps/two/moon.yml": "tasks: {}\n",
        },
    )

    assert [(f.code, f.source_file, f.line_hint) for f in findings] == [
        ("task.no_inputs", ".moon/tasks.yml", 2),
        ("task.no_outputs", ".moon/tasks.yml", 2),
    ]


def test_build_task_without_inputs_or_outputs_warns_twice() -> None:
    task = TaskDefinition(project="ws", name="build", command="tsc", source_file="ws/moon.yml")

    findings = check_task(task, Heuristics(), line_hint=3)

    assert [f.severity for f in findings] == [Severity.WARNING, Severity.WARNING]
    assert [f.message for f in findings] == [
        "Task ws:build has no inputs defined (cannot be cached meaningfully)",
        "Build task ws:build has no outputs defined",
    ]
    assert {f.line_hint for f in findings} == {3}


@pytest.mark.parametrize("command", ["$TOOL run", "${BIN}/lint", "@files(sources)", "noop", ""])
def test_templated_or_empty_commands_skip_the_inputs_check(command: str) -> None:
    task = TaskDefinition(project="app", name="lint", command=command)

    assert "task.no_inputs" not in _codes(task)


@pytest.mark.parametrize(
    ("name", "command", "expected"),
    [
        ("build", "tsc", True),
        ("compile-assets", "node scripts/run.js", True),
        ("lint", "vite build", True),
        ("prebuild", "node setup.js", False),
        ("test", "jest", False),
    ],
)
def test_build_lexicon_matches_token_prefixes(name: str, command: str, expected: bool) -> None:
    task = TaskDefinition(project="app", name=name, command=command, inputs=("src/**/*",))

    assert ("task.no_outputs" in _codes(task)) is expected


def test_broad_globs_warn_once_per_pattern() -> None:
    task = TaskDefinition(
        project="app",
        name="lint",
        command="eslint",
        inputs=("**/*", "./**", "src/**/*"),
        outputs=("**/*",),
    )

    findings = [f for f in check_task(task, Heuristics()) if f.code == "task.broad_glob"]

    assert [f.message for f in findings] == [
        "Task app:lint uses overly broad pattern '**/*' (invalidates cache too often)",
        "Task app:lint uses overly broad pattern './**' (invalidates cache too often)",
    ]


def test_dev_task_must_be_persistent_and_uncached() -> None:
    dev = TaskDefinition(project="app", name="dev", command="vite", inputs=("src/**/*",))
    server = TaskDefinition(
        project="app",
        name="dev",
        command="vite",
        inputs=("src/**/*",),
        cache_enabled=False,
        is_persistent=True,
        preset="server",
    )

    findings = check_task(dev, Heuristics())
    assert [f.code for f in findings] == ["task.dev_not_persistent"]
    assert findings[0].suggested_fix == "set preset: server"
    assert check_task(server, Heuristics()) == []


@pytest.mark.parametrize(
    ("task_yaml", "expected"),
    [
        ("typecheck:\n    command: tsc --build\n", "task.no_outputs"),
        ("typecheck:\n    command: [tsc, --build]\n", "task.no_outputs"),
        ("typecheck:\n    command: tsc\n    args: [--build]\n", "task.no_outputs"),
        ("typecheck:\n    command: tsc\n    args: --build\n", "task.no_outputs"),
        ("run:\n    command: vite dev\n", "task.dev_not_persistent"),
        ("run:\n    command: [vite, dev]\n", "task.dev_not_persistent"),
        ("run:\n    command: vite\n    args: [dev]\n", "task.dev_not_persistent"),
    ],
)
def test_command_forms_get_the_same_heuristics(
    tmp_path: Path, task_yaml: str, expected: str
) -> None:
    findings = _check(
        tmp_path,
        {
            ".moon/workspace.yml": "projects: ['apps/*']\n",
            "apps/web/moon.yml": f"tasks:\n  {task_yaml}    inputs: ['src/**/*']\n",
        },
    )

    assert [finding.code for finding in findings] == [expected]


def test_heuristics_from_settings_lowercases_and_keeps_defaults() -> None:
    heuristics = Heuristics.from_settings(
        {"heuristics": {"build_lexicon": ["Pack"], "broad_globs": ["./src/**/"]}}
    )

    assert heuristics.build_lexicon == ("pack",)
    assert heuristics.dev_lexicon == Heuristics().dev_lexicon
    assert heuristics.broad_globs == ("src/**",)

    task = TaskDefinition(project="app", name="pack", command="zip", inputs=("src/**",))
    assert _codes(task, heuristics) == ["task.no_outputs", "task.broad_glob"]


def test_is_templated() -> None:
    assert is_templated("$workspaceRoot/bin/tool")
    assert is_templated("  NOP ")
    assert not is_templated("tsc --build")
    assert not is_templated("echo $")


@given(
    command=st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=1, max_size=12).filter(
        lambda value: value not in {"noop", "nop"}
    )
)
def test_untemplated_command_without_inputs_always_warns(command: str) -> None:
    task = TaskDefinition(project="app", name="step", command=command)

    assert _codes(task).count("task.no_inputs") == 1
