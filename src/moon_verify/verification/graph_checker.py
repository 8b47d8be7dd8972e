"""Cycle detection and advisory best-practice heuristics over a built task graph."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

from moon_verify.domain.models import Finding, Severity, TaskDefinition
from moon_verify.planning.builder import BuildResult
from moon_verify.planning.task_graph import TaskGraph

logger = logging.getLogger(__name__)

_TOKEN_SPLIT: Final[re.Pattern[str]] = re.compile(r"[^0-9A-Za-z]+")
_TEMPLATED: Final[re.Pattern[str]] = re.compile(r"\$\{?[A-Za-z_][A-Za-z0-9_]*|@[a-z]+\(")
_NOOP_COMMANDS: Final[frozenset[str]] = frozenset({"noop", "no-op", "nop"})

_BUILD_LEXICON: Final[tuple[str, ...]] = ("build", "bundle", "compile", "dist", "package")
_DEV_LEXICON: Final[tuple[str, ...]] = ("dev", "serve", "start", "watch")
_BROAD_GLOBS: Final[tuple[str, ...]] = ("**", "**/*", "**/**")


@dataclass(frozen=True, slots=True)
class Heuristics:
    """Policy knobs for the advisory checks; every list is overridable in settings."""

    build_lexicon: tuple[str, ...] = _BUILD_LEXICON
    dev_lexicon: tuple[str, ...] = _DEV_LEXICON
    broad_globs: tuple[str, ...] = _BROAD_GLOBS

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> Heuristics:
        section = settings.get("heuristics", {})
        return cls(
            build_lexicon=tuple(
                term.lower() for term in section.get("build_lexicon", _BUILD_LEXICON)
            ),
            dev_lexicon=tuple(term.lower() for term in section.get("dev_lexicon", _DEV_LEXICON)),
            broad_globs=tuple(
                _normalize_glob(glob) for glob in section.get("broad_globs", _BROAD_GLOBS)
            ),
        )


def check_graph(
    build_result: BuildResult, *, heuristics: Heuristics | None = None
) -> list[Finding]:
    """Return cycle errors followed by heuristic warnings, in deterministic order."""

    policy = heuristics if heuristics is not None else Heuristics()
    findings: list[Finding] = []
    findings.extend(
        _cycle_findings(build_result.project_graph, build_result, code="project.cycle")
    )
    findings.extend(_cycle_findings(build_result.graph, build_result, code="task.cycle"))

    for task in _declared(build_result):
        line = build_result.line_for(task.source_file, "tasks", task.name)
        findings.extend(check_task(task, policy, line_hint=line))

    logger.info("graph checks complete", extra={"findings": len(findings)})
    return findings


def check_task(
    task: TaskDefinition, heuristics: Heuristics, *, line_hint: int | None = None
) -> list[Finding]:
    """Apply the advisory heuristics to a single task."""

    findings: list[Finding] = []
    label = task.qualified_name
    tokens = _tokens(task)

    if task.command and not is_templated(task.command) and not task.inputs:
        findings.append(
            _warning(
                task,
                "task.no_inputs",
                f"Task {label} has no inputs defined (cannot be cached meaningfully)",
                "declare inputs, e.g. inputs: ['src/**/*']",
                line_hint,
            )
        )

    if not task.outputs and _matches(tokens, heuristics.build_lexicon):
        findings.append(
            _warning(
                task,
                "task.no_outputs",
                f"Build task {label} has no outputs defined",
                "declare outputs, e.g. outputs: ['dist']",
                line_hint,
            )
        )

    broad = sorted(
        {
            pattern
            for pattern in (*task.inputs, *task.outputs)
            if _normalize_glob(pattern) in heuristics.broad_globs
        }
    )
    for pattern in broad:
        findings.append(
            _warning(
                task,
                "task.broad_glob",
                f"Task {label} uses overly broad pattern '{pattern}' "
                "(invalidates cache too often)",
                "narrow the pattern to source files, e.g. 'src/**/*.ts'",
                line_hint,
            )
        )

    if (
        _matches(tokens, heuristics.dev_lexicon)
        and not task.is_persistent
        and task.cache_enabled
    ):
        findings.append(
            _warning(
                task,
                "task.dev_not_persistent",
                f"Dev task {label} should be persistent and not cached",
                "set preset: server",
                line_hint,
            )
        )
    return findings


def is_templated(command: str) -> bool:
    """True for commands whose real value is only known once moon expands it."""
    stripped = command.strip()
    return stripped.lower() in _NOOP_COMMANDS or _TEMPLATED.search(stripped) is not None


def _cycle_findings(graph: TaskGraph, build_result: BuildResult, *, code: str) -> list[Finding]:
    findings: list[Finding] = []
    for cycle in graph.detect_cycles():
        source, line = _cycle_location(build_result, cycle[0], code=code)
        findings.append(
            Finding(
                severity=Severity.ERROR,
                source_file=source,
                message=f"dependency cycle: {' -> '.join(cycle)}",
                code=code,
                line_hint=line,
                suggested_fix="remove one of the dependencies to break the cycle",
            )
        )
    return findings


def _cycle_location(
    build_result: BuildResult, node: str, *, code: str
) -> tuple[str, int | None]:
    if code == "project.cycle":
        entry = build_result.project(node)
        source = entry.config_path if entry is not None and entry.config_path else node
        return source, build_result.line_for(source, "dependsOn")
    task = build_result.task(node)
    if task is None:
        return node, None
    return task.source_file, build_result.line_for(task.source_file, "tasks", task.name, "deps")


def _declared(build_result: BuildResult) -> Iterable[TaskDefinition]:
    yield from build_result.templates
    yield from build_result.declared_tasks


def _tokens(task: TaskDefinition) -> tuple[str, ...]:
    words = f"{task.name} {task.command_line}".lower()
    return tuple(token for token in _TOKEN_SPLIT.split(words) if token)


def _matches(tokens: Sequence[str], lexicon: Sequence[str]) -> bool:
    return any(token.startswith(term) for token in tokens for term in lexicon if term)


def _normalize_glob(pattern: str) -> str:
    text = pattern.strip()
    while text.startswith("./"):
        text = text[2:]
    return text.strip("/")


def _warning(
    task: TaskDefinition, code: str, message: str, fix: str, line: int | None = None
) -> Finding:
    return Finding(
        severity=Severity.WARNING,
        source_file=task.source_file,
        message=message,
        code=code,
        line_hint=line,
        suggested_fix=fix,
    )


__all__ = ["Heuristics", "check_graph", "check_task", "is_templated"]
