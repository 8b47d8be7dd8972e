"""
moon-verify — task graph builder.

File: src/moon_verify/planning/builder.py
Last updated: 2026-10-18

Purpose
- Flatten inherited and project-local task definitions into one qualified mapping.
- Resolve every dependency reference into edges of a ``TaskGraph``.

What should be included in this file
- Inherited template selection (global file, then per-language files).
- ``workspace.inheritedTasks`` include/exclude filtering.
- Array merge strategies (append, prepend, replace, preserve) with order-preserving dedupe.
- Reference resolution for every ``DependencyReference`` variant.

Functional requirements
- Inheritance is applied before any reference is resolved.
- Missing references become findings, never exceptions.
- Output is deterministic for identical inputs.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from types import MappingProxyType
from typing import Any, Final

from moon_verify.constants import INHERITED_TASKS_CONFIG, INHERITED_TASKS_DIR
from moon_verify.domain.models import (
    AllUpstream,
    DependencyReference,
    DocumentKind,
    Explicit,
    Finding,
    InvalidTargetError,
    MergeStrategy,
    ProjectEntry,
    SameProject,
    Severity,
    Tagged,
    TaskDefinition,
    WorkspaceDocument,
    parse_dependency_target,
)
from moon_verify.planning.task_graph import TaskGraph
from moon_verify.workspace.loader import LoadResult

logger = logging.getLogger(__name__)

RawTask = dict[str, Any]

# Array-valued task fields and the option that selects their merge strategy.
_ARRAY_FIELDS: Final[dict[str, str]] = {
    "args": "mergeArgs",
    "deps": "mergeDeps",
    "inputs": "mergeInputs",
    "outputs": "mergeOutputs",
}
_COMMAND_FIELDS: Final[tuple[str, ...]] = ("command", "script")


@dataclass(frozen=True, slots=True)
class BuildResult:
    """Resolved task set and graphs for one workspace."""

    tasks: Mapping[str, TaskDefinition]
    templates: tuple[TaskDefinition, ...]
    graph: TaskGraph
    project_graph: TaskGraph
    findings: tuple[Finding, ...]
    projects: tuple[ProjectEntry, ...] = ()
    documents: Mapping[str, WorkspaceDocument] = field(default_factory=dict)

    def task(self, qualified_name: str) -> TaskDefinition | None:
        return self.tasks.get(qualified_name)

    def project(self, name: str) -> ProjectEntry | None:
        for entry in self.projects:
            if entry.name == name:
                return entry
        return None

    def line_for(self, source_file: str, *keys: str) -> int | None:
        document = self.documents.get(source_file)
        return document.line_for(*keys) if document is not None else None

    @property
    def declared_tasks(self) -> tuple[TaskDefinition, ...]:
        """Project tasks written or overridden in a project's own config."""
        return tuple(task for task in self.tasks.values() if not task.inherited)


@dataclass(frozen=True, slots=True)
class _TemplateSource:
    document: WorkspaceDocument
    language: str | None
    tasks: dict[str, RawTask]


class _Builder:
    __slots__ = ("_load", "_findings", "_documents")

    def __init__(self, load_result: LoadResult) -> None:
        self._load = load_result
        self._findings: list[Finding] = []
        self._documents = {document.path: document for document in load_result.documents}

    def build(self) -> BuildResult:
        sources = self._template_sources()
        templates = tuple(
            self._project_task("", name, raw, source.document.path)
            for source in sources
            for name, raw in source.tasks.items()
        )

        tasks: dict[str, TaskDefinition] = {}
        for project in self._load.projects:
            for task in self._project_tasks(project, sources):
                tasks[task.qualified_name] = task

        graph = TaskGraph(nodes=sorted(tasks))
        for qualified_name in sorted(tasks):
            self._resolve(tasks[qualified_name], tasks, graph)

        project_graph = self._project_graph()
        logger.info(
            "built task graph",
            extra={"tasks": len(tasks), "edges": len(graph.edges), "templates": len(templates)},
        )
        return BuildResult(
            tasks=MappingProxyType(dict(sorted(tasks.items()))),
            templates=templates,
            graph=graph,
            project_graph=project_graph,
            findings=tuple(self._findings),
            projects=self._load.projects,
            documents=MappingProxyType(dict(self._documents)),
        )

    # ------------------------------------------------------------------
    # Inheritance
    # ------------------------------------------------------------------

    def _template_sources(self) -> list[_TemplateSource]:
        sources: list[_TemplateSource] = []
        for document in self._load.documents_of(DocumentKind.INHERITED_TASKS):
            path = PurePosixPath(document.path)
            if path == INHERITED_TASKS_CONFIG:
                language = None
            elif path.parent == INHERITED_TASKS_DIR:
                language = path.stem
            else:
                continue

            implicit_inputs = _str_list(document.raw.get("implicitInputs"))
            implicit_deps = _raw_list(document.raw.get("implicitDeps"))
            tasks: dict[str, RawTask] = {}
            for name, raw in _raw_tasks(document.raw).items():
                if implicit_inputs:
                    raw["inputs"] = _dedupe([*_str_list(raw.get("inputs")), *implicit_inputs])
                if implicit_deps:
                    raw["deps"] = _dedupe([*_raw_list(raw.get("deps")), *implicit_deps])
                tasks[name] = raw
            sources.append(_TemplateSource(document, language, tasks))

        # The global file always applies first, language files in name order after it.
        sources.sort(key=lambda source: (source.language is not None, source.document.path))
        return sources

    def _project_tasks(
        self, project: ProjectEntry, sources: Sequence[_TemplateSource]
    ) -> list[TaskDefinition]:
        config = self._documents.get(project.config_path or "")
        raw_config: Mapping[str, object] = config.raw if config is not None else {}
        include, exclude = _inheritance_filter(raw_config)

        inherited: dict[str, tuple[RawTask, str]] = {}
        for source in sources:
            if source.language is not None and source.language != project.language:
                continue
            for name, raw in source.tasks.items():
                if include is not None and name not in include:
                    continue
                if name in exclude:
                    continue
                previous = inherited.get(name)
                merged = _merge_raw(previous[0], raw) if previous is not None else dict(raw)
                inherited[name] = (merged, source.document.path)

        local = _raw_tasks(raw_config)
        local_path = config.path if config is not None else ""
        out: list[TaskDefinition] = []
        for name in sorted(set(inherited) | set(local)):
            if name in local:
                base = inherited.get(name)
                raw = _merge_raw(base[0], local[name]) if base is not None else local[name]
                out.append(self._project_task(project.name, name, raw, local_path))
            else:
                raw, source_path = inherited[name]
                out.append(
                    self._project_task(project.name, name, raw, source_path, inherited=True)
                )
        return out

    def _project_task(
        self,
        project: str,
        name: str,
        raw: Mapping[str, Any],
        source_file: str,
        *,
        inherited: bool = False,
    ) -> TaskDefinition:
        command, args = _command_parts(raw)
        options = raw.get("options")
        options = options if isinstance(options, Mapping) else {}

        preset = raw.get("preset") if isinstance(raw.get("preset"), str) else None
        cache_enabled = preset is None
        is_persistent = preset is not None
        runs_in_ci: bool | str = preset is None

        if isinstance(options.get("cache"), bool):
            cache_enabled = options["cache"]
        if isinstance(options.get("persistent"), bool):
            is_persistent = options["persistent"]
        run_in_ci = options.get("runInCI")
        if isinstance(run_in_ci, (bool, str)):
            runs_in_ci = run_in_ci

        dependencies: list[DependencyReference] = []
        for item in _raw_list(raw.get("deps")):
            try:
                reference = parse_dependency_target(item)
            except InvalidTargetError as exc:
                # Inherited copies repeat their template's problems; report once, on the template.
                if not inherited:
                    self._error(
                        source_file,
                        f"invalid dependency in {project}:{name}: {exc}",
                        "dependency.invalid",
                        name,
                    )
                continue
            if reference not in dependencies:
                dependencies.append(reference)

        return TaskDefinition(
            project=project,
            name=name,
            command=command,
            args=tuple(args),
            inputs=tuple(_str_list(raw.get("inputs"))),
            outputs=tuple(_str_list(raw.get("outputs"))),
            dependencies=tuple(dependencies),
            cache_enabled=cache_enabled,
            runs_in_ci=runs_in_ci,
            is_persistent=is_persistent,
            preset=preset,
            merge_args=_strategy(options, "mergeArgs"),
            merge_deps=_strategy(options, "mergeDeps"),
            merge_inputs=_strategy(options, "mergeInputs"),
            merge_outputs=_strategy(options, "mergeOutputs"),
            source_file=source_file,
            inherited=inherited,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve(
        self, task: TaskDefinition, tasks: Mapping[str, TaskDefinition], graph: TaskGraph
    ) -> None:
        for reference in task.dependencies:
            if isinstance(reference, SameProject):
                target = f"{task.project}:{reference.task}"
                if target in tasks:
                    graph.add_edge(task.qualified_name, target)
                else:
                    self._unresolved(
                        task,
                        target,
                        f"define task '{reference.task}' in project '{task.project}' "
                        f"or remove it from {task.qualified_name} deps",
                    )
            elif isinstance(reference, AllUpstream):
                for upstream in self._upstream_of(task.project):
                    self._fan_out(task, upstream, reference, tasks, graph)
            elif isinstance(reference, Tagged):
                tagged = [
                    entry.name
                    for entry in self._load.projects
                    if reference.tag in entry.tags and entry.name != task.project
                ]
                if not tagged:
                    self._info(
                        task,
                        f"{task.qualified_name}: no project is tagged '{reference.tag}'",
                    )
                for upstream in tagged:
                    self._fan_out(task, upstream, reference, tasks, graph)
            elif isinstance(reference, Explicit):
                target = reference.target
                if self._load.project(reference.project) is None:
                    self._unresolved(
                        task,
                        target,
                        f"project '{reference.project}' is not part of the workspace",
                    )
                elif target not in tasks:
                    self._unresolved(
                        task,
                        target,
                        f"define task '{reference.task}' in project '{reference.project}'",
                    )
                else:
                    graph.add_edge(task.qualified_name, target)

    def _fan_out(
        self,
        task: TaskDefinition,
        upstream: str,
        reference: AllUpstream | Tagged,
        tasks: Mapping[str, TaskDefinition],
        graph: TaskGraph,
    ) -> None:
        target = f"{upstream}:{reference.task}"
        if target in tasks:
            graph.add_edge(task.qualified_name, target)
        else:
            self._info(
                task,
                f"{task.qualified_name}: upstream project '{upstream}' has no "
                f"'{reference.task}' task (from {reference.target})",
            )

    def _upstream_of(self, project_name: str) -> tuple[str, ...]:
        entry = self._load.project(project_name)
        if entry is None:
            return ()
        return tuple(
            name for name in entry.declared_dependencies if self._load.project(name) is not None
        )

    def _project_graph(self) -> TaskGraph:
        graph = TaskGraph(nodes=[entry.name for entry in self._load.projects])
        workspace = self._load.workspace
        for entry in self._load.projects:
            for dependency in entry.declared_dependencies:
                if self._load.project(dependency) is not None:
                    graph.add_edge(entry.name, dependency)
                    continue
                source = entry.config_path or (workspace.path if workspace else "")
                document = self._documents.get(source)
                self._findings.append(
                    Finding(
                        severity=Severity.ERROR,
                        source_file=source,
                        message=(
                            f"project '{entry.name}' depends on unknown project '{dependency}'"
                        ),
                        code="project.unknown_dependency",
                        line_hint=document.line_for("dependsOn") if document else None,
                        suggested_fix=(
                            f"add '{dependency}' to the workspace or drop it from dependsOn"
                        ),
                    )
                )
        return graph

    # ------------------------------------------------------------------
    # Findings
    # ------------------------------------------------------------------

    def _unresolved(self, task: TaskDefinition, target: str, fix: str) -> None:
        self._error(
            task.source_file,
            f"unresolved dependency: {target}",
            "dependency.unresolved",
            task.name,
            fix=fix,
        )

    def _info(self, task: TaskDefinition, message: str) -> None:
        self._findings.append(
            Finding(
                severity=Severity.INFO,
                source_file=task.source_file,
                message=message,
                code="dependency.upstream_missing",
                line_hint=self._line(task.source_file, task.name),
            )
        )

    def _error(
        self, source_file: str, message: str, code: str, task_name: str, fix: str | None = None
    ) -> None:
        self._findings.append(
            Finding(
                severity=Severity.ERROR,
                source_file=source_file,
                message=message,
                code=code,
                line_hint=self._line(source_file, task_name),
                suggested_fix=fix,
            )
        )

    def _line(self, source_file: str, task_name: str) -> int | None:
        document = self._documents.get(source_file)
        if document is None:
            return None
        return document.line_for("tasks", task_name, "deps")


def build_task_graph(load_result: LoadResult) -> BuildResult:
    """Merge inherited tasks into every project and resolve all dependency references."""

    return _Builder(load_result).build()


# ---------------------------------------------------------------------------
# Raw task helpers
# ---------------------------------------------------------------------------


def merge_task_fields(
    base: Sequence[Any], local: Sequence[Any], strategy: MergeStrategy | str
) -> list[Any]:
    """Combine an inherited array with a local one; duplicates keep their first position."""

    strategy = MergeStrategy(strategy)
    if strategy is MergeStrategy.REPLACE:
        return _dedupe(local)
    if strategy is MergeStrategy.PRESERVE:
        return _dedupe(base)
    if strategy is MergeStrategy.PREPEND:
        return _dedupe([*local, *base])
    return _dedupe([*base, *local])


def _merge_raw(base: Mapping[str, Any], local: Mapping[str, Any]) -> RawTask:
    local_options = local.get("options")
    local_options = local_options if isinstance(local_options, Mapping) else {}
    base_options = base.get("options")
    base_options = base_options if isinstance(base_options, Mapping) else {}

    merged: RawTask = {
        key: value
        for key, value in base.items()
        if key not in _ARRAY_FIELDS and key != "options"
    }
    if any(key in local for key in _COMMAND_FIELDS):
        for key in _COMMAND_FIELDS:
            merged.pop(key, None)
    for key, value in local.items():
        if key not in _ARRAY_FIELDS and key != "options":
            merged[key] = value
    merged["options"] = {**base_options, **local_options}

    for field_name, option in _ARRAY_FIELDS.items():
        base_items = _raw_list(base.get(field_name))
        if field_name not in local:
            merged[field_name] = base_items
            continue
        strategy = _strategy(local_options, option)
        merged[field_name] = merge_task_fields(
            base_items, _raw_list(local[field_name]), strategy
        )
    return merged


def _raw_tasks(raw: Mapping[str, object]) -> dict[str, RawTask]:
    tasks = raw.get("tasks")
    if not isinstance(tasks, Mapping):
        return {}
    out: dict[str, RawTask] = {}
    for name in sorted(tasks, key=str):
        body = tasks[name]
        if body is None:
            body = {}
        if isinstance(body, Mapping):
            out[str(name)] = dict(body)
    return out


def _inheritance_filter(raw: Mapping[str, object]) -> tuple[frozenset[str] | None, frozenset[str]]:
    workspace = raw.get("workspace")
    settings = workspace.get("inheritedTasks") if isinstance(workspace, Mapping) else None
    if not isinstance(settings, Mapping):
        return None, frozenset()
    include = settings.get("include")
    return (
        frozenset(_str_list(include)) if isinstance(include, list) else None,
        frozenset(_str_list(settings.get("exclude"))),
    )


def _command_parts(raw: Mapping[str, Any]) -> tuple[str, list[str]]:
    command = raw.get("command")
    if command is None:
        command = raw.get("script")
    args = raw.get("args")
    extra = args.split() if isinstance(args, str) else _str_list(args)

    if isinstance(command, list):
        parts = _str_list(command)
        if not parts:
            return "", extra
        return parts[0], [*parts[1:], *extra]
    if isinstance(command, str):
        return command.strip(), extra
    return "", extra


def _strategy(options: Mapping[str, Any], option: str) -> MergeStrategy:
    value = options.get(option, options.get("merge"))
    try:
        return MergeStrategy(value) if value is not None else MergeStrategy.APPEND
    except ValueError:
        return MergeStrategy.APPEND


def _raw_list(value: object) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    if isinstance(value, list):
        return list(value)
    return []


def _str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _dedupe(items: Sequence[Any]) -> list[Any]:
    out: list[Any] = []
    for item in items:
        if item not in out:
            out.append(item)
    return out


__all__ = ["BuildResult", "build_task_graph", "merge_task_fields"]
