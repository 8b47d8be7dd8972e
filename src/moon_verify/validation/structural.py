"""
Structural validator — per-document schema checks.

Functional requirements:
- Dispatch on DocumentKind; never consult other documents.
- Missing required fields and wrong value types are errors.
- Missing recommended fields are warnings.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Final

from moon_verify.constants import (
    RUN_IN_CI_VALUES,
    TASK_PRESETS,
    TOOLCHAIN_VERSIONED_SECTIONS,
    VCS_MANAGERS,
)
from moon_verify.domain.models import (
    DocumentKind,
    Finding,
    MergeStrategy,
    Severity,
    WorkspaceDocument,
    is_valid_name,
)

_MERGE_OPTIONS: Final[tuple[str, ...]] = (
    "merge",
    "mergeArgs",
    "mergeDeps",
    "mergeEnv",
    "mergeInputs",
    "mergeOutputs",
)
_BOOL_OPTIONS: Final[tuple[str, ...]] = (
    "cache",
    "interactive",
    "persistent",
    "runFromWorkspaceRoot",
)
_TASK_LIST_FIELDS: Final[tuple[str, ...]] = ("inputs", "outputs")

Check = Callable[[WorkspaceDocument, "_Findings"], None]


class _Findings:
    __slots__ = ("_document", "_items")

    def __init__(self, document: WorkspaceDocument) -> None:
        self._document = document
        self._items: list[Finding] = []

    def error(
        self, message: str, *keys: str, fix: str | None = None, code: str = "schema"
    ) -> None:
        self._add(Severity.ERROR, code, message, keys, fix)

    def warning(self, code: str, message: str, *keys: str, fix: str | None = None) -> None:
        self._add(Severity.WARNING, code, message, keys, fix)

    def _add(
        self,
        severity: Severity,
        code: str,
        message: str,
        keys: Sequence[str],
        fix: str | None,
    ) -> None:
        prefix = self._document.kind.value
        self._items.append(
            Finding(
                severity=severity,
                source_file=self._document.path,
                message=message,
                code=code if "." in code else f"{prefix}.{code}",
                line_hint=self._document.line_for(*keys) if keys else None,
                suggested_fix=fix,
            )
        )

    def items(self) -> list[Finding]:
        return list(self._items)


def validate_document(document: WorkspaceDocument) -> list[Finding]:
    """Run the local checks registered for the document's kind."""

    collector = _Findings(document)
    _CHECKS[document.kind](document, collector)
    return collector.items()


def validate_documents(documents: Sequence[WorkspaceDocument]) -> list[Finding]:
    findings: list[Finding] = []
    for document in documents:
        findings.extend(validate_document(document))
    return findings


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


def _check_workspace(document: WorkspaceDocument, out: _Findings) -> None:
    raw = document.raw
    projects = raw.get("projects")
    if projects is None:
        out.error(
            "workspace.yml missing 'projects' field",
            fix="declare project globs, e.g. projects: ['apps/*', 'packages/*']",
            code="workspace.projects",
        )
    elif isinstance(projects, Mapping):
        if not projects:
            out.error("'projects' must not be empty", "projects", code="workspace.projects")
        elif "globs" in projects or "sources" in projects:
            if not _is_str_list(projects.get("globs", [])):
                out.error("'projects.globs' must be a list of strings", "projects")
            sources = projects.get("sources", {})
            if not isinstance(sources, Mapping) or not all(
                isinstance(item, str) for item in sources.values()
            ):
                out.error("'projects.sources' must map project names to paths", "projects")
            else:
                _check_project_names(sources, out, "projects", "sources")
        elif not all(isinstance(item, str) for item in projects.values()):
            out.error("'projects' must map project names to paths", "projects")
        else:
            _check_project_names(projects, out, "projects")
    elif _is_str_list(projects):
        if not projects:
            out.error("'projects' must not be empty", "projects", code="workspace.projects")
    else:
        out.error("'projects' must be a list of globs or a mapping of names to paths", "projects")

    vcs = raw.get("vcs")
    if vcs is None:
        return
    if not isinstance(vcs, Mapping):
        out.error("'vcs' must be a mapping", "vcs")
        return
    if "defaultBranch" not in vcs:
        out.warning(
            "workspace.vcs.default_branch",
            "workspace.yml: VCS section missing 'defaultBranch'",
            "vcs",
            fix="set vcs.defaultBranch (for example 'main')",
        )
    manager = vcs.get("manager")
    if manager is not None and manager not in VCS_MANAGERS:
        out.error(f"vcs.manager must be one of {', '.join(VCS_MANAGERS)}", "vcs", "manager")


def _check_project_names(named: Mapping[object, object], out: _Findings, *keys: str) -> None:
    for key in named:
        name = str(key)
        if not is_valid_name(name):
            out.error(
                f"invalid project name '{name}': names must be non-empty "
                "and contain no ':' or whitespace",
                *keys,
                code="workspace.projects.name",
            )


# ---------------------------------------------------------------------------
# Toolchain
# ---------------------------------------------------------------------------


def _check_toolchain(document: WorkspaceDocument, out: _Findings) -> None:
    for section_name in TOOLCHAIN_VERSIONED_SECTIONS:
        section = document.raw.get(section_name)
        if section is None:
            continue
        if not isinstance(section, Mapping):
            out.error(f"'{section_name}' must be a mapping", section_name)
            continue
        if "version" not in section:
            out.warning(
                "toolchain.version",
                f"toolchain.yml: {section_name} section missing 'version'",
                section_name,
                fix=f"pin {section_name}.version or manage it through .prototools",
            )
        elif not isinstance(section["version"], str):
            out.error(f"{section_name}.version must be a string", section_name, "version")


# ---------------------------------------------------------------------------
# Inherited tasks and project configs
# ---------------------------------------------------------------------------


def _check_inherited_tasks(document: WorkspaceDocument, out: _Findings) -> None:
    raw = document.raw
    _check_tasks_section(document, out)

    file_groups = raw.get("fileGroups")
    if file_groups is None:
        if raw.get("tasks"):
            out.warning(
                "tasks.file_groups",
                f"{document.path}: Consider defining fileGroups for consistent inputs",
                "tasks",
            )
    elif not isinstance(file_groups, Mapping):
        out.error("'fileGroups' must be a mapping of group names to globs", "fileGroups")
    else:
        for group in sorted(file_groups):
            if not _is_str_list(file_groups[group]):
                out.error(f"fileGroups.{group} must be a list of strings", "fileGroups", group)

    for key in ("implicitInputs", "implicitDeps"):
        if key in raw and not _is_str_list(raw[key]):
            out.error(f"'{key}' must be a list of strings", key)


def _check_project(document: WorkspaceDocument, out: _Findings) -> None:
    raw = document.raw
    _check_tasks_section(document, out)

    for key in ("language", "type", "id"):
        if key in raw and not isinstance(raw[key], str):
            out.error(f"'{key}' must be a string", key)

    depends_on = raw.get("dependsOn")
    if depends_on is not None:
        if not isinstance(depends_on, list):
            out.error("'dependsOn' must be a list", "dependsOn")
        else:
            for index, item in enumerate(depends_on):
                if isinstance(item, Mapping):
                    item = item.get("id")
                if not isinstance(item, str) or not item.strip():
                    out.error(f"dependsOn[{index}] must be a project name", "dependsOn")

    tags = raw.get("tags")
    if tags is not None and not _is_str_list(tags):
        out.error("'tags' must be a list of strings", "tags")

    inherited = raw.get("workspace")
    if isinstance(inherited, Mapping):
        settings = inherited.get("inheritedTasks")
        if isinstance(settings, Mapping):
            for key in ("include", "exclude"):
                if key in settings and not _is_str_list(settings[key]):
                    out.error(
                        f"workspace.inheritedTasks.{key} must be a list of task names",
                        "workspace",
                    )


def _check_tasks_section(document: WorkspaceDocument, out: _Findings) -> None:
    tasks = document.raw.get("tasks")
    if tasks is None:
        return
    if not isinstance(tasks, Mapping):
        out.error("'tasks' must be a mapping of task names to definitions", "tasks")
        return
    for name in sorted(tasks, key=str):
        task = tasks[name]
        if task is None:
            continue
        if not isinstance(task, Mapping):
            out.error(f"task '{name}' must be a mapping", "tasks", str(name))
            continue
        _check_task(str(name), task, out)


def _check_task(name: str, task: Mapping[str, object], out: _Findings) -> None:
    keys = ("tasks", name)
    label = f"task '{name}'"

    for field_name in ("command", "args"):
        value = task.get(field_name)
        if value is not None and not isinstance(value, str) and not _is_str_list(value):
            out.error(f"{label}: '{field_name}' must be a string or a list of strings", *keys)

    script = task.get("script")
    if script is not None and not isinstance(script, str):
        out.error(f"{label}: 'script' must be a string", *keys)

    for field_name in _TASK_LIST_FIELDS:
        value = task.get(field_name)
        if value is not None and not _is_str_list(value):
            out.error(f"{label}: '{field_name}' must be a list of strings", *keys, field_name)

    deps = task.get("deps")
    if deps is not None:
        if not isinstance(deps, list):
            out.error(f"{label}: 'deps' must be a list of targets", *keys, "deps")
        else:
            for index, item in enumerate(deps):
                target = item.get("target") if isinstance(item, Mapping) else item
                if not isinstance(target, str):
                    out.error(f"{label}: deps[{index}] must be a target string", *keys, "deps")

    preset = task.get("preset")
    if preset is not None and preset not in TASK_PRESETS:
        out.error(f"{label}: preset must be one of {', '.join(TASK_PRESETS)}", *keys, "preset")

    options = task.get("options")
    if options is None:
        return
    if not isinstance(options, Mapping):
        out.error(f"{label}: 'options' must be a mapping", *keys, "options")
        return

    for option in _BOOL_OPTIONS:
        if option in options and not isinstance(options[option], bool):
            out.error(f"{label}: options.{option} must be a boolean", *keys, "options")

    run_in_ci = options.get("runInCI")
    if (
        run_in_ci is not None
        and not isinstance(run_in_ci, bool)
        and run_in_ci not in RUN_IN_CI_VALUES
    ):
        out.error(
            f"{label}: options.runInCI must be a boolean or one of {', '.join(RUN_IN_CI_VALUES)}",
            *keys,
            "options",
        )

    strategies = tuple(item.value for item in MergeStrategy)
    for option in _MERGE_OPTIONS:
        value = options.get(option)
        if value is not None and value not in strategies:
            out.error(
                f"{label}: options.{option} must be one of {', '.join(strategies)}",
                *keys,
                "options",
            )


# ---------------------------------------------------------------------------
# Version pins
# ---------------------------------------------------------------------------


def _check_version_pins(document: WorkspaceDocument, out: _Findings) -> None:
    for tool in sorted(document.raw):
        value = document.raw[tool]
        if isinstance(value, Mapping):
            continue
        if not isinstance(value, str) or not value.strip():
            out.warning(
                "prototools.pin",
                f".prototools: '{tool}' should pin a version string",
                fix=f'{tool} = "1.2.3"',
            )


def _is_str_list(value: object) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


_CHECKS: Final[dict[DocumentKind, Check]] = {
    DocumentKind.WORKSPACE: _check_workspace,
    DocumentKind.TOOLCHAIN: _check_toolchain,
    DocumentKind.INHERITED_TASKS: _check_inherited_tasks,
    DocumentKind.PROJECT: _check_project,
    DocumentKind.VERSION_PINS: _check_version_pins,
}


__all__ = ["validate_document", "validate_documents"]
