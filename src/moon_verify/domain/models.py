"""Typed entities shared by every verification stage."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Final, NoReturn, TypeAlias

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[^\s:]+$")


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class DocumentKind(StrEnum):
    WORKSPACE = "workspace"
    TOOLCHAIN = "toolchain"
    INHERITED_TASKS = "inherited_tasks"
    PROJECT = "project"
    VERSION_PINS = "version_pins"


class MergeStrategy(StrEnum):
    APPEND = "append"
    PREPEND = "prepend"
    REPLACE = "replace"
    PRESERVE = "preserve"


class Verdict(StrEnum):
    PASS = "pass"
    PASS_WITH_WARNINGS = "pass_with_warnings"
    FAIL = "fail"


class InvalidTargetError(ValueError):
    """Raised when a task dependency target cannot be parsed."""


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


@dataclass(frozen=True, slots=True)
class WorkspaceDocument:
    """One parsed configuration file; ``raw`` is read-only after load."""

    path: str
    kind: DocumentKind
    raw: Mapping[str, object]
    line_index: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.path, str) or not self.path:
            _fail("WorkspaceDocument.path", "must be a non-empty string")
        object.__setattr__(self, "kind", DocumentKind(self.kind))
        object.__setattr__(self, "raw", MappingProxyType(dict(self.raw)))
        object.__setattr__(self, "line_index", MappingProxyType(dict(self.line_index)))

    def line_for(self, *keys: str) -> int | None:
        """Return the 1-based line of a dotted key path, falling back to its parents."""
        parts = list(keys)
        while parts:
            line = self.line_index.get(".".join(parts))
            if line is not None:
                return line
            parts.pop()
        return None


# ---------------------------------------------------------------------------
# Dependency references
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SameProject:
    task: str

    @property
    def target(self) -> str:
        return f"~:{self.task}"


@dataclass(frozen=True, slots=True)
class AllUpstream:
    task: str

    @property
    def target(self) -> str:
        return f"^:{self.task}"


@dataclass(frozen=True, slots=True)
class Explicit:
    project: str
    task: str

    @property
    def target(self) -> str:
        return f"{self.project}:{self.task}"


@dataclass(frozen=True, slots=True)
class Tagged:
    tag: str
    task: str

    @property
    def target(self) -> str:
        return f"#{self.tag}:{self.task}"


DependencyReference: TypeAlias = SameProject | AllUpstream | Explicit | Tagged


def parse_dependency_target(raw: object) -> DependencyReference:
    """Parse one ``deps`` entry (string or ``{target: ...}`` mapping) into a reference."""

    if isinstance(raw, Mapping):
        raw = raw.get("target")
    if not isinstance(raw, str):
        raise InvalidTargetError(f"dependency target must be a string, got {type(raw).__name__}")

    text = raw.strip()
    if not text:
        raise InvalidTargetError("dependency target must not be empty")

    if ":" not in text:
        return SameProject(_task_name(text, raw))

    scope, task = text.split(":", 1)
    task = _task_name(task, raw)
    if scope == "":
        raise InvalidTargetError(f"all-projects scope is not allowed in deps: {raw!r}")
    if scope == "~":
        return SameProject(task)
    if scope == "^":
        return AllUpstream(task)
    if scope.startswith("#"):
        tag = scope[1:]
        if not tag or not _NAME_RE.match(tag):
            raise InvalidTargetError(f"invalid tag scope in target {raw!r}")
        return Tagged(tag, task)
    if not _NAME_RE.match(scope):
        raise InvalidTargetError(f"invalid project scope in target {raw!r}")
    return Explicit(scope, task)


def is_valid_name(value: object) -> bool:
    """True when ``value`` can stand as the project half of a ``project:task`` target."""
    return isinstance(value, str) and _NAME_RE.match(value) is not None


def _task_name(value: str, raw: str) -> str:
    if not value or not _NAME_RE.match(value):
        raise InvalidTargetError(f"invalid task name in target {raw!r}")
    return value


# ---------------------------------------------------------------------------
# Tasks, projects, findings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """A task after projection from YAML, qualified as ``project:task`` or ``:task``."""

    project: str
    name: str
    command: str = ""
    args: tuple[str, ...] = ()
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    dependencies: tuple[DependencyReference, ...] = ()
    cache_enabled: bool = True
    runs_in_ci: bool | str = True
    is_persistent: bool = False
    preset: str | None = None
    merge_args: MergeStrategy = MergeStrategy.APPEND
    merge_deps: MergeStrategy = MergeStrategy.APPEND
    merge_inputs: MergeStrategy = MergeStrategy.APPEND
    merge_outputs: MergeStrategy = MergeStrategy.APPEND
    source_file: str = ""
    inherited: bool = False

    @property
    def qualified_name(self) -> str:
        return f"{self.project}:{self.name}"

    @property
    def command_line(self) -> str:
        return " ".join(part for part in (self.command, *self.args) if part)


@dataclass(frozen=True, slots=True)
class ProjectEntry:
    name: str
    path: str
    declared_dependencies: tuple[str, ...] = ()
    language: str | None = None
    tags: tuple[str, ...] = ()
    config_path: str | None = None


@dataclass(frozen=True, slots=True)
class Finding:
    """One validation result; immutable once produced."""

    severity: Severity
    source_file: str
    message: str
    code: str
    line_hint: int | None = None
    suggested_fix: str | None = None
    passed: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity", Severity(self.severity))
        if not self.message:
            _fail("Finding.message", "must not be empty")
        if self.line_hint is not None and self.line_hint < 1:
            _fail("Finding.line_hint", "must be >= 1")
        if self.passed and self.severity is not Severity.INFO:
            _fail("Finding.passed", "only info findings can mark a passing check")

    @property
    def location(self) -> str:
        if self.line_hint is None:
            return self.source_file
        return f"{self.source_file}:{self.line_hint}"

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "source_file": self.source_file,
            "line_hint": self.line_hint,
            "message": self.message,
            "suggested_fix": self.suggested_fix,
            "passed": self.passed,
        }


__all__ = [
    "AllUpstream",
    "DependencyReference",
    "DocumentKind",
    "Explicit",
    "Finding",
    "InvalidTargetError",
    "JSONScalar",
    "JSONValue",
    "MergeStrategy",
    "ProjectEntry",
    "SameProject",
    "Severity",
    "Tagged",
    "TaskDefinition",
    "Verdict",
    "WorkspaceDocument",
    "is_valid_name",
    "parse_dependency_target",
]
