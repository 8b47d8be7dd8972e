"""
moon-verify — workspace document loader.

File: src/moon_verify/workspace/loader.py
Last updated: 2026-10-18

Purpose
- Enumerate a moon workspace's configuration files, parse them, and discover projects.

What should be included in this file
- Marker check for the ``.moon`` directory (fatal when absent).
- YAML parsing with per-key line hints; TOML parsing for ``.prototools``.
- Project discovery for every ``projects`` form moon accepts.

Functional requirements
- A broken file becomes a finding; loading continues with the remaining files.
- Output order is deterministic for identical trees.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Final

import yaml

from moon_verify.config.schema import default_settings
from moon_verify.constants import (
    INHERITED_TASKS_CONFIG,
    INHERITED_TASKS_DIR,
    PROJECT_CONFIG_NAME,
    TOOLCHAIN_CONFIG,
    VERSION_PINS_FILE,
    WORKSPACE_CONFIG,
    WORKSPACE_MARKER_DIR,
)
from moon_verify.domain.models import (
    DocumentKind,
    Finding,
    ProjectEntry,
    Severity,
    WorkspaceDocument,
    is_valid_name,
)

logger = logging.getLogger(__name__)

_GLOB_CHARS: Final[frozenset[str]] = frozenset("*?[")
_LINE_INDEX_DEPTH: Final[int] = 3
_SOURCE_FORM_KEYS: Final[frozenset[str]] = frozenset({"globs", "sources", "globFormat"})


class NotAWorkspaceError(RuntimeError):
    """Raised when the target directory is not a moon workspace root."""


class EmptyWorkspaceError(RuntimeError):
    """Raised when a workspace root yields no configuration documents at all."""


@dataclass(frozen=True, slots=True)
class LoadResult:
    root: Path
    documents: tuple[WorkspaceDocument, ...]
    projects: tuple[ProjectEntry, ...]
    findings: tuple[Finding, ...]
    files_checked: int

    @property
    def workspace(self) -> WorkspaceDocument | None:
        return self.document(WORKSPACE_CONFIG.as_posix())

    def document(self, path: str) -> WorkspaceDocument | None:
        for document in self.documents:
            if document.path == path:
                return document
        return None

    def documents_of(self, kind: DocumentKind) -> tuple[WorkspaceDocument, ...]:
        return tuple(item for item in self.documents if item.kind is kind)

    def project(self, name: str) -> ProjectEntry | None:
        for entry in self.projects:
            if entry.name == name:
                return entry
        return None


class _LoadState:
    """Mutable accumulator scoped to a single ``load_workspace`` call."""

    __slots__ = ("root", "documents", "findings", "attempted")

    def __init__(self, root: Path) -> None:
        self.root = root
        self.documents: list[WorkspaceDocument] = []
        self.findings: list[Finding] = []
        self.attempted = 0

    def rel(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def parse_yaml(self, path: Path, kind: DocumentKind) -> WorkspaceDocument | None:
        self.attempted += 1
        rel_path = self.rel(path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self._malformed(rel_path, f"unable to read file: {exc}", None)
            return None

        try:
            parsed = yaml.safe_load(text)
            line_index = _build_line_index(yaml.compose(text, Loader=yaml.SafeLoader))
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            line = mark.line + 1 if mark is not None else None
            problem = getattr(exc, "problem", None) or str(exc)
            self._malformed(rel_path, f"Invalid YAML syntax: {problem}", line)
            return None

        return self._accept(rel_path, kind, parsed, line_index, "YAML")

    def parse_toml(self, path: Path, kind: DocumentKind) -> WorkspaceDocument | None:
        self.attempted += 1
        rel_path = self.rel(path)
        try:
            with path.open("rb") as handle:
                parsed = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            line = getattr(exc, "lineno", None)
            self._malformed(rel_path, f"Invalid TOML syntax: {exc}", line)
            return None
        except OSError as exc:
            self._malformed(rel_path, f"unable to read file: {exc}", None)
            return None
        return self._accept(rel_path, kind, parsed, {}, "TOML")

    def _accept(
        self,
        rel_path: str,
        kind: DocumentKind,
        parsed: object,
        line_index: Mapping[str, int],
        syntax: str,
    ) -> WorkspaceDocument | None:
        if parsed is None:
            parsed = {}
        if not isinstance(parsed, Mapping):
            self._malformed(
                rel_path,
                f"document root must be a mapping, got {type(parsed).__name__}",
                1,
            )
            return None

        document = WorkspaceDocument(
            path=rel_path,
            kind=kind,
            raw={str(key): value for key, value in parsed.items()},
            line_index=line_index,
        )
        self.documents.append(document)
        self.findings.append(
            Finding(
                severity=Severity.INFO,
                source_file=rel_path,
                message=f"{syntax} syntax valid",
                code="document.valid",
                passed=True,
            )
        )
        logger.debug("parsed %s document %s", kind.value, rel_path)
        return document

    def _malformed(self, rel_path: str, message: str, line: int | None) -> None:
        logger.info("malformed document %s: %s", rel_path, message)
        self.findings.append(
            Finding(
                severity=Severity.ERROR,
                source_file=rel_path,
                message=message,
                code="document.malformed",
                line_hint=line,
                suggested_fix="fix the syntax error; the rest of the file was not checked",
            )
        )

    def error(self, rel_path: str, message: str, code: str, line: int | None = None) -> None:
        self.findings.append(
            Finding(
                severity=Severity.ERROR,
                source_file=rel_path,
                message=message,
                code=code,
                line_hint=line,
            )
        )


def load_workspace(
    root: str | Path,
    *,
    settings: Mapping[str, Any] | None = None,
) -> LoadResult:
    """Load every configuration document of the workspace rooted at ``root``."""

    effective = settings if settings is not None else default_settings()
    discovery = effective["discovery"]
    excluded = frozenset(discovery["exclude_dirs"]) | {WORKSPACE_MARKER_DIR}

    resolved = Path(root).expanduser().resolve()
    if not resolved.is_dir() or not (resolved / WORKSPACE_MARKER_DIR).is_dir():
        raise NotAWorkspaceError(
            f"No {WORKSPACE_MARKER_DIR} directory found in {resolved}. Is this a moon workspace?"
        )

    state = _LoadState(resolved)

    workspace_path = resolved / WORKSPACE_CONFIG
    workspace_doc: WorkspaceDocument | None = None
    if workspace_path.is_file():
        workspace_doc = state.parse_yaml(workspace_path, DocumentKind.WORKSPACE)
    else:
        state.error(
            WORKSPACE_CONFIG.as_posix(), f"{WORKSPACE_CONFIG} not found", "workspace.missing"
        )

    toolchain_path = resolved / TOOLCHAIN_CONFIG
    if toolchain_path.is_file():
        state.parse_yaml(toolchain_path, DocumentKind.TOOLCHAIN)

    tasks_path = resolved / INHERITED_TASKS_CONFIG
    if tasks_path.is_file():
        state.parse_yaml(tasks_path, DocumentKind.INHERITED_TASKS)
    tasks_dir = resolved / INHERITED_TASKS_DIR
    if tasks_dir.is_dir():
        for path in sorted(tasks_dir.glob("*.yml")):
            if path.is_file():
                state.parse_yaml(path, DocumentKind.INHERITED_TASKS)

    projects: list[ProjectEntry] = []
    claimed: set[Path] = set()
    if workspace_doc is not None:
        projects = _discover_projects(state, workspace_doc, excluded, claimed)

    if discovery["scan_unmatched"]:
        for path in _iter_project_configs(resolved, excluded):
            if path in claimed:
                continue
            rel_path = state.rel(path)
            project_dir = state.rel(path.parent) or "."
            state.findings.append(
                Finding(
                    severity=Severity.WARNING,
                    source_file=rel_path,
                    message="project config is not matched by workspace 'projects'",
                    code="project.unmatched",
                    suggested_fix=f"add '{project_dir}' to 'projects' in {WORKSPACE_CONFIG}",
                )
            )
            state.parse_yaml(path, DocumentKind.PROJECT)

    pins_path = resolved / VERSION_PINS_FILE
    if pins_path.is_file():
        state.parse_toml(pins_path, DocumentKind.VERSION_PINS)

    if state.attempted == 0 and not projects:
        marker = resolved / WORKSPACE_MARKER_DIR
        raise EmptyWorkspaceError(f"no configuration files found under {marker}")

    logger.info(
        "loaded workspace",
        extra={"documents": len(state.documents), "projects": len(projects)},
    )
    return LoadResult(
        root=resolved,
        documents=tuple(state.documents),
        projects=tuple(projects),
        findings=tuple(state.findings),
        files_checked=state.attempted,
    )


# ---------------------------------------------------------------------------
# Project discovery
# ---------------------------------------------------------------------------


def _discover_projects(
    state: _LoadState,
    workspace: WorkspaceDocument,
    excluded: frozenset[str],
    claimed: set[Path],
) -> list[ProjectEntry]:
    sources = _project_sources(state, workspace, excluded)
    projects: list[ProjectEntry] = []
    seen: dict[str, str] = {}
    line = workspace.line_for("projects")

    for explicit_name, directory in sources:
        try:
            rel_dir = state.rel(directory) or "."
        except ValueError:
            state.error(
                workspace.path,
                f"project path '{directory}' is outside the workspace",
                "project.missing_path",
                line,
            )
            continue
        if not directory.is_dir():
            state.error(
                workspace.path,
                f"project path '{rel_dir}' does not exist",
                "project.missing_path",
                line,
            )
            continue

        config_file = directory / PROJECT_CONFIG_NAME
        document: WorkspaceDocument | None = None
        if config_file.is_file():
            claimed.add(config_file)
            document = state.parse_yaml(config_file, DocumentKind.PROJECT)

        raw: Mapping[str, object] = document.raw if document is not None else {}
        name = explicit_name
        if name is None:
            name = _optional_str(raw.get("id")) or directory.name
            if not is_valid_name(name):
                state.error(
                    document.path if document is not None else workspace.path,
                    f"invalid project name '{name}' for {rel_dir}: names must not "
                    "contain ':' or whitespace",
                    "project.invalid_name",
                    line if document is None else document.line_for("id"),
                )
                continue
        elif not is_valid_name(name):
            # Already an error from the workspace document's structural checks.
            state.findings.append(
                Finding(
                    severity=Severity.INFO,
                    source_file=workspace.path,
                    message=f"project '{name}' ({rel_dir}) skipped: invalid project name",
                    code="project.skipped",
                    line_hint=line,
                )
            )
            continue

        if name in seen:
            state.error(
                workspace.path,
                f"duplicate project name '{name}' ({seen[name]} and {rel_dir})",
                "project.duplicate",
                line,
            )
            continue
        seen[name] = rel_dir

        projects.append(
            ProjectEntry(
                name=name,
                path=rel_dir,
                declared_dependencies=_depends_on(raw.get("dependsOn")),
                language=_optional_str(raw.get("language")),
                tags=_str_items(raw.get("tags")),
                config_path=document.path if document is not None else None,
            )
        )
    return projects


def _project_sources(
    state: _LoadState, workspace: WorkspaceDocument, excluded: frozenset[str]
) -> list[tuple[str | None, Path]]:
    root = state.root
    value = workspace.raw.get("projects")
    globs: list[str] = []
    named: dict[str, str] = {}

    if isinstance(value, Mapping) and value and set(value) <= _SOURCE_FORM_KEYS:
        globs.extend(_str_items(value.get("globs")))
        raw_sources = value.get("sources")
        if isinstance(raw_sources, Mapping):
            named.update(
                {str(key): item for key, item in raw_sources.items() if isinstance(item, str)}
            )
    elif isinstance(value, Mapping):
        named.update({str(key): item for key, item in value.items() if isinstance(item, str)})
    else:
        globs.extend(_str_items(value))

    out: list[tuple[str | None, Path]] = []
    for name in sorted(named):
        out.append((name, (root / named[name]).resolve()))

    named_dirs = {path for _, path in out}
    for directory in _expand_globs(state, workspace, globs, excluded):
        if directory not in named_dirs:
            out.append((None, directory))
    return out


def _expand_globs(
    state: _LoadState,
    workspace: WorkspaceDocument,
    patterns: Sequence[str],
    excluded: frozenset[str],
) -> list[Path]:
    root = state.root
    line = workspace.line_for("projects")
    included: set[Path] = set()
    negated: set[Path] = set()

    for pattern in patterns:
        negate = pattern.startswith("!")
        body = pattern[1:] if negate else pattern
        body = body.strip().removeprefix("./").rstrip("/")
        if not body:
            continue
        if _escapes_root(body):
            state.error(
                workspace.path,
                f"project pattern '{pattern}' must be a relative path inside the workspace",
                "workspace.projects",
                line,
            )
            continue

        for expanded in _expand_braces(body):
            if expanded == ".":
                matches: Iterable[Path] = (root,)
            elif _GLOB_CHARS & set(expanded):
                try:
                    matches = sorted(root.glob(expanded))
                except (ValueError, NotImplementedError) as exc:
                    state.error(
                        workspace.path,
                        f"invalid project pattern '{pattern}': {exc}",
                        "workspace.projects",
                        line,
                    )
                    continue
            else:
                matches = (root / expanded,)

            for match in matches:
                directory = match.parent if match.name == PROJECT_CONFIG_NAME else match
                if not negate and not directory.is_dir():
                    continue
                if _is_excluded(root, directory, excluded):
                    continue
                (negated if negate else included).add(directory.resolve())

    return sorted(included - negated)


def _escapes_root(pattern: str) -> bool:
    path = PurePosixPath(pattern)
    return path.is_absolute() or Path(pattern).is_absolute() or ".." in path.parts


def _expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives, which ``Path.glob`` treats literally."""
    start = pattern.find("{")
    if start == -1:
        return [pattern]

    depth = 0
    for end in range(start, len(pattern)):
        if pattern[end] == "{":
            depth += 1
        elif pattern[end] == "}":
            depth -= 1
            if depth == 0:
                break
    else:
        return [pattern]

    head, tail = pattern[:start], pattern[end + 1 :]
    expanded: list[str] = []
    for alternative in _split_alternatives(pattern[start + 1 : end]):
        for item in _expand_braces(head + alternative + tail):
            if item not in expanded:
                expanded.append(item)
    return expanded


def _split_alternatives(body: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for char in body:
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current += char
    parts.append(current)
    return parts


def _iter_project_configs(root: Path, excluded: frozenset[str]) -> list[Path]:
    found: list[Path] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in excluded)
        if PROJECT_CONFIG_NAME in filenames:
            found.append((Path(current) / PROJECT_CONFIG_NAME).resolve())
    return sorted(found)


def _is_excluded(root: Path, directory: Path, excluded: frozenset[str]) -> bool:
    try:
        parts = directory.resolve().relative_to(root).parts
    except ValueError:
        return True
    return any(part in excluded for part in parts)


def _depends_on(value: object) -> tuple[str, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return ()
    names: list[str] = []
    for item in value:
        if isinstance(item, Mapping):
            item = item.get("id")
        if isinstance(item, str) and item.strip() and item.strip() not in names:
            names.append(item.strip())
    return tuple(names)


def _str_items(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, Sequence) or isinstance(value, bytes):
        return ()
    return tuple(item for item in value if isinstance(item, str) and item.strip())


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _build_line_index(node: yaml.Node | None) -> dict[str, int]:
    index: dict[str, int] = {}
    if isinstance(node, yaml.MappingNode):
        _index_mapping(node, "", index, depth=1)
    return index


def _index_mapping(
    node: yaml.MappingNode, prefix: str, index: dict[str, int], *, depth: int
) -> None:
    for key_node, value_node in node.value:
        if not isinstance(key_node, yaml.ScalarNode):
            continue
        key = f"{prefix}.{key_node.value}" if prefix else str(key_node.value)
        index.setdefault(key, key_node.start_mark.line + 1)
        if depth < _LINE_INDEX_DEPTH and isinstance(value_node, yaml.MappingNode):
            _index_mapping(value_node, key, index, depth=depth + 1)


__all__ = [
    "EmptyWorkspaceError",
    "LoadResult",
    "NotAWorkspaceError",
    "load_workspace",
]
