"""
moon-verify — verifier settings schema and validation.

File: src/moon_verify/config/schema.py
Last updated: 2026-10-18

Purpose
- Define authoritative verifier defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers used by the loader.

Functional requirements
- Validate settings payloads and return structured errors (field path + message).
- Heuristic thresholds are policy: every lexicon and glob list is overridable.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

SETTINGS_SCHEMA_VERSION: Final[int] = 1

# Settings paths that are normalized relative to the settings file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("observability", "log_file"),)


class MetaSettings(TypedDict):
    schema_version: int


class HeuristicSettings(TypedDict):
    build_lexicon: list[str]
    dev_lexicon: list[str]
    broad_globs: list[str]


class DiscoverySettings(TypedDict):
    exclude_dirs: list[str]
    scan_unmatched: bool


class ExternalSettings(TypedDict):
    enabled: bool
    binary: str
    args: list[str]
    timeout_seconds: float


class ObservabilitySettings(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_file: NotRequired[str]


class VerifierSettings(TypedDict):
    meta: MetaSettings
    heuristics: HeuristicSettings
    discovery: DiscoverySettings
    external: ExternalSettings
    observability: ObservabilitySettings


DEFAULT_SETTINGS: Final[VerifierSettings] = {
    "meta": {
        "schema_version": SETTINGS_SCHEMA_VERSION,
    },
    "heuristics": {
        "build_lexicon": ["build", "bundle", "compile", "dist", "package"],
        "dev_lexicon": ["dev", "serve", "start", "watch"],
        "broad_globs": ["**", "**/*", "**/**"],
    },
    "discovery": {
        "exclude_dirs": [".git", "node_modules"],
        "scan_unmatched": True,
    },
    "external": {
        "enabled": True,
        "binary": "moon",
        "args": ["check", "--all"],
        "timeout_seconds": 60.0,
    },
    "observability": {
        "log_level": "WARNING",
        "log_format": "text",
    },
}


@dataclass(frozen=True, slots=True)
class SettingsValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class SettingsValidationResult:
    settings: dict[str, Any] | None
    issues: tuple[SettingsValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.settings is not None and not self.issues


class SettingsValidationError(ValueError):
    """Raised when strict settings validation fails."""

    def __init__(self, issues: Sequence[SettingsValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid verifier settings:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[SettingsValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(SettingsValidationIssue(path=path, message=message))

    def items(self) -> tuple[SettingsValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_settings() -> VerifierSettings:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_SETTINGS)


def migration_guidance(found_version: int) -> str:
    if found_version < SETTINGS_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported "
            f"{SETTINGS_SCHEMA_VERSION}; upgrade moon-verify.toml to the current schema"
        )
    if found_version > SETTINGS_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported "
            f"{SETTINGS_SCHEMA_VERSION}; upgrade moon-verify"
        )
    return "schema version is current"


def merge_settings(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``; lists are replaced."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_settings(settings: Mapping[str, object] | object) -> SettingsValidationResult:
    """Validate settings and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(settings, "<root>", issues)
    if root is None:
        return SettingsValidationResult(settings=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return SettingsValidationResult(settings=None, issues=issues.items())
    return SettingsValidationResult(settings=normalized, issues=())


def assert_valid_settings(settings: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate settings and raise ``SettingsValidationError`` on failure."""

    result = validate_settings(settings)
    if result.settings is None:
        raise SettingsValidationError(result.issues)
    return result.settings


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    allowed = {"meta", "heuristics", "discovery", "external", "observability"}
    _reject_unknown_keys(payload, allowed, "", issues)
    _require_keys(payload, allowed, "", issues)

    out: dict[str, Any] = {}
    validators = {
        "meta": _validate_meta,
        "heuristics": _validate_heuristics,
        "discovery": _validate_discovery,
        "external": _validate_external,
        "observability": _validate_observability,
    }
    for section_name in sorted(validators):
        if section_name not in payload:
            continue
        section = _as_object(payload[section_name], section_name, issues)
        if section is None:
            continue
        out[section_name] = validators[section_name](section, section_name, issues)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        version = _as_int(payload["schema_version"], _join(path, "schema_version"), issues)
        if version is not None:
            if version != SETTINGS_SCHEMA_VERSION:
                issues.add(_join(path, "schema_version"), migration_guidance(version))
            out["schema_version"] = version
    return out


def _validate_heuristics(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"build_lexicon", "dev_lexicon", "broad_globs"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key not in payload:
            continue
        parsed = _as_str_list(payload[key], _join(path, key), issues)
        if parsed is None:
            continue
        if key.endswith("_lexicon"):
            parsed = [item.lower() for item in parsed]
        out[key] = parsed
    return out


def _validate_discovery(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"exclude_dirs", "scan_unmatched"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "exclude_dirs" in payload:
        parsed_dirs = _as_str_list(payload["exclude_dirs"], _join(path, "exclude_dirs"), issues)
        if parsed_dirs is not None:
            for index, item in enumerate(parsed_dirs):
                if "/" in item or "\\" in item:
                    issues.add(f"{_join(path, 'exclude_dirs')}[{index}]", "must be a bare name")
            out["exclude_dirs"] = parsed_dirs
    if "scan_unmatched" in payload:
        parsed_scan = _as_bool(payload["scan_unmatched"], _join(path, "scan_unmatched"), issues)
        if parsed_scan is not None:
            out["scan_unmatched"] = parsed_scan
    return out


def _validate_external(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"enabled", "binary", "args", "timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "enabled" in payload:
        parsed_enabled = _as_bool(payload["enabled"], _join(path, "enabled"), issues)
        if parsed_enabled is not None:
            out["enabled"] = parsed_enabled
    if "binary" in payload:
        parsed_binary = _as_str(payload["binary"], _join(path, "binary"), issues)
        if parsed_binary is not None:
            out["binary"] = parsed_binary
    if "args" in payload:
        parsed_args = _as_str_list(
            payload["args"], _join(path, "args"), issues, allow_empty=True
        )
        if parsed_args is not None:
            out["args"] = parsed_args
    if "timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=0.001
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "log_file"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, {"log_level", "log_format"}, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_format" in payload:
        parsed_format = _as_enum(
            payload["log_format"],
            _join(path, "log_format"),
            issues,
            allowed_values=("json", "text"),
        )
        if parsed_format is not None:
            out["log_format"] = parsed_format
    if "log_file" in payload:
        parsed_file = _as_str(payload["log_file"], _join(path, "log_file"), issues)
        if parsed_file is not None:
            if "\x00" in parsed_file:
                issues.add(_join(path, "log_file"), "must not contain NUL bytes")
            else:
                out["log_file"] = parsed_file
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_str_list(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allow_empty: bool = False,
) -> list[str] | None:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is not None and parsed not in out:
            out.append(parsed)
    if not out and not allow_empty:
        issues.add(path, "must not be empty")
        return None
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(value: object, path: str, issues: _IssueCollector) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


__all__ = [
    "DEFAULT_SETTINGS",
    "PATH_FIELDS",
    "SETTINGS_SCHEMA_VERSION",
    "SettingsValidationError",
    "SettingsValidationIssue",
    "SettingsValidationResult",
    "VerifierSettings",
    "assert_valid_settings",
    "default_settings",
    "merge_settings",
    "migration_guidance",
    "validate_settings",
]
