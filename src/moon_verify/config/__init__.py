"""
moon-verify settings package public API.

File: src/moon_verify/config/__init__.py
Last updated: 2026-10-18

Purpose
- Export settings loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``moon-verify.toml`` + ``MOON_VERIFY_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from moon_verify.config.loader import (
    SettingsLoadError,
    dump_effective_settings,
    load_settings,
    normalize_paths,
)
from moon_verify.config.schema import (
    DEFAULT_SETTINGS,
    PATH_FIELDS,
    SETTINGS_SCHEMA_VERSION,
    SettingsValidationError,
    SettingsValidationIssue,
    SettingsValidationResult,
    VerifierSettings,
    assert_valid_settings,
    default_settings,
    merge_settings,
    migration_guidance,
    validate_settings,
)

__all__ = [
    "DEFAULT_SETTINGS",
    "PATH_FIELDS",
    "SETTINGS_SCHEMA_VERSION",
    "SettingsLoadError",
    "SettingsValidationError",
    "SettingsValidationIssue",
    "SettingsValidationResult",
    "VerifierSettings",
    "assert_valid_settings",
    "default_settings",
    "dump_effective_settings",
    "load_settings",
    "merge_settings",
    "migration_guidance",
    "normalize_paths",
    "validate_settings",
]
