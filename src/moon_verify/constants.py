"""Stable constants shared across verifier stages."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Workspace layout.
WORKSPACE_MARKER_DIR: Final[str] = ".moon"
WORKSPACE_CONFIG: Final[PurePosixPath] = PurePosixPath(".moon/workspace.yml")
TOOLCHAIN_CONFIG: Final[PurePosixPath] = PurePosixPath(".moon/toolchain.yml")
INHERITED_TASKS_CONFIG: Final[PurePosixPath] = PurePosixPath(".moon/tasks.yml")
INHERITED_TASKS_DIR: Final[PurePosixPath] = PurePosixPath(".moon/tasks")
PROJECT_CONFIG_NAME: Final[str] = "moon.yml"
VERSION_PINS_FILE: Final[str] = ".prototools"

# Verifier settings file looked up in the workspace root.
SETTINGS_FILE: Final[str] = "moon-verify.toml"
ENV_PREFIX: Final[str] = "MOON_VERIFY_"

# Task option vocabularies understood by moon.
RUN_IN_CI_VALUES: Final[tuple[str, ...]] = ("always", "affected", "skip")
TASK_PRESETS: Final[tuple[str, ...]] = ("server", "watcher")
VCS_MANAGERS: Final[tuple[str, ...]] = ("git", "svn")
TOOLCHAIN_VERSIONED_SECTIONS: Final[tuple[str, ...]] = ("bun", "deno", "node", "python", "rust")

__all__ = [
    "ENV_PREFIX",
    "INHERITED_TASKS_CONFIG",
    "INHERITED_TASKS_DIR",
    "PROJECT_CONFIG_NAME",
    "RUN_IN_CI_VALUES",
    "SETTINGS_FILE",
    "TASK_PRESETS",
    "TOOLCHAIN_CONFIG",
    "TOOLCHAIN_VERSIONED_SECTIONS",
    "VCS_MANAGERS",
    "VERSION_PINS_FILE",
    "WORKSPACE_CONFIG",
    "WORKSPACE_MARKER_DIR",
]
