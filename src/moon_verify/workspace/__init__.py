"""Workspace discovery: locate, parse and index a moon workspace's configuration files."""

from moon_verify.workspace.loader import (
    EmptyWorkspaceError,
    LoadResult,
    NotAWorkspaceError,
    load_workspace,
)

__all__ = ["EmptyWorkspaceError", "LoadResult", "NotAWorkspaceError", "load_workspace"]
