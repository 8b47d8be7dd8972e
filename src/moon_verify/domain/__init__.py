"""Domain entities for workspace verification."""

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
    Verdict,
    WorkspaceDocument,
    parse_dependency_target,
)

__all__ = [
    "AllUpstream",
    "DependencyReference",
    "DocumentKind",
    "Explicit",
    "Finding",
    "InvalidTargetError",
    "MergeStrategy",
    "ProjectEntry",
    "SameProject",
    "Severity",
    "Tagged",
    "TaskDefinition",
    "Verdict",
    "WorkspaceDocument",
    "parse_dependency_target",
]
