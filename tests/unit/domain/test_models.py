"""Unit tests for domain models: dependency target parsing and finding invariants."""

from __future__ import annotations

import pytest

from moon_verify.domain.models import (
    AllUpstream,
    DocumentKind,
    Explicit,
    Finding,
    InvalidTargetError,
    SameProject,
    Severity,
    Tagged,
    TaskDefinition,
    WorkspaceDocument,
    is_valid_name,
    parse_dependency_target,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("build", SameProject("build")),
        ("~:build", SameProject("build")),
        ("^:build", AllUpstream("build")),
        ("lib:build", Explicit("lib", "build")),
        ("#frontend:lint", Tagged("frontend", "lint")),
        ({"target": "lib:test"}, Explicit("lib", "test")),
        ("  web:dev  ", Explicit("web", "dev")),
    ],
)
def test_parse_dependency_target_variants(raw: object, expected: object) -> None:
    assert parse_dependency_target(raw) == expected


@pytest.mark.parametrize("raw", [":build", "", "   ", "lib:", "#:build", "a b:build", 3, None])
def test_parse_dependency_target_rejects_invalid_input(raw: object) -> None:
    with pytest.raises(InvalidTargetError):
        parse_dependency_target(raw)


def test_reference_target_round_trips_through_parser() -> None:
    for reference in (
        SameProject("build"),
        AllUpstream("build"),
        Explicit("lib", "build"),
        Tagged("ui", "build"),
    ):
        assert parse_dependency_target(reference.target) == reference


def test_finding_requires_message_and_positive_line() -> None:
    with pytest.raises(ValueError, match="message"):
        Finding(Severity.ERROR, "a.yml", "", "x.y")
    with pytest.raises(ValueError, match="line_hint"):
        Finding(Severity.ERROR, "a.yml", "boom", "x.y", line_hint=0)


def test_only_info_findings_may_mark_a_passed_check() -> None:
    assert Finding(Severity.INFO, "a.yml", "ok", "document.valid", passed=True).passed
    with pytest.raises(ValueError, match="passed"):
        Finding(Severity.WARNING, "a.yml", "meh", "x.y", passed=True)


def test_finding_location_and_dict_shape() -> None:
    finding = Finding("warning", "apps/web/moon.yml", "no inputs", "task.no_inputs", line_hint=4)

    assert finding.severity is Severity.WARNING
    assert finding.location == "apps/web/moon.yml:4"
    assert finding.to_dict() == {
        "severity": "warning",
        "code": "task.no_inputs",
        "source_file": "apps/web/moon.yml",
        "line_hint": 4,
        "message": "no inputs",
        "suggested_fix": None,
        "passed": False,
    }


def test_workspace_document_is_read_only_and_line_lookup_falls_back() -> None:
    raw = {"tasks": {"build": {"command": "tsc"}}}
    document = WorkspaceDocument(
        path="apps/web/moon.yml",
        kind=DocumentKind.PROJECT,
        raw=raw,
        line_index={"tasks": 1, "tasks.build": 2},
    )

    raw["extra"] = True
    assert "extra" not in document.raw
    with pytest.raises(TypeError):
        document.raw["tasks"] = {}  # type: ignore[index]

    assert document.line_for("tasks", "build", "deps") == 2
    assert document.line_for("tasks", "lint") == 1
    assert document.line_for("dependsOn") is None


def test_task_definition_naming_helpers() -> None:
    template = TaskDefinition(project="", name="lint", command="eslint", args=(".", "--fix"))
    local = TaskDefinition(project="web", name="build", command="tsc")

    assert template.qualified_name == ":lint"
    assert template.command_line == "eslint . --fix"
    assert local.qualified_name == "web:build"


@pytest.mark.parametrize(
    ("value", "expected"),
    [("web", True), ("@scope/pkg", True), ("", False), ("a:b", False), ("my app", False)],
)
def test_project_name_validity(value: str, expected: bool) -> None:
    assert is_valid_name(value) is expected
    assert is_valid_name(None) is False
