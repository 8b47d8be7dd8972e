"""Unit tests for the staged verification pipeline."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from moon_verify.config.schema import default_settings
from moon_verify.domain.models import Severity, Verdict
from moon_verify.pipeline import CancellationToken, VerificationCancelled, verify_workspace
from moon_verify.verification.external import CommandResult
from moon_verify.workspace.loader import EmptyWorkspaceError, NotAWorkspaceError


def _write(path: Path, contents: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")


def _settings(*, external: bool = False) -> dict[str, Any]:
    settings = default_settings()
    settings["external"]["enabled"] = external
    settings["external"]["binary"] = sys.executable
    return settings


def _workspace(root: Path) -> Path:
    _write(root / ".moon" / "workspace.yml", "projects: ['apps/*']\nvcs:\n  manager: git\n")
    _write(root / ".moon" / "toolchain.yml", "node:\n  packageManager: pnpm\n")
    _write(
        root / "apps" / "web" / "moon.yml",
        "tasks:\n"
        "  build:\n"
        "    command: tsc\n"
        "    deps: ['~:codegen']\n",
    )
    return root


def test_stages_contribute_findings_in_order(tmp_path: Path) -> None:
    reporter = verify_workspace(_workspace(tmp_path), settings=_settings())

    assert reporter.files_checked == 3
    assert [f.code for f in reporter.findings if f.severity is not Severity.INFO] == [
        "workspace.vcs.default_branch",
        "toolchain.version",
        "dependency.unresolved",
        "task.no_inputs",
        "task.no_outputs",
    ]
    assert reporter.verdict() is Verdict.FAIL
    assert reporter.exit_code() == 1


def test_runs_are_deterministic(tmp_path: Path) -> None:
    root = _workspace(tmp_path)

    first = verify_workspace(root, settings=_settings())
    second = verify_workspace(root, settings=_settings())

    assert first.to_dict() == second.to_dict()
    assert first.render_text().plain == second.render_text().plain


def test_external_stage_runs_last(tmp_path: Path) -> None:
    calls: list[tuple[str, ...]] = []

    def runner(argv: Sequence[str], cwd: Path, timeout: float) -> CommandResult:
        calls.append(tuple(argv))
        return CommandResult(tuple(argv), 0, "", "", False, 1.0)

    reporter = verify_workspace(
        _workspace(tmp_path), settings=_settings(external=True), external_runner=runner
    )

    assert len(calls) == 1
    assert calls[0][1:] == ("check", "--all")
    assert reporter.findings[-1].code == "external.passed"
    assert reporter.findings[-1].passed is True


def test_cancelled_token_stops_before_loading(tmp_path: Path) -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(VerificationCancelled, match="before load"):
        verify_workspace(_workspace(tmp_path), settings=_settings(), cancel=token)
    assert token.cancelled


def test_cancellation_is_observed_at_the_next_stage_boundary(tmp_path: Path) -> None:
    token = CancellationToken()

    def runner(argv: Sequence[str], cwd: Path, timeout: float) -> CommandResult:
        token.cancel()
        return CommandResult(tuple(argv), 0, "", "", False, 1.0)

    with pytest.raises(VerificationCancelled, match="before report"):
        verify_workspace(
            _workspace(tmp_path),
            settings=_settings(external=True),
            cancel=token,
            external_runner=runner,
        )


def test_fatal_loader_errors_propagate(tmp_path: Path) -> None:
    with pytest.raises(NotAWorkspaceError):
        verify_workspace(tmp_path, settings=_settings())

    (tmp_path / ".moon").mkdir()
    with pytest.raises(EmptyWorkspaceError):
        verify_workspace(tmp_path, settings=_settings())


@pytest.mark.parametrize(
    ("workspace_yml", "code"),
    [
        ("projects: ['/opt/*']\n", "workspace.projects"),
        ("projects:\n  '': apps/web\n", "workspace.projects.name"),
    ],
)
def test_unusable_project_entries_are_reported_not_raised(
    tmp_path: Path, workspace_yml: str, code: str
) -> None:
    _write(tmp_path / ".moon" / "workspace.yml", workspace_yml)
    _write(tmp_path / "apps" / "web" / "moon.yml", "tasks:\n  build:\n    command: tsc\n")

    reporter = verify_workspace(tmp_path, settings=_settings())

    errors = [f.code for f in reporter.findings if f.severity is Severity.ERROR]
    assert errors == [code]
    assert reporter.exit_code() == 1
