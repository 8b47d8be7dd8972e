"""Unit tests for the external ``moon check`` bridge."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from moon_verify.config.schema import default_settings
from moon_verify.domain.models import Severity
from moon_verify.verification.external import CommandResult, run_command, run_external_check


def _settings(**external: object) -> dict[str, Any]:
    settings = default_settings()
    settings["external"].update(external)
    return settings


def _found(binary: str) -> str | None:
    return f"/usr/local/bin/{binary}"


def _missing(binary: str) -> str | None:
    return None


class _FakeRunner:
    def __init__(self, result: CommandResult | Exception) -> None:
        self._result = result
        self.calls: list[tuple[tuple[str, ...], Path, float]] = []

    def __call__(self, argv: Sequence[str], cwd: Path, timeout: float) -> CommandResult:
        self.calls.append((tuple(argv), cwd, timeout))
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


def _result(
    returncode: int | None, *, stdout: str = "", stderr: str = "", timed_out: bool = False
) -> CommandResult:
    return CommandResult(
        argv=("/usr/local/bin/moon", "check", "--all"),
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
        duration_ms=1.0,
    )


def test_disabled_check_produces_nothing(tmp_path: Path) -> None:
    runner = _FakeRunner(_result(0))

    findings = run_external_check(
        tmp_path, settings=_settings(enabled=False), runner=runner, which=_found
    )

    assert findings == []
    assert runner.calls == []


def test_missing_binary_is_a_single_info_skip(tmp_path: Path) -> None:
    runner = _FakeRunner(_result(0))

    findings = run_external_check(tmp_path, settings=_settings(), runner=runner, which=_missing)

    assert len(findings) == 1
    assert findings[0].severity is Severity.INFO
    assert findings[0].code == "external.skipped"
    assert findings[0].message == "external check skipped, moon not installed"
    assert findings[0].source_file == "moon check"
    assert runner.calls == []


def test_success_is_a_passing_info(tmp_path: Path) -> None:
    runner = _FakeRunner(_result(0, stdout="all good\n"))

    findings = run_external_check(
        tmp_path, settings=_settings(timeout_seconds=12.5), runner=runner, which=_found
    )

    assert [(f.severity, f.code, f.passed, f.message) for f in findings] == [
        (Severity.INFO, "external.passed", True, "moon check passed")
    ]
    assert runner.calls == [(("/usr/local/bin/moon", "check", "--all"), tmp_path, 12.5)]


def test_nonzero_exit_is_an_error_with_the_last_stderr_line(tmp_path: Path) -> None:
    runner = _FakeRunner(_result(2, stdout="checking\n", stderr="first\nproject web invalid\n\n"))

    findings = run_external_check(tmp_path, settings=_settings(), runner=runner, which=_found)

    assert len(findings) == 1
    assert findings[0].severity is Severity.ERROR
    assert findings[0].code == "external.failed"
    assert findings[0].message == "moon check failed with exit code 2: project web invalid"
    assert findings[0].suggested_fix == "run 'moon check --all' for full output"


def test_nonzero_exit_falls_back_to_stdout(tmp_path: Path) -> None:
    runner = _FakeRunner(_result(1, stdout="error: bad config\n"))

    findings = run_external_check(tmp_path, settings=_settings(), runner=runner, which=_found)

    assert findings[0].message == "moon check failed with exit code 1: error: bad config"


def test_timeout_is_a_warning(tmp_path: Path) -> None:
    runner = _FakeRunner(_result(None, timed_out=True))

    findings = run_external_check(
        tmp_path, settings=_settings(timeout_seconds=5.0), runner=runner, which=_found
    )

    assert [(f.severity, f.code, f.message) for f in findings] == [
        (Severity.WARNING, "external.timeout", "external check timed out after 5s")
    ]


def test_launch_failure_is_a_warning(tmp_path: Path) -> None:
    runner = _FakeRunner(PermissionError("permission denied"))

    findings = run_external_check(tmp_path, settings=_settings(), runner=runner, which=_found)

    assert [(f.severity, f.code) for f in findings] == [(Severity.WARNING, "external.error")]
    assert "permission denied" in findings[0].message


def test_configured_binary_and_args_are_used(tmp_path: Path) -> None:
    runner = _FakeRunner(_result(0))

    findings = run_external_check(
        tmp_path,
        settings=_settings(binary="moonx", args=["check", "web"]),
        runner=runner,
        which=_found,
    )

    assert runner.calls[0][0] == ("/usr/local/bin/moonx", "check", "web")
    assert findings[0].message == "moonx check passed"


def test_run_command_captures_output(tmp_path: Path) -> None:
    result = run_command([sys.executable, "-c", "print('ok')"], tmp_path, 30.0)

    assert result.succeeded
    assert result.returncode == 0
    assert result.stdout.strip() == "ok"
    assert result.timed_out is False


def test_run_command_replaces_undecodable_output(tmp_path: Path) -> None:
    script = "import sys; sys.stdout.buffer.write(b'bad \\xff byte'); sys.exit(1)"

    result = run_command([sys.executable, "-c", script], tmp_path, 30.0)

    assert result.returncode == 1
    assert result.stdout == "bad \ufffd byte"


def test_run_command_reports_timeouts(tmp_path: Path) -> None:
    result = run_command([sys.executable, "-c", "import time; time.sleep(10)"], tmp_path, 0.5)

    assert result.timed_out is True
    assert result.returncode is None
    assert not result.succeeded


def test_run_command_rejects_non_positive_timeout(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        run_command(["true"], tmp_path, 0)
