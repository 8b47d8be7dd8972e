"""
moon-verify — CLI subprocess smoke contracts

File: tests/integration/test_cli_smoke.py
Last updated: 2026-10-18

Purpose
- Enforce CLI behavior for `python -m moon_verify` as a real child process.
- Verify exit codes, stdout/stderr separation, JSON output shape, and colorless output.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"


def _run_cli(cwd: Path, *args: str, **extra_env: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    env.update(extra_env)
    return subprocess.run(
        [sys.executable, "-m", "moon_verify", *args],
        cwd=cwd,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _write(path: Path, contents: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")


def _seed_workspace(root: Path, *, deps: str = "[]") -> Path:
    _write(root / ".moon" / "workspace.yml", 'projects: ["apps/*"]\n')
    _write(
        root / "apps" / "web" / "moon.yml",
        f"tasks:\n  build:\n    command: tsc\n    deps: {deps}\n",
    )
    return root


@pytest.mark.integration
def test_warnings_only_exit_zero(tmp_path: Path) -> None:
    root = _seed_workspace(tmp_path)

    completed = _run_cli(root, "--skip-external")

    assert completed.returncode == 0, completed.stderr
    assert "Verifying moon workspace: ." in completed.stdout
    assert "[WARN] apps/web/moon.yml:2: Task web:build has no inputs defined" in completed.stdout
    assert "Verification PASSED with warnings" in completed.stdout


@pytest.mark.integration
def test_unresolved_dependency_exit_one(tmp_path: Path) -> None:
    root = _seed_workspace(tmp_path, deps='["nonexistent:build"]')

    completed = _run_cli(tmp_path, str(root), "--skip-external")

    assert completed.returncode == 1
    assert "unresolved dependency: nonexistent:build" in completed.stdout
    assert "Verification FAILED" in completed.stdout


@pytest.mark.integration
def test_not_a_workspace_exit_one(tmp_path: Path) -> None:
    completed = _run_cli(tmp_path, "--skip-external")

    assert completed.returncode == 1
    assert completed.stdout == ""
    assert "Is this a moon workspace?" in completed.stderr


@pytest.mark.integration
def test_invalid_settings_exit_two(tmp_path: Path) -> None:
    root = _seed_workspace(tmp_path)
    _write(root / "moon-verify.toml", "[external]\nunknown_key = true\n")

    completed = _run_cli(root)

    assert completed.returncode == 2
    assert completed.stderr.startswith("error: ")


@pytest.mark.integration
def test_invalid_env_override_exit_two(tmp_path: Path) -> None:
    root = _seed_workspace(tmp_path)

    completed = _run_cli(root, "--skip-external", MOON_VERIFY_EXTERNAL_TIMEOUT_SECONDS="soon")

    assert completed.returncode == 2


@pytest.mark.integration
def test_json_report_shape(tmp_path: Path) -> None:
    root = _seed_workspace(tmp_path)

    completed = _run_cli(root, "--json", "--skip-external")

    assert completed.returncode == 0
    payload = json.loads(completed.stdout)
    assert sorted(payload) == [
        "counts",
        "exit_code",
        "files_checked",
        "findings",
        "target",
        "verdict",
    ]
    assert payload["verdict"] == "pass_with_warnings"
    assert payload["counts"]["warning"] == 2
    assert {finding["code"] for finding in payload["findings"]} >= {
        "task.no_inputs",
        "task.no_outputs",
    }


@pytest.mark.integration
def test_no_color_output_has_no_escape_codes(tmp_path: Path) -> None:
    root = _seed_workspace(tmp_path, deps='["nonexistent:build"]')

    flagged = _run_cli(root, "--no-color", "--skip-external")
    via_env = _run_cli(root, "--skip-external", NO_COLOR="1")

    assert "\x1b[" not in flagged.stdout
    assert "\x1b[" not in via_env.stdout
    assert flagged.stdout == via_env.stdout


@pytest.mark.integration
def test_missing_external_binary_does_not_fail(tmp_path: Path) -> None:
    root = _seed_workspace(tmp_path)

    completed = _run_cli(root, "--moon-binary", "moon-verify-absent-binary", "--no-color")

    assert completed.returncode == 0
    assert (
        "[INFO] moon check: external check skipped, moon-verify-absent-binary not installed"
        in completed.stdout
    )


@pytest.mark.integration
def test_json_log_lines_on_stderr(tmp_path: Path) -> None:
    root = _seed_workspace(tmp_path)

    completed = _run_cli(
        root, "--skip-external", "--json", "--log-level", "INFO", "--log-format", "json"
    )

    assert completed.returncode == 0
    json.loads(completed.stdout)
    events = [json.loads(line) for line in completed.stderr.splitlines() if line.strip()]
    assert events
    assert any(event["message"] == "verification finished" for event in events)
    assert all(event["workspace"] == "." for event in events if "workspace" in event)
