"""Bridge to the authoritative ``moon`` binary for a final ground-truth check."""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from moon_verify.domain.models import Finding, Severity

logger = logging.getLogger(__name__)

_TAIL_LINES: Final[int] = 20
_SOURCE: Final[str] = "moon check"


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized outcome of one external command."""

    argv: tuple[str, ...]
    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool
    duration_ms: float

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.returncode == 0


Runner = Callable[[Sequence[str], Path, float], CommandResult]
Which = Callable[[str], str | None]


def run_command(argv: Sequence[str], cwd: Path, timeout_seconds: float) -> CommandResult:
    """Run ``argv`` in ``cwd`` with a hard timeout; output is captured, never streamed."""

    if timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be > 0")

    started = time.perf_counter()
    try:
        completed = subprocess.run(
            list(argv),
            cwd=cwd,
            check=False,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired as exc:
        return CommandResult(
            argv=tuple(argv),
            returncode=None,
            stdout=_coerce_timeout_stream(exc.stdout),
            stderr=_coerce_timeout_stream(exc.stderr),
            timed_out=True,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

    return CommandResult(
        argv=tuple(argv),
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
        timed_out=False,
        duration_ms=(time.perf_counter() - started) * 1000.0,
    )


def run_external_check(
    root: str | Path,
    *,
    settings: Mapping[str, Any],
    runner: Runner | None = None,
    which: Which = shutil.which,
) -> list[Finding]:
    """Ask the external tool to validate the workspace and translate its verdict."""

    external = settings["external"]
    if not external["enabled"]:
        logger.info("external check disabled")
        return []

    binary = str(external["binary"])
    executable = which(binary)
    if executable is None:
        logger.info("external tool %r not found on PATH", binary)
        return [
            Finding(
                severity=Severity.INFO,
                source_file=_SOURCE,
                message=f"external check skipped, {binary} not installed",
                code="external.skipped",
                suggested_fix=f"install {binary} to run its authoritative validation",
            )
        ]

    argv = (executable, *(str(arg) for arg in external["args"]))
    timeout = float(external["timeout_seconds"])
    run = runner if runner is not None else run_command
    logger.info("running external check", extra={"argv": list(argv), "timeout": timeout})

    try:
        result = run(argv, Path(root), timeout)
    except OSError as exc:
        logger.warning("unable to launch %s: %s", binary, exc)
        return [
            Finding(
                severity=Severity.WARNING,
                source_file=_SOURCE,
                message=f"external check could not run: {exc}",
                code="external.error",
            )
        ]

    if result.timed_out:
        return [
            Finding(
                severity=Severity.WARNING,
                source_file=_SOURCE,
                message=f"external check timed out after {timeout:g}s",
                code="external.timeout",
                suggested_fix="raise external.timeout_seconds or pass --external-timeout",
            )
        ]

    if result.succeeded:
        return [
            Finding(
                severity=Severity.INFO,
                source_file=_SOURCE,
                message=f"{binary} check passed",
                code="external.passed",
                passed=True,
            )
        ]

    for line in _tail(result.stdout, result.stderr):
        logger.debug("external: %s", line)
    detail = _tail(result.stderr, result.stdout, limit=1)
    suffix = f": {detail[0]}" if detail else ""
    return [
        Finding(
            severity=Severity.ERROR,
            source_file=_SOURCE,
            message=f"{binary} check failed with exit code {result.returncode}{suffix}",
            code="external.failed",
            suggested_fix=f"run '{' '.join([binary, *result.argv[1:]])}' for full output",
        )
    ]


def _tail(*streams: str, limit: int = _TAIL_LINES) -> list[str]:
    for stream in streams:
        lines = [line for line in stream.splitlines() if line.strip()]
        if lines:
            return lines[-limit:]
    return []


def _coerce_timeout_stream(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


__all__ = ["CommandResult", "Runner", "run_command", "run_external_check"]
