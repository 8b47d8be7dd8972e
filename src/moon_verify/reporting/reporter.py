"""
moon-verify — run-scoped finding aggregation and report rendering.

File: src/moon_verify/reporting/reporter.py
Last updated: 2026-10-18

Purpose
- Own the single finding collection of one verification run.
- Decide the verdict and process exit status in exactly one place.

What should be included in this file
- ``Reporter`` with counts, per-file grouping, verdict and exit code.
- Deterministic plain-text rendering built from ``rich.text.Text`` segments.
- Canonical JSON payload for ``--json``.

Functional requirements
- Findings render in the order stages produced them.
- Rendering never mutates the collection.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Final

from rich.style import Style
from rich.text import Text

from moon_verify.domain.models import Finding, JSONValue, Severity, Verdict

TAG_OK: Final[str] = "[OK]"

_TAGS: Final[dict[Severity, str]] = {
    Severity.ERROR: "[ERROR]",
    Severity.WARNING: "[WARN]",
    Severity.INFO: "[INFO]",
}

_S_ERROR = Style(color="red", bold=True)
_S_WARNING = Style(color="yellow", bold=True)
_S_OK = Style(color="green", bold=True)
_S_INFO = Style(color="blue")
_S_FIX = Style(dim=True)
_S_HEADER = Style(bold=True)

_TAG_STYLES: Final[dict[str, Style]] = {
    "[ERROR]": _S_ERROR,
    "[WARN]": _S_WARNING,
    TAG_OK: _S_OK,
    "[INFO]": _S_INFO,
}

_VERDICT_LINES: Final[dict[Verdict, tuple[str, Style]]] = {
    Verdict.PASS: ("Verification PASSED", _S_OK),
    Verdict.PASS_WITH_WARNINGS: ("Verification PASSED with warnings", _S_WARNING),
    Verdict.FAIL: ("Verification FAILED", _S_ERROR),
}


def tag_for(finding: Finding) -> str:
    if finding.passed:
        return TAG_OK
    return _TAGS[finding.severity]


class Reporter:
    """Finding collection for a single run; discarded once the report is emitted."""

    __slots__ = ("_target", "_findings", "_files_checked")

    def __init__(self, target: str, *, files_checked: int = 0) -> None:
        self._target = target
        self._findings: list[Finding] = []
        self._files_checked = files_checked

    @property
    def target(self) -> str:
        return self._target

    @property
    def files_checked(self) -> int:
        return self._files_checked

    @files_checked.setter
    def files_checked(self, value: int) -> None:
        if value < 0:
            raise ValueError("files_checked must be >= 0")
        self._files_checked = value

    @property
    def findings(self) -> tuple[Finding, ...]:
        return tuple(self._findings)

    def add(self, finding: Finding) -> None:
        self._findings.append(finding)

    def extend(self, findings: Iterable[Finding]) -> None:
        for finding in findings:
            self.add(finding)

    def counts(self) -> dict[str, int]:
        totals = {severity.value: 0 for severity in Severity}
        for finding in self._findings:
            totals[finding.severity.value] += 1
        return totals

    def by_source_file(self) -> dict[str, tuple[Finding, ...]]:
        """Group findings per file, files sorted, findings kept in production order."""
        grouped: dict[str, list[Finding]] = {}
        for finding in self._findings:
            grouped.setdefault(finding.source_file, []).append(finding)
        return {path: tuple(grouped[path]) for path in sorted(grouped)}

    def verdict(self) -> Verdict:
        counts = self.counts()
        if counts[Severity.ERROR.value]:
            return Verdict.FAIL
        if counts[Severity.WARNING.value]:
            return Verdict.PASS_WITH_WARNINGS
        return Verdict.PASS

    def exit_code(self) -> int:
        return 1 if self.verdict() is Verdict.FAIL else 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "target": self._target,
            "verdict": self.verdict().value,
            "exit_code": self.exit_code(),
            "files_checked": self._files_checked,
            "counts": dict(self.counts()),
            "findings": [finding.to_dict() for finding in self._findings],
        }

    def render_text(self) -> Text:
        """Build the full human-readable report as styled text."""

        out = Text()
        out.append(f"Verifying moon workspace: {self._target}\n", style=_S_HEADER)
        out.append("\n")
        for finding in self._findings:
            out.append_text(_finding_line(finding))

        counts = self.counts()
        out.append("\n")
        out.append("Summary\n", style=_S_HEADER)
        out.append(f"  Files checked: {self._files_checked}\n")
        out.append(f"  Errors:        {counts[Severity.ERROR.value]}\n")
        out.append(f"  Warnings:      {counts[Severity.WARNING.value]}\n")
        out.append(f"  Info:          {counts[Severity.INFO.value]}\n")

        grouped = {
            path: items
            for path, items in self.by_source_file().items()
            if any(item.severity is not Severity.INFO for item in items)
        }
        if grouped:
            out.append("\n")
            out.append("By file\n", style=_S_HEADER)
            for path, items in grouped.items():
                errors = sum(1 for item in items if item.severity is Severity.ERROR)
                warnings = sum(1 for item in items if item.severity is Severity.WARNING)
                out.append(f"  {path}: {errors} error(s), {warnings} warning(s)\n")

        line, style = _VERDICT_LINES[self.verdict()]
        out.append("\n")
        out.append(f"{line}\n", style=style)
        return out


def _finding_line(finding: Finding) -> Text:
    tag = tag_for(finding)
    line = Text()
    line.append(tag, style=_TAG_STYLES[tag])
    line.append(f" {finding.location}: {finding.message}\n")
    if finding.suggested_fix:
        line.append(f"        fix: {finding.suggested_fix}\n", style=_S_FIX)
    return line


__all__ = ["TAG_OK", "Reporter", "tag_for"]
