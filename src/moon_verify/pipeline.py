"""
moon-verify — verification pipeline.

File: src/moon_verify/pipeline.py
Last updated: 2026-10-18

Purpose
- Run Loader -> Validator -> Builder -> Checker -> Bridge in strict order.
- Collect every stage's findings into one run-scoped ``Reporter``.

Functional requirements
- Cancellation is observed between stages only; a cancelled run yields no report.
- Fatal loader errors propagate to the caller unchanged.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from moon_verify.config.schema import default_settings
from moon_verify.observability.logging import correlation_scope
from moon_verify.planning.builder import build_task_graph
from moon_verify.reporting.reporter import Reporter
from moon_verify.validation.structural import validate_documents
from moon_verify.verification.external import Runner, run_external_check
from moon_verify.verification.graph_checker import Heuristics, check_graph
from moon_verify.workspace.loader import load_workspace

logger = logging.getLogger(__name__)


class VerificationCancelled(RuntimeError):
    """Raised when a run is cancelled between stages; partial findings are dropped."""


class CancellationToken:
    """Thread-safe flag a caller can set to stop a run at the next stage boundary."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise VerificationCancelled(f"verification cancelled before {stage}")


def verify_workspace(
    root: str | Path,
    *,
    settings: Mapping[str, Any] | None = None,
    cancel: CancellationToken | None = None,
    external_runner: Runner | None = None,
) -> Reporter:
    """Verify the workspace at ``root`` and return the populated reporter."""

    effective = settings if settings is not None else default_settings()
    token = cancel if cancel is not None else CancellationToken()
    target = str(root)

    with correlation_scope(workspace=target):
        token.raise_if_cancelled("load")
        with correlation_scope(stage="load"):
            loaded = load_workspace(root, settings=effective)
        reporter = Reporter(target, files_checked=loaded.files_checked)
        reporter.extend(loaded.findings)

        token.raise_if_cancelled("validate")
        with correlation_scope(stage="validate"):
            structural = validate_documents(loaded.documents)
            logger.info("structural validation complete", extra={"findings": len(structural)})
        reporter.extend(structural)

        token.raise_if_cancelled("build")
        with correlation_scope(stage="build"):
            built = build_task_graph(loaded)
        reporter.extend(built.findings)

        token.raise_if_cancelled("check")
        with correlation_scope(stage="check"):
            reporter.extend(check_graph(built, heuristics=Heuristics.from_settings(effective)))

        token.raise_if_cancelled("external")
        with correlation_scope(stage="external"):
            reporter.extend(
                run_external_check(loaded.root, settings=effective, runner=external_runner)
            )

        token.raise_if_cancelled("report")
        logger.info(
            "verification finished",
            extra={"verdict": reporter.verdict().value, "counts": reporter.counts()},
        )
    return reporter


__all__ = ["CancellationToken", "VerificationCancelled", "verify_workspace"]
