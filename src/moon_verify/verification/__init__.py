"""Graph checks and the external ``moon check`` bridge."""

from moon_verify.verification.external import (
    CommandResult,
    Runner,
    run_command,
    run_external_check,
)
from moon_verify.verification.graph_checker import (
    Heuristics,
    check_graph,
    check_task,
    is_templated,
)

__all__ = [
    "CommandResult",
    "Heuristics",
    "Runner",
    "check_graph",
    "check_task",
    "is_templated",
    "run_command",
    "run_external_check",
]
