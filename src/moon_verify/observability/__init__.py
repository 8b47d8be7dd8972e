"""Public observability primitives: structured logging and correlation scopes."""

from moon_verify.observability.logging import (
    LoggingConfig,
    LoggingHandle,
    correlation_scope,
    get_correlation_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "LoggingHandle",
    "correlation_scope",
    "get_correlation_context",
    "setup_logging",
    "shutdown_logging",
]
