"""Structured logging setup with JSON-lines or text output on stderr."""

from __future__ import annotations

import contextvars
import json
import logging
import math
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, Literal, TextIO

from moon_verify.domain.models import JSONValue

_DEFAULT_LOGGER_NAME: Final[str] = "moon_verify"

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "moon_verify_correlation", default=()
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: LoggingHandle | None = None

LogFormat = Literal["json", "text"]


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for one verifier process's log sinks."""

    level: int | str = "WARNING"
    log_format: LogFormat = "text"
    log_file: Path | str | None = None
    logger_name: str = _DEFAULT_LOGGER_NAME
    stream: TextIO | None = None

    @classmethod
    def from_settings(
        cls, observability: Mapping[str, object], *, level: int | str | None = None
    ) -> LoggingConfig:
        raw_format = observability.get("log_format", "text")
        raw_file = observability.get("log_file")
        raw_level = observability.get("log_level", "WARNING")
        return cls(
            level=level if level is not None else str(raw_level),
            log_format="json" if raw_format == "json" else "text",
            log_file=raw_file if isinstance(raw_file, str) else None,
        )


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in sorted(get_correlation_context().items()):
            event[key] = value

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = extras

        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    """Single-line human format; correlation and extra fields trail as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = dict(get_correlation_context())
        for key, value in _extract_extra_fields(record).items():
            pairs[key] = value if isinstance(value, str) else json.dumps(value, sort_keys=True)
        if not pairs:
            return line
        tail = " ".join(f"{key}={pairs[key]}" for key in sorted(pairs))
        first, _, rest = line.partition("\n")
        return f"{first} [{tail}]" + (f"\n{rest}" if rest else "")


class LoggingHandle:
    """Runtime handle for an active logging setup."""

    def __init__(self, *, logger: logging.Logger, handlers: tuple[logging.Handler, ...]) -> None:
        self.logger = logger
        self._handlers = handlers
        self._is_shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def shutdown(self) -> None:
        if self._is_shutdown:
            return
        for handler in self._handlers:
            handler.flush()
            self.logger.removeHandler(handler)
            handler.close()
        self._is_shutdown = True


def setup_logging(config: LoggingConfig) -> LoggingHandle:
    """Attach fresh sinks to the package logger, replacing any earlier setup."""
    global _ACTIVE_HANDLE

    level = _parse_log_level(config.level)
    formatter: logging.Formatter = (
        _JsonLineFormatter() if config.log_format == "json" else _TextFormatter()
    )

    stream_handler = logging.StreamHandler(config.stream if config.stream else sys.stderr)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [stream_handler]

    if config.log_file is not None:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(_JsonLineFormatter())
        handlers.append(file_handler)

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False

    with _ACTIVE_HANDLE_LOCK:
        if _ACTIVE_HANDLE is not None:
            _ACTIVE_HANDLE.shutdown()
        for existing in list(logger.handlers):
            logger.removeHandler(existing)
            existing.close()
        for handler in handlers:
            logger.addHandler(handler)
        handle = LoggingHandle(logger=logger, handlers=tuple(handlers))
        _ACTIVE_HANDLE = handle
    return handle


def shutdown_logging(handle: LoggingHandle | None = None) -> None:
    """Flush and close sinks of ``handle`` (or the active setup)."""
    global _ACTIVE_HANDLE

    with _ACTIVE_HANDLE_LOCK:
        resolved = handle if handle is not None else _ACTIVE_HANDLE
        if resolved is None:
            return
        resolved.shutdown()
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None


def get_correlation_context() -> dict[str, str]:
    """Return the current correlation context as a plain dictionary."""
    return dict(_CORRELATION_CONTEXT.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields for log records in scope."""
    state = get_correlation_context()
    for key, value in fields.items():
        if not key.strip():
            raise ValueError("correlation keys must be non-empty")
        if value is None:
            state.pop(key, None)
        else:
            state[key] = value
    token = _CORRELATION_CONTEXT.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION_CONTEXT.reset(token)


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, bool):
        raise ValueError("log level must be an int or level name")
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {value!r}")
    return resolved


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS or key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_json_value(item) for item in value), key=repr)
    return repr(value)


__all__ = [
    "LoggingConfig",
    "LoggingHandle",
    "correlation_scope",
    "get_correlation_context",
    "setup_logging",
    "shutdown_logging",
]
