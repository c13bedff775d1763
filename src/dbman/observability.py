"""Structured logging helpers shared by every ``dbman`` layer.

Purpose
    Keep every log emission predictable and contextual. Library code stays
    silent by default; the CLI opts in through :func:`configure_logging`.

Contents
    - ``TRACE_ID``: context variable storing the active trace identifier.
    - ``get_logger``: returns the shared package logger (quiet by default).
    - ``bind_trace_id``: binds or clears the active trace identifier.
    - ``log_debug`` / ``log_info`` / ``log_warning`` / ``log_error``: emit
      structured entries via a single private emitter.
    - ``make_event``: convenience builder for structured event payloads.
    - ``configure_logging``: attach a Rich console handler for CLI runs.

System Integration
    Used by loaders, the normaliser, backend adapters and the composition root
    so all diagnostics carry the same trace metadata. Never pass secrets
    (passwords, URIs) as fields.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Final, Mapping

from rich.console import Console
from rich.logging import RichHandler

TRACE_ID: ContextVar[str | None] = ContextVar("dbman_trace_id", default=None)
"""Current trace identifier propagated through logging helpers."""

_LOGGER: Final[logging.Logger] = logging.getLogger("dbman")
_LOGGER.addHandler(logging.NullHandler())


def get_logger() -> logging.Logger:
    """Expose the package logger so applications may attach handlers."""

    return _LOGGER


def bind_trace_id(trace_id: str | None) -> None:
    """Bind or clear the active trace identifier.

    Examples
    --------
    >>> bind_trace_id('abc123')
    >>> TRACE_ID.get()
    'abc123'
    >>> bind_trace_id(None)
    >>> TRACE_ID.get() is None
    True
    """

    TRACE_ID.set(trace_id)


def log_debug(message: str, **fields: Any) -> None:
    """Emit a structured debug log entry that includes the trace context."""

    _emit(logging.DEBUG, message, fields)


def log_info(message: str, **fields: Any) -> None:
    """Emit a structured info log entry that includes the trace context."""

    _emit(logging.INFO, message, fields)


def log_warning(message: str, **fields: Any) -> None:
    """Emit a structured warning log entry that includes the trace context."""

    _emit(logging.WARNING, message, fields)


def log_error(message: str, **fields: Any) -> None:
    """Emit a structured error log entry that includes the trace context."""

    _emit(logging.ERROR, message, fields)


def make_event(
    layer: str,
    path: str | None,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a structured logging payload for configuration lifecycle events.

    Examples
    --------
    >>> make_event('user', None, {'connections': 3})
    {'layer': 'user', 'path': None, 'connections': 3}
    """

    event: dict[str, Any] = {"layer": layer, "path": path}
    if payload:
        event |= dict(payload)
    return event


class ContextFormatter(logging.Formatter):
    """Render the structured ``context`` fields after the event name.

    Examples
    --------
    >>> record = logging.LogRecord("dbman", logging.WARNING, __file__, 1, "connection_dropped", None, None)
    >>> record.context = {"trace_id": "t1", "name": "cache", "reason": "bad type"}
    >>> ContextFormatter().format(record)
    'connection_dropped name=cache reason=bad type'
    """

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = getattr(record, "context", None) or {}
        details = " ".join(
            f"{key}={value}" for key, value in context.items() if key != "trace_id" and value is not None
        )
        return f"{base} {details}" if details else base


def configure_logging(level: str | int = logging.WARNING, *, console: Console | None = None) -> logging.Handler:
    """Attach a Rich stderr handler to the package logger and return it.

    Why
        Warnings about skipped connections must reach the operator during CLI
        runs, while library consumers keep the silent default.

    Side Effects
        Replaces any handler previously installed by this function and sets
        the package logger level.
    """

    for handler in list(_LOGGER.handlers):
        if getattr(handler, "_dbman_cli", False):
            _LOGGER.removeHandler(handler)
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(ContextFormatter("%(message)s"))
    handler._dbman_cli = True  # type: ignore[attr-defined]
    _LOGGER.addHandler(handler)
    _LOGGER.setLevel(level.upper() if isinstance(level, str) else level)
    return handler


def _emit(level: int, message: str, fields: Mapping[str, Any]) -> None:
    """Send a log entry through the shared logger with contextual metadata."""

    _LOGGER.log(level, message, extra={"context": _with_trace(fields)})


def _with_trace(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Attach the current trace identifier to the provided structured fields."""

    context = {"trace_id": TRACE_ID.get()}
    context.update(fields)
    return context
