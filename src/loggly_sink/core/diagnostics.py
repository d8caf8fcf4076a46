"""
Internal diagnostics for non-fatal faults.

The sink must never raise into the producer, so faults inside the delivery
path are reported here instead. Records are plain dicts handed to a
pluggable writer; the default writer forwards them to the stdlib
``loggly_sink.diagnostics`` logger as compact JSON.

Emission is gated by ``Settings.core.internal_logging_enabled``. The setting is
read once and cached; tests reset the cache with ``_reset_for_tests()``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import orjson

_logger = logging.getLogger("loggly_sink.diagnostics")

_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "WARN": logging.WARNING,
}

_internal_logging_enabled: bool | None = None


def _default_writer(record: dict[str, Any]) -> None:
    level = _LEVELS.get(str(record.get("level")), logging.WARNING)
    line = orjson.dumps(record, default=str).decode("utf-8")
    _logger.log(level, line)


_writer: Callable[[dict[str, Any]], None] = _default_writer


def _is_enabled() -> bool:
    global _internal_logging_enabled
    if _internal_logging_enabled is None:
        try:
            from .settings import Settings

            _internal_logging_enabled = bool(Settings().core.internal_logging_enabled)
        except Exception:
            _internal_logging_enabled = True
    return _internal_logging_enabled


def _emit(level: str, component: str, message: str, fields: dict[str, Any]) -> None:
    if not _is_enabled():
        return
    record: dict[str, Any] = {
        "ts": time.time(),
        "level": level,
        "component": component,
        "message": message,
    }
    record.update(fields)
    try:
        _writer(record)
    except Exception:
        # Diagnostics are fire-and-forget
        pass


def warn(component: str, message: str, **fields: Any) -> None:
    """Emit a WARN diagnostic record. Never raises."""
    _emit("WARN", component, message, fields)


def debug(component: str, message: str, **fields: Any) -> None:
    """Emit a DEBUG diagnostic record. Never raises."""
    _emit("DEBUG", component, message, fields)


def report_fault(message: str, **fields: Any) -> None:
    """Report an unhandled fault raised inside a sink."""
    warn("loggly-sink", message, **fields)


def set_writer_for_tests(writer: Callable[[dict[str, Any]], None]) -> None:
    global _writer
    _writer = writer


def _reset_for_tests() -> None:
    global _internal_logging_enabled, _writer
    _internal_logging_enabled = None
    _writer = _default_writer
