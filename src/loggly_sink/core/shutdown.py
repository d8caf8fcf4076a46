"""Process-exit fallback for sinks that were never disposed.

This module provides:
- WeakSet-based sink registration to avoid keeping sinks alive
- An atexit handler that flushes (bounded) and disposes every live sink

The handler is best-effort: it never raises and never waits longer than the
configured per-sink timeout.
"""

from __future__ import annotations

import atexit
import weakref
from typing import Any

# Module-level state
_shutdown_in_progress: bool = False
_registered_sinks: weakref.WeakSet[Any] = weakref.WeakSet()


def _get_shutdown_settings() -> dict[str, Any]:
    """Get shutdown settings from Settings, with fallback defaults."""
    try:
        from .settings import Settings

        settings = Settings()
        return {
            "atexit_flush_enabled": settings.core.atexit_flush_enabled,
            "atexit_flush_timeout_seconds": settings.core.atexit_flush_timeout_seconds,
        }
    except Exception:  # pragma: no cover - defensive fallback
        return {
            "atexit_flush_enabled": True,
            "atexit_flush_timeout_seconds": 2.0,
        }


def register_sink(sink: Any) -> None:
    """Register a sink for disposal at interpreter exit."""
    _registered_sinks.add(sink)


def unregister_sink(sink: Any) -> None:
    """Unregister a sink, typically once it has been disposed explicitly."""
    _registered_sinks.discard(sink)


def registered_sinks() -> list[Any]:
    return list(_registered_sinks)


def _shutdown_single_sink(sink: Any, *, flush: bool, timeout: float) -> None:
    try:
        if flush:
            try:
                sink.flush().result(timeout=timeout)
            except Exception:
                pass  # Best effort - proceed with disposal
        sink.dispose()
    except Exception:
        pass  # Best effort - don't crash on exit


def _atexit_handler() -> None:
    """Flush and dispose every registered sink. Never raises."""
    global _shutdown_in_progress

    if _shutdown_in_progress:
        return
    _shutdown_in_progress = True

    settings = _get_shutdown_settings()
    # Snapshot the sinks (WeakSet iteration can fail if GC runs)
    try:
        sinks = list(_registered_sinks)
    except Exception:  # pragma: no cover - rare GC race
        return

    for sink in sinks:
        _shutdown_single_sink(
            sink,
            flush=settings["atexit_flush_enabled"],
            timeout=settings["atexit_flush_timeout_seconds"],
        )


# Register atexit handler on module import
atexit.register(_atexit_handler)
