from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..core.entry import LogEntry
from .loggly import (
    DeliveryKind,
    DeliveryOutcome,
    LogglySink,
    LogglySinkConfig,
    SinkState,
)

__all__ = [
    "DeliveryKind",
    "DeliveryOutcome",
    "EntryObserver",
    "LogglySink",
    "LogglySinkConfig",
    "SinkState",
]


@runtime_checkable
class EntryObserver(Protocol):
    """Push-based consumer of log entries.

    ``on_next`` is called for every entry and must not block. ``on_completed``
    and ``on_error`` are terminal: each is delivered at most once and nothing
    follows it.
    """

    def on_next(self, entry: LogEntry) -> None: ...

    def on_completed(self) -> None: ...

    def on_error(self, error: BaseException) -> None: ...
