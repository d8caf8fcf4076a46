"""
Structured log entry pushed into the sink by the event source.

Entries are immutable. Payload names come from the event schema and payload
values from the individual event; the two are paired positionally.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, Mapping, Sequence
from uuid import UUID

EMPTY_UUID = UUID(int=0)


class EventLevel(IntEnum):
    """Event severity, ordered from most to least severe (0 = always logged)."""

    LOG_ALWAYS = 0
    CRITICAL = 1
    ERROR = 2
    WARNING = 3
    INFORMATIONAL = 4
    VERBOSE = 5


class EventOpcode(IntEnum):
    INFO = 0
    START = 1
    STOP = 2
    DATA_COLLECTION_START = 3
    DATA_COLLECTION_STOP = 4
    EXTENSION = 5
    REPLY = 6
    RESUME = 7
    SUSPEND = 8
    SEND = 9
    RECEIVE = 240


@dataclass(frozen=True)
class LogEntry:
    """A single structured event as produced by the event source."""

    event_id: int
    event_name: str | None
    timestamp: datetime
    keywords: int
    provider_id: UUID
    provider_name: str | None
    level: EventLevel
    formatted_message: str | None
    opcode: int
    task: int
    version: int
    process_id: int
    thread_id: int
    activity_id: UUID
    related_activity_id: UUID | None = None
    payload_names: tuple[str, ...] = field(default_factory=tuple)
    payload: tuple[Any, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any sequence but store tuples so the entry stays immutable
        if not isinstance(self.payload_names, tuple):
            object.__setattr__(self, "payload_names", tuple(self.payload_names))
        if not isinstance(self.payload, tuple):
            object.__setattr__(self, "payload", tuple(self.payload))
        if not isinstance(self.level, EventLevel):
            object.__setattr__(self, "level", EventLevel(self.level))

    def payload_items(self) -> Iterator[tuple[str, Any]]:
        """Pair schema names with values; extra names or values are ignored."""
        return zip(self.payload_names, self.payload)

    @property
    def utc_timestamp(self) -> datetime:
        if self.timestamp.tzinfo is None:
            return self.timestamp.replace(tzinfo=timezone.utc)
        return self.timestamp.astimezone(timezone.utc)

    @classmethod
    def create(
        cls,
        event_id: int,
        message: str | None,
        *,
        level: EventLevel | int = EventLevel.INFORMATIONAL,
        event_name: str | None = None,
        provider_name: str | None = None,
        provider_id: UUID = EMPTY_UUID,
        keywords: int = 0,
        opcode: int = EventOpcode.INFO,
        task: int = 0,
        version: int = 0,
        payload: Mapping[str, Any] | None = None,
        timestamp: datetime | None = None,
        activity_id: UUID = EMPTY_UUID,
        related_activity_id: UUID | None = None,
    ) -> LogEntry:
        """Build an entry for the current process and thread."""
        items: Sequence[tuple[str, Any]] = list((payload or {}).items())
        return cls(
            event_id=event_id,
            event_name=event_name,
            timestamp=timestamp or datetime.now(timezone.utc),
            keywords=keywords,
            provider_id=provider_id,
            provider_name=provider_name,
            level=EventLevel(level),
            formatted_message=message,
            opcode=int(opcode),
            task=task,
            version=version,
            process_id=os.getpid(),
            thread_id=threading.get_ident(),
            activity_id=activity_id,
            related_activity_id=related_activity_id,
            payload_names=tuple(name for name, _ in items),
            payload=tuple(value for _, value in items),
        )
