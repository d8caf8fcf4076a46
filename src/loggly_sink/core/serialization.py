"""
Newline-delimited JSON serialization of log entries for the bulk endpoint.

Each entry becomes one JSON object followed by a newline. Field order is fixed
because downstream parsers and saved searches rely on it. Encoding goes
through orjson; the output of one batch is accumulated in an in-memory buffer
that is always released, whether encoding completes or fails.
"""

from __future__ import annotations

import io
from enum import Enum
from typing import Any, Iterable

import orjson

from .entry import LogEntry
from .errors import (
    ErrorCategory,
    ErrorSeverity,
    SerializationError,
    create_error_context,
)

PAYLOAD_FLATTEN_PREFIX = "Payload_"
# Year is padded separately; glibc strftime("%Y") does not pad years below 1000
_TIME_FORMAT = "%m-%dT%H:%M:%S.%f"

_UINT64 = 1 << 64
_INT64_MAX = (1 << 63) - 1


def _default(obj: Any) -> Any:
    """Fallback for values orjson cannot encode natively."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_none=True)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    return str(obj)


def to_signed_int64(value: int) -> int:
    """Reinterpret 64-bit keyword flags as a signed integer."""
    value %= _UINT64
    if value > _INT64_MAX:
        value -= _UINT64
    return value


def format_timestamp(entry: LogEntry) -> str:
    ts = entry.utc_timestamp
    return f"{ts.year:04d}-{ts.strftime(_TIME_FORMAT)}Z"


def entry_to_mapping(
    entry: LogEntry,
    instance_name: str,
    *,
    flatten_payload: bool = False,
) -> dict[str, Any]:
    """Build the ordered mapping written for a single entry."""
    record: dict[str, Any] = {
        "EventId": entry.event_id,
        "EventName": entry.event_name,
        "Timestamp": format_timestamp(entry),
        "Keywords": to_signed_int64(entry.keywords),
        "ProviderId": entry.provider_id,
        "ProviderName": entry.provider_name,
        "InstanceName": instance_name,
        "Level": int(entry.level),
        "Message": entry.formatted_message,
        "Opcode": int(entry.opcode),
        "Task": int(entry.task),
        "Version": entry.version,
        "ProcessId": entry.process_id,
        "ThreadId": entry.thread_id,
        "ActivityId": entry.activity_id,
        "RelatedActivityId": entry.related_activity_id,
    }
    if flatten_payload:
        # Collisions with fixed fields are not guarded; last write wins
        for name, value in entry.payload_items():
            record[f"{PAYLOAD_FLATTEN_PREFIX}{name}"] = value
    else:
        record["Payload"] = dict(entry.payload_items())
    return record


class EntrySerializer:
    """Serializes batches of ``LogEntry`` into a bulk request body.

    Usage:
        with EntrySerializer("web-01", flatten_payload=False) as serializer:
            body = serializer.serialize(entries)
    """

    def __init__(self, instance_name: str, flatten_payload: bool = False) -> None:
        self.instance_name = instance_name
        self.flatten_payload = flatten_payload
        self._buffer: io.BytesIO | None = None

    def __enter__(self) -> EntrySerializer:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def serialize(self, entries: Iterable[LogEntry] | None) -> str | None:
        if entries is None:
            return None
        self._buffer = io.BytesIO()
        try:
            for entry in entries:
                self._write_entry(entry)
            return self._buffer.getvalue().decode("utf-8")
        finally:
            self.close()

    def _write_entry(self, entry: LogEntry) -> None:
        assert self._buffer is not None
        record = entry_to_mapping(
            entry, self.instance_name, flatten_payload=self.flatten_payload
        )
        try:
            data = orjson.dumps(
                record, default=_default, option=orjson.OPT_APPEND_NEWLINE
            )
        except TypeError as e:
            context = create_error_context(
                ErrorCategory.SERIALIZATION,
                ErrorSeverity.HIGH,
                event_id=entry.event_id,
            )
            raise SerializationError(
                "Log entry serialization failed",
                error_context=context,
                cause=e,
            ) from e
        self._buffer.write(data)

    def close(self) -> None:
        if self._buffer is not None:
            self._buffer.close()
            self._buffer = None


def serialize_entries(
    entries: Iterable[LogEntry] | None,
    instance_name: str,
    flatten_payload: bool = False,
) -> str | None:
    """Serialize ``entries`` to NDJSON; ``None`` in gives ``None`` out."""
    with EntrySerializer(instance_name, flatten_payload) as serializer:
        return serializer.serialize(entries)
