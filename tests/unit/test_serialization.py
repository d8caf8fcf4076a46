from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import orjson
import pytest
from pydantic import BaseModel

from loggly_sink.core.entry import EMPTY_UUID, EventLevel, LogEntry
from loggly_sink.core.errors import ErrorCategory, SerializationError
from loggly_sink.core.serialization import (
    EntrySerializer,
    entry_to_mapping,
    serialize_entries,
    to_signed_int64,
)

PROVIDER = UUID("7b5a4c1e-3f2d-4e8a-9c6b-1a2b3c4d5e6f")

EXPECTED_KEYS = [
    "EventId",
    "EventName",
    "Timestamp",
    "Keywords",
    "ProviderId",
    "ProviderName",
    "InstanceName",
    "Level",
    "Message",
    "Opcode",
    "Task",
    "Version",
    "ProcessId",
    "ThreadId",
    "ActivityId",
    "RelatedActivityId",
]


def _entry(**overrides: Any) -> LogEntry:
    values: dict[str, Any] = {
        "event_id": 7,
        "event_name": "Started",
        "timestamp": datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc),
        "keywords": 0,
        "provider_id": PROVIDER,
        "provider_name": "Acme-App",
        "level": EventLevel.INFORMATIONAL,
        "formatted_message": "hello",
        "opcode": 0,
        "task": 1,
        "version": 2,
        "process_id": 100,
        "thread_id": 200,
        "activity_id": EMPTY_UUID,
        "payload_names": ("user", "count"),
        "payload": ("ann", 3),
    }
    values.update(overrides)
    return LogEntry(**values)


def _lines(body: str | None) -> list[dict[str, Any]]:
    assert body is not None
    assert body.endswith("\n")
    return [orjson.loads(line) for line in body.splitlines()]


def test_none_batch_serializes_to_none() -> None:
    assert serialize_entries(None, "web-01") is None


def test_empty_batch_serializes_to_empty_string() -> None:
    assert serialize_entries([], "web-01") == ""


def test_keys_are_written_in_fixed_order() -> None:
    body = serialize_entries([_entry()], "web-01")
    (record,) = _lines(body)
    assert list(record)[: len(EXPECTED_KEYS)] == EXPECTED_KEYS
    assert list(record)[len(EXPECTED_KEYS) :] == ["Payload"]


def test_fields_render_expected_values() -> None:
    related = UUID("00000000-0000-0000-0000-0000000000aa")
    body = serialize_entries([_entry(related_activity_id=related)], "web-01")
    (record,) = _lines(body)
    assert record["EventId"] == 7
    assert record["EventName"] == "Started"
    assert record["Timestamp"] == "2024-01-02T03:04:05.678901Z"
    assert record["ProviderId"] == "7b5a4c1e-3f2d-4e8a-9c6b-1a2b3c4d5e6f"
    assert record["InstanceName"] == "web-01"
    assert record["Level"] == 4
    assert record["Message"] == "hello"
    assert record["ActivityId"] == "00000000-0000-0000-0000-000000000000"
    assert record["RelatedActivityId"] == "00000000-0000-0000-0000-0000000000aa"
    assert record["Payload"] == {"user": "ann", "count": 3}


def test_timestamp_is_converted_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))
    entry = _entry(timestamp=datetime(2024, 1, 2, 5, 4, 5, 1, tzinfo=plus_two))
    (record,) = _lines(serialize_entries([entry], "web-01"))
    assert record["Timestamp"] == "2024-01-02T03:04:05.000001Z"


def test_naive_timestamp_is_treated_as_utc() -> None:
    entry = _entry(timestamp=datetime(2024, 1, 2, 3, 4, 5))
    (record,) = _lines(serialize_entries([entry], "web-01"))
    assert record["Timestamp"] == "2024-01-02T03:04:05.000000Z"


@pytest.mark.parametrize(
    "year, expected",
    [
        (1, "0001-03-04T05:06:07.000008Z"),
        (999, "0999-03-04T05:06:07.000008Z"),
        (9999, "9999-03-04T05:06:07.000008Z"),
    ],
)
def test_timestamp_year_is_zero_padded(year: int, expected: str) -> None:
    stamp = datetime(year, 3, 4, 5, 6, 7, 8, tzinfo=timezone.utc)
    (record,) = _lines(serialize_entries([_entry(timestamp=stamp)], "web-01"))
    assert record["Timestamp"] == expected


def test_keywords_render_as_signed_64_bit() -> None:
    entry = _entry(keywords=0x8000_0000_0000_0001)
    (record,) = _lines(serialize_entries([entry], "web-01"))
    assert record["Keywords"] == -(2**63) + 1


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, 0),
        (2**63 - 1, 2**63 - 1),
        (2**63, -(2**63)),
        (2**64 - 1, -1),
    ],
)
def test_to_signed_int64(value: int, expected: int) -> None:
    assert to_signed_int64(value) == expected


def test_null_fields_render_as_null() -> None:
    entry = _entry(
        event_name=None,
        provider_name=None,
        formatted_message=None,
        payload=(None, None),
    )
    (record,) = _lines(serialize_entries([entry], "web-01"))
    assert record["EventName"] is None
    assert record["ProviderName"] is None
    assert record["Message"] is None
    assert record["RelatedActivityId"] is None
    assert record["Payload"] == {"user": None, "count": None}


def test_flattened_payload_promotes_fields() -> None:
    (record,) = _lines(serialize_entries([_entry()], "web-01", flatten_payload=True))
    assert "Payload" not in record
    assert record["Payload_user"] == "ann"
    assert record["Payload_count"] == 3
    assert list(record)[len(EXPECTED_KEYS) :] == ["Payload_user", "Payload_count"]


def test_nested_payload_has_no_flattened_keys() -> None:
    (record,) = _lines(serialize_entries([_entry()], "web-01", flatten_payload=False))
    assert not any(key.startswith("Payload_") for key in record)


def test_payload_pairs_names_and_values_positionally() -> None:
    entry = _entry(payload_names=("a", "b", "c"), payload=(1, 2))
    (record,) = _lines(serialize_entries([entry], "web-01"))
    assert record["Payload"] == {"a": 1, "b": 2}


def test_batch_preserves_input_order() -> None:
    entries = [_entry(event_id=i) for i in range(5)]
    body = serialize_entries(entries, "web-01")
    assert [r["EventId"] for r in _lines(body)] == [0, 1, 2, 3, 4]
    assert body is not None and body.count("\n") == 5


class _Color(Enum):
    RED = "red"


class _Point(BaseModel):
    x: int
    y: int | None = None


def test_non_native_payload_values_use_fallbacks() -> None:
    entry = _entry(
        payload_names=("color", "point", "amount"),
        payload=(_Color.RED, _Point(x=1), Decimal("1.50")),
    )
    (record,) = _lines(serialize_entries([entry], "web-01"))
    assert record["Payload"] == {"color": "red", "point": {"x": 1}, "amount": "1.50"}


def test_unencodable_value_raises_serialization_error() -> None:
    entry = _entry(payload_names=("big",), payload=(2**70,))
    with pytest.raises(SerializationError) as excinfo:
        serialize_entries([entry], "web-01")
    assert excinfo.value.category is ErrorCategory.SERIALIZATION
    assert excinfo.value.error_context.details["event_id"] == 7
    assert isinstance(excinfo.value.cause, TypeError)


def test_serializer_releases_buffer_after_failure() -> None:
    serializer = EntrySerializer("web-01")
    with pytest.raises(SerializationError):
        serializer.serialize([_entry(payload_names=("big",), payload=(2**70,))])
    assert serializer._buffer is None
    # Still usable afterwards
    assert serializer.serialize([_entry()]) is not None
    assert serializer._buffer is None


def test_serializer_close_is_idempotent() -> None:
    with EntrySerializer("web-01", flatten_payload=True) as serializer:
        serializer.close()
        serializer.close()
    assert serializer._buffer is None


def test_entry_to_mapping_keeps_payload_collisions_last_write_wins() -> None:
    entry = _entry(payload_names=("x", "x"), payload=(1, 2))
    mapping = entry_to_mapping(entry, "web-01", flatten_payload=True)
    assert mapping["Payload_x"] == 2


def test_create_fills_process_context() -> None:
    entry = LogEntry.create(3, "created", payload={"k": "v"}, level=2)
    assert entry.level is EventLevel.ERROR
    assert entry.process_id > 0
    assert entry.thread_id > 0
    assert entry.timestamp.tzinfo is not None
    assert list(entry.payload_items()) == [("k", "v")]
    assert entry.activity_id == EMPTY_UUID
