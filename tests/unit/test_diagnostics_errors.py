from __future__ import annotations

import logging
from typing import Any

import orjson
import pytest

from loggly_sink.core import diagnostics
from loggly_sink.core.errors import (
    ConfigurationError,
    ErrorCategory,
    ErrorSeverity,
    FlushFailedError,
    LogglySinkError,
    SerializationError,
    create_error_context,
)


def test_warn_emits_structured_record(
    diagnostics_records: list[dict[str, Any]],
) -> None:
    diagnostics.warn("loggly-sink", "something odd", sink="s", attempt=2)
    (record,) = diagnostics_records
    assert record["level"] == "WARN"
    assert record["component"] == "loggly-sink"
    assert record["message"] == "something odd"
    assert record["sink"] == "s"
    assert record["attempt"] == 2
    assert isinstance(record["ts"], float)


def test_report_fault_uses_sink_component(
    diagnostics_records: list[dict[str, Any]],
) -> None:
    diagnostics.report_fault("Discarded message:1 Server error:x", status_code=400)
    (record,) = diagnostics_records
    assert record["component"] == "loggly-sink"
    assert record["status_code"] == 400


def test_debug_level(diagnostics_records: list[dict[str, Any]]) -> None:
    diagnostics.debug("event-stream", "hello")
    assert diagnostics_records[0]["level"] == "DEBUG"


def test_disabled_via_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    records: list[dict[str, Any]] = []
    monkeypatch.setenv("LOGGLY_SINK_CORE__INTERNAL_LOGGING_ENABLED", "false")
    diagnostics.set_writer_for_tests(records.append)
    diagnostics.warn("loggly-sink", "muted")
    assert records == []


def test_writer_failure_is_swallowed(
    diagnostics_records: list[dict[str, Any]],
) -> None:
    def _broken(record: dict[str, Any]) -> None:
        raise RuntimeError("writer down")

    diagnostics.set_writer_for_tests(_broken)
    diagnostics.warn("loggly-sink", "still fine")


def test_default_writer_logs_json(caplog: pytest.LogCaptureFixture) -> None:
    diagnostics._internal_logging_enabled = True
    with caplog.at_level(logging.DEBUG, logger="loggly_sink.diagnostics"):
        diagnostics.warn("loggly-sink", "to logging", code=7)
    (log_record,) = caplog.records
    assert log_record.levelno == logging.WARNING
    payload = orjson.loads(log_record.getMessage())
    assert payload["message"] == "to logging"
    assert payload["code"] == 7


def test_error_context_and_to_dict() -> None:
    context = create_error_context(
        ErrorCategory.NETWORK, ErrorSeverity.HIGH, endpoint="x"
    )
    cause = ValueError("inner")
    error = LogglySinkError(
        "outer", category=ErrorCategory.NETWORK, error_context=context, cause=cause
    )
    data = error.to_dict()
    assert data["error"] == "LogglySinkError"
    assert data["category"] == "network"
    assert data["severity"] == "high"
    assert data["details"] == {"endpoint": "x"}
    assert data["cause"] == "ValueError('inner')"


@pytest.mark.parametrize(
    "error_type, category",
    [
        (ConfigurationError, ErrorCategory.CONFIGURATION),
        (SerializationError, ErrorCategory.SERIALIZATION),
        (FlushFailedError, ErrorCategory.BUFFERING),
    ],
)
def test_subclass_categories(error_type: type[LogglySinkError], category: ErrorCategory) -> None:
    error = error_type("x")
    assert isinstance(error, LogglySinkError)
    assert error.category is category
    assert error.error_context.severity is ErrorSeverity.MEDIUM
