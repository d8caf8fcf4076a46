"""
Public entrypoints for loggly-sink.

Ships structured log entries to the Loggly bulk endpoint in batches.
"""

from __future__ import annotations

from ._version import __version__
from .core.entry import EventLevel, EventOpcode, LogEntry
from .core.errors import (
    ConfigurationError,
    FlushFailedError,
    LogglySinkError,
    SerializationError,
)
from .core.serialization import EntrySerializer, serialize_entries
from .core.settings import Settings
from .metrics.metrics import MetricsCollector
from .sinks.loggly import DeliveryOutcome, LogglySink, LogglySinkConfig, SinkState
from .stream import EventStream
from .subscription import SinkSubscription, create_listener, log_to_loggly

__all__ = [
    "ConfigurationError",
    "DeliveryOutcome",
    "EntrySerializer",
    "EventLevel",
    "EventOpcode",
    "EventStream",
    "FlushFailedError",
    "LogEntry",
    "LogglySink",
    "LogglySinkConfig",
    "LogglySinkError",
    "MetricsCollector",
    "SerializationError",
    "Settings",
    "SinkState",
    "SinkSubscription",
    "VERSION",
    "__version__",
    "create_listener",
    "log_to_loggly",
    "serialize_entries",
]

VERSION = __version__
