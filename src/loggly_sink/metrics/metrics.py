"""
Delivery metrics for the Loggly sink.

Implements minimal Prometheus-compatible counters and a latency histogram for
batch publishing.

Design goals:
- Zero global state; each collector owns an isolated registry
- Safe to call from producer threads and the publisher worker thread
- In-memory counters are always tracked so tests can assert on them, even
  when Prometheus export is disabled
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram


@dataclass
class SinkMetrics:
    """Captured runtime metrics for quick assertions in tests."""

    entries_delivered: int = 0
    entries_discarded: int = 0
    entries_retained: int = 0
    entries_dropped: int = 0
    publish_errors: int = 0
    publish_calls: int = 0


class MetricsCollector:
    """Sink-scoped metrics collector.

    When disabled, all exporter calls are no-ops while the in-memory
    ``SinkMetrics`` state is still updated.
    """

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = threading.Lock()
        self._state = SinkMetrics()

        self._c_entries: Any | None = None
        self._c_publish_errors: Any | None = None
        self._h_publish_latency: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            self._registry = CollectorRegistry()
            self._c_entries = Counter(
                "loggly_sink_entries_total",
                "Log entries by delivery outcome",
                ["outcome"],
                registry=self._registry,
            )
            self._c_publish_errors = Counter(
                "loggly_sink_publish_errors_total",
                "Publish attempts that raised",
                registry=self._registry,
            )
            self._h_publish_latency = Histogram(
                "loggly_sink_publish_seconds",
                "Latency for publishing a single batch",
                buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        """Expose the isolated Prometheus registry when enabled."""
        return self._registry

    def _count(self, outcome: str, count: int) -> None:
        if self._c_entries is not None and count > 0:
            self._c_entries.labels(outcome=outcome).inc(count)

    def record_delivered(self, count: int) -> None:
        with self._lock:
            self._state.entries_delivered += count
            self._state.publish_calls += 1
        self._count("delivered", count)

    def record_discarded(self, count: int) -> None:
        with self._lock:
            self._state.entries_discarded += count
            self._state.publish_calls += 1
        self._count("discarded", count)

    def record_retained(self, count: int) -> None:
        with self._lock:
            self._state.entries_retained += count
            self._state.publish_calls += 1
        self._count("retained", count)

    def record_dropped(self, count: int) -> None:
        with self._lock:
            self._state.entries_dropped += count
        self._count("dropped", count)

    def record_publish_error(self) -> None:
        with self._lock:
            self._state.publish_errors += 1
        if self._c_publish_errors is not None:
            self._c_publish_errors.inc()

    def record_publish_latency(self, seconds: float) -> None:
        if self._h_publish_latency is not None:
            self._h_publish_latency.observe(seconds)

    def snapshot(self) -> SinkMetrics:
        with self._lock:
            return replace(self._state)
