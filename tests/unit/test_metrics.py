from __future__ import annotations

from loggly_sink.metrics import MetricsCollector, SinkMetrics


def test_disabled_collector_tracks_state_without_registry() -> None:
    metrics = MetricsCollector()
    assert metrics.is_enabled is False
    assert metrics.registry is None

    metrics.record_delivered(3)
    metrics.record_discarded(1)
    metrics.record_retained(2)
    metrics.record_dropped(4)
    metrics.record_publish_error()
    metrics.record_publish_latency(0.1)

    assert metrics.snapshot() == SinkMetrics(
        entries_delivered=3,
        entries_discarded=1,
        entries_retained=2,
        entries_dropped=4,
        publish_errors=1,
        publish_calls=3,
    )


def test_snapshot_is_a_copy() -> None:
    metrics = MetricsCollector()
    snap = metrics.snapshot()
    metrics.record_delivered(1)
    assert snap.entries_delivered == 0


def test_enabled_collector_exports_prometheus_samples() -> None:
    metrics = MetricsCollector(enabled=True)
    metrics.record_delivered(5)
    metrics.record_discarded(2)
    metrics.record_publish_error()
    metrics.record_publish_latency(0.2)

    registry = metrics.registry
    assert registry is not None
    assert (
        registry.get_sample_value(
            "loggly_sink_entries_total", {"outcome": "delivered"}
        )
        == 5.0
    )
    assert (
        registry.get_sample_value(
            "loggly_sink_entries_total", {"outcome": "discarded"}
        )
        == 2.0
    )
    assert registry.get_sample_value("loggly_sink_publish_errors_total") == 1.0
    assert registry.get_sample_value("loggly_sink_publish_seconds_count") == 1.0


def test_collectors_use_isolated_registries() -> None:
    first = MetricsCollector(enabled=True)
    second = MetricsCollector(enabled=True)
    first.record_delivered(1)
    assert second.registry is not None
    assert (
        second.registry.get_sample_value(
            "loggly_sink_entries_total", {"outcome": "delivered"}
        )
        is None
    )
