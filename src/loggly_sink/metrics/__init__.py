from __future__ import annotations

from .metrics import MetricsCollector, SinkMetrics

__all__ = ["MetricsCollector", "SinkMetrics"]
