"""Factories that wire a Loggly sink to an event stream."""

from __future__ import annotations

from typing import Any

from .core.defaults import (
    DEFAULT_BUFFERING_COUNT,
    DEFAULT_BUFFERING_INTERVAL_SECONDS,
    DEFAULT_MAX_BUFFER_SIZE,
)
from .sinks.loggly import LogglySink
from .stream import EventStream, Subscription


class SinkSubscription:
    """A live sink together with its stream subscription."""

    def __init__(self, sink: LogglySink, subscription: Subscription) -> None:
        self._sink = sink
        self._subscription = subscription

    @property
    def sink(self) -> LogglySink:
        return self._sink

    def __enter__(self) -> SinkSubscription:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.dispose()

    def dispose(self) -> None:
        """Stop receiving entries, then dispose the sink without flushing."""
        self._subscription.dispose()
        self._sink.dispose()


def log_to_loggly(
    stream: EventStream,
    instance_name: str,
    connection_string: str,
    customer_token: str,
    tag: str | None = None,
    flatten_payload: bool = True,
    buffering_interval: float | None = None,
    on_completed_timeout: float | None = None,
    buffering_count: int = DEFAULT_BUFFERING_COUNT,
    max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
    **kwargs: Any,
) -> SinkSubscription:
    """Subscribe a new ``LogglySink`` to ``stream``.

    ``kwargs`` are forwarded to ``LogglySink`` (``buffer_factory``,
    ``client_factory``, ``metrics`` or extra config fields such as
    ``request_timeout_seconds``).
    """
    sink = LogglySink(
        instance_name=instance_name,
        connection_string=connection_string,
        customer_token=customer_token,
        tag=tag,
        flatten_payload=flatten_payload,
        buffering_interval_seconds=(
            DEFAULT_BUFFERING_INTERVAL_SECONDS
            if buffering_interval is None
            else buffering_interval
        ),
        buffering_count=buffering_count,
        max_buffer_size=max_buffer_size,
        on_completed_timeout_seconds=on_completed_timeout,
        **kwargs,
    )
    return SinkSubscription(sink, stream.subscribe(sink))


def create_listener(
    instance_name: str,
    connection_string: str,
    customer_token: str,
    **kwargs: Any,
) -> EventStream:
    """Return a new ``EventStream`` with a Loggly sink already subscribed.

    Completing the stream flushes and disposes the sink.
    """
    stream = EventStream()
    log_to_loggly(stream, instance_name, connection_string, customer_token, **kwargs)
    return stream
