"""
Loggly bulk sink.

Receives log entries from an event source, buffers them through a publisher
and POSTs each batch as newline-delimited JSON to the Loggly bulk endpoint
``{connection_string}/bulk/{customer_token}/tag/{tag}/``.

Response handling:
- 200 with ``{"response": "ok"}``: the batch is delivered.
- 400: the batch is a poison message. It is reported once and discarded so a
  single malformed entry cannot block the rest of the stream.
- Any other status: the batch stays buffered for the next attempt.
- Unexpected exceptions are reported and re-raised so the publisher can back
  off.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import functools
import threading
import traceback
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol, Sequence

import httpx
import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core import diagnostics
from ..core.buffering import BufferedPublisher, completed_future
from ..core.concurrency import CancellationToken
from ..core.defaults import (
    BULK_SERVICE_OPERATION_PATH,
    DEFAULT_BUFFERING_COUNT,
    DEFAULT_BUFFERING_INTERVAL_SECONDS,
    DEFAULT_MAX_BUFFER_SIZE,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from ..core.entry import LogEntry
from ..core.errors import ConfigurationError, FlushFailedError
from ..core.serialization import serialize_entries
from ..core.settings import Settings
from ..core.shutdown import register_sink, unregister_sink
from ..metrics.metrics import MetricsCollector

__all__ = [
    "BufferHandle",
    "DeliveryKind",
    "DeliveryOutcome",
    "LogglySink",
    "LogglySinkConfig",
    "SinkState",
    "extract_server_error",
]

_BODY_SNIPPET_CHARS = 256


class LogglySinkConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    instance_name: str
    connection_string: str
    customer_token: str
    tag: str | None = None
    flatten_payload: bool = False
    buffering_interval_seconds: float = Field(
        default=DEFAULT_BUFFERING_INTERVAL_SECONDS, gt=0.0
    )
    buffering_count: int = Field(default=DEFAULT_BUFFERING_COUNT, ge=0)
    max_buffer_size: int = Field(default=DEFAULT_MAX_BUFFER_SIZE, ge=1)
    on_completed_timeout_seconds: float | None = Field(default=None, gt=0.0)
    request_timeout_seconds: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0.0
    )

    @field_validator("instance_name", "customer_token")
    @classmethod
    def _ensure_non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("connection_string")
    @classmethod
    def _ensure_absolute_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        url = httpx.URL(value)
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError("must be an absolute http(s) URL")
        return value

    @field_validator("tag", mode="before")
    @classmethod
    def _blank_tag_is_unset(cls, value: str | None) -> str | None:
        if value is None or not str(value).strip():
            return None
        return str(value)

    @property
    def effective_tag(self) -> str:
        return self.tag or self.instance_name

    @property
    def bulk_url(self) -> str:
        path = BULK_SERVICE_OPERATION_PATH.format(
            token=self.customer_token, tag=self.effective_tag
        )
        return self.connection_string.rstrip("/") + path

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> LogglySinkConfig:
        """Build a config from ``LOGGLY_SINK_LOGGLY__*`` environment values."""
        values = (settings or Settings()).loggly
        missing = [
            name
            for name in ("instance_name", "connection_string", "customer_token")
            if not getattr(values, name)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing Loggly settings: {', '.join(missing)}"
            )
        return cls(**values.model_dump())


def parse_sink_config(
    config: LogglySinkConfig | dict[str, Any] | None, **kwargs: Any
) -> LogglySinkConfig:
    if isinstance(config, LogglySinkConfig):
        if not kwargs:
            return config
        config = config.model_dump()
    data = dict(config or {})
    data.update(kwargs)
    return LogglySinkConfig.model_validate(data)


class DeliveryKind(str, Enum):
    DELIVERED = "delivered"
    DISCARDED = "discarded"
    RETAINED = "retained"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one publish attempt.

    ``count`` is the number of entries the buffer must remove: delivered or
    deliberately discarded. Retained and cancelled outcomes remove nothing.
    """

    kind: DeliveryKind
    count: int = 0
    reason: str | None = None

    @classmethod
    def delivered(cls, count: int) -> DeliveryOutcome:
        return cls(DeliveryKind.DELIVERED, count)

    @classmethod
    def discarded(cls, count: int, reason: str) -> DeliveryOutcome:
        return cls(DeliveryKind.DISCARDED, count, reason)

    @classmethod
    def retained(cls, reason: str | None = None) -> DeliveryOutcome:
        return cls(DeliveryKind.RETAINED, 0, reason)

    @classmethod
    def cancelled(cls) -> DeliveryOutcome:
        return cls(DeliveryKind.CANCELLED, 0)


class SinkState(str, Enum):
    RUNNING = "running"
    FLUSHING = "flushing"
    DISPOSED = "disposed"


class BufferHandle(Protocol):
    """Contract of the buffering primitive the sink publishes through."""

    def try_post(self, entry: LogEntry) -> bool: ...

    def flush(self) -> concurrent.futures.Future[None]: ...

    def dispose(self) -> None: ...


def extract_server_error(body: str) -> str:
    """Return the ``response`` field of an error body, or the raw body."""
    try:
        value = orjson.loads(body)["response"]
    except Exception:
        return body
    if value is None:
        return body
    return value if isinstance(value, str) else str(value)


def _snippet(response: httpx.Response) -> str | None:
    try:
        return response.text[:_BODY_SNIPPET_CHARS]
    except Exception:
        return None


class LogglySink:
    """Observer that ships log entries to Loggly in batches."""

    name = "loggly"

    def __init__(
        self,
        config: LogglySinkConfig | dict[str, Any] | None = None,
        *,
        buffer_factory: Callable[..., BufferHandle] | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        metrics: MetricsCollector | None = None,
        **kwargs: Any,
    ) -> None:
        cfg = parse_sink_config(config, **kwargs)
        self._config = cfg
        self._metrics = metrics
        self._client_factory = client_factory or self._default_client
        self._cancellation = CancellationToken()
        self._state = SinkState.RUNNING
        self._state_lock = threading.Lock()
        self._last_status: int | None = None
        self._last_error: str | None = None
        self._sink_id = f"LogglySink ({cfg.instance_name})"

        if buffer_factory is None:
            buffer_factory = functools.partial(
                BufferedPublisher.create_and_start, metrics=metrics
            )
        self._buffer: BufferHandle = buffer_factory(
            self._sink_id,
            _weak_publisher(self),
            buffering_interval=cfg.buffering_interval_seconds,
            buffering_count=cfg.buffering_count,
            max_buffer_size=cfg.max_buffer_size,
            cancellation=self._cancellation,
        )
        register_sink(self)

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, **kwargs: Any
    ) -> LogglySink:
        """Build a sink from environment settings.

        Prometheus metrics are attached when ``core.enable_metrics`` is set and
        no collector was passed explicitly.
        """
        settings = settings or Settings()
        if settings.core.enable_metrics:
            kwargs.setdefault("metrics", MetricsCollector(enabled=True))
        return cls(LogglySinkConfig.from_settings(settings), **kwargs)

    @property
    def config(self) -> LogglySinkConfig:
        return self._config

    @property
    def metrics(self) -> MetricsCollector | None:
        return self._metrics

    @property
    def state(self) -> SinkState:
        return self._state

    @property
    def is_disposed(self) -> bool:
        return self._state is SinkState.DISPOSED

    def __enter__(self) -> LogglySink:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.on_completed()

    # Event source signals -------------------------------------------------

    def on_next(self, entry: LogEntry | None) -> None:
        """Buffer ``entry``. Never blocks and never raises."""
        if entry is None or self._state is SinkState.DISPOSED:
            return
        try:
            self._buffer.try_post(entry)
        except Exception as exc:
            diagnostics.warn(
                "loggly-sink",
                "buffer post failed",
                sink=self._sink_id,
                error=str(exc),
            )

    def on_completed(self) -> None:
        self._flush_and_dispose()

    def on_error(self, error: BaseException) -> None:
        diagnostics.debug(
            "loggly-sink",
            "event source failed",
            sink=self._sink_id,
            error=repr(error),
        )
        self._flush_and_dispose()

    # Lifecycle -------------------------------------------------------------

    def flush(self) -> concurrent.futures.Future[None]:
        """Publish all buffered entries now."""
        if self._state is SinkState.DISPOSED:
            return completed_future()
        return self._buffer.flush()

    def dispose(self) -> None:
        """Cancel in-flight requests and release the buffer. Idempotent."""
        with self._state_lock:
            if self._state is SinkState.DISPOSED:
                return
            self._state = SinkState.DISPOSED
        try:
            self._cancellation.cancel()
            self._buffer.dispose()
        finally:
            unregister_sink(self)

    close = dispose

    def __del__(self) -> None:
        # Only the token is touched; the buffer may already be gone
        token = self.__dict__.get("_cancellation")
        if token is not None:
            try:
                token.cancel()
            except Exception:
                pass

    def _flush_and_dispose(self) -> None:
        with self._state_lock:
            if self._state is not SinkState.RUNNING:
                return
            self._state = SinkState.FLUSHING
        try:
            self._flush_safe()
        finally:
            self.dispose()

    def _flush_safe(self) -> None:
        timeout = self._config.on_completed_timeout_seconds
        future = self._buffer.flush()
        try:
            future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            diagnostics.warn(
                "loggly-sink",
                "flush did not complete before timeout",
                sink=self._sink_id,
                timeout_seconds=timeout,
            )
        except FlushFailedError:
            # The publish failure has already been reported
            pass

    # Delivery --------------------------------------------------------------

    async def publish(self, batch: Sequence[LogEntry]) -> int:
        """Deliver ``batch``; returns how many entries the buffer may remove."""
        outcome = await self.publish_outcome(batch)
        return outcome.count

    async def publish_outcome(self, batch: Sequence[LogEntry]) -> DeliveryOutcome:
        if not batch:
            return DeliveryOutcome.delivered(0)
        if self._cancellation.is_cancelled:
            return DeliveryOutcome.cancelled()
        try:
            body = serialize_entries(
                batch, self._config.instance_name, self._config.flatten_payload
            )
            async with self._client_factory() as client:
                response = await self._post(client, body or "")
                outcome = self._classify(response, len(batch))
        except asyncio.CancelledError:
            if self._cancellation.is_cancelled:
                return DeliveryOutcome.cancelled()
            raise
        except Exception as exc:
            self._last_status = None
            self._last_error = repr(exc)
            diagnostics.report_fault(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                sink=self._sink_id,
                error_type=type(exc).__name__,
            )
            raise
        self._record_outcome(outcome, len(batch))
        return outcome

    async def health_check(self) -> bool:
        return self._last_error is None and self._last_status == 200

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._config.request_timeout_seconds)

    async def _post(self, client: httpx.AsyncClient, body: str) -> httpx.Response:
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(
            client.post(
                self._config.bulk_url,
                content=body.encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
        )

        def _abort() -> None:
            try:
                loop.call_soon_threadsafe(task.cancel)
            except RuntimeError:
                pass

        unregister = self._cancellation.register(_abort)
        try:
            return await task
        finally:
            unregister()

    def _classify(self, response: httpx.Response, count: int) -> DeliveryOutcome:
        status = response.status_code
        self._last_status = status
        self._last_error = None

        if status == httpx.codes.OK:
            payload = orjson.loads(response.content)
            value = payload.get("response") if isinstance(payload, dict) else None
            if isinstance(value, str) and value.casefold() == "ok":
                return DeliveryOutcome.delivered(count)
            diagnostics.warn(
                "loggly-sink",
                "unexpected response body",
                sink=self._sink_id,
                status_code=status,
                body=_snippet(response),
            )
            return DeliveryOutcome.retained("unexpected response body")

        if status == httpx.codes.BAD_REQUEST:
            message = extract_server_error(response.text)
            diagnostics.report_fault(
                f"Discarded message:{count} Server error:{message}",
                sink=self._sink_id,
                status_code=status,
                discarded=count,
            )
            return DeliveryOutcome.discarded(count, message)

        return DeliveryOutcome.retained(f"HTTP {status}")

    def _record_outcome(self, outcome: DeliveryOutcome, size: int) -> None:
        if self._metrics is None:
            return
        if outcome.kind is DeliveryKind.DELIVERED:
            self._metrics.record_delivered(outcome.count)
        elif outcome.kind is DeliveryKind.DISCARDED:
            self._metrics.record_discarded(outcome.count)
        else:
            self._metrics.record_retained(size)


def _weak_publisher(
    sink: LogglySink,
) -> Callable[[Sequence[LogEntry]], Any]:
    """Publish callback that does not keep the sink alive.

    The publisher's worker thread would otherwise pin the sink and its
    destructor fallback could never run.
    """
    ref = weakref.WeakMethod(sink.publish)

    async def _publish(batch: Sequence[LogEntry]) -> int:
        method = ref()
        if method is None:
            return 0
        return await method(batch)

    return _publish


# Mark Pydantic validators as used for vulture
_VULTURE_USED: tuple[object, ...] = (
    LogglySinkConfig._ensure_non_empty,
    LogglySinkConfig._ensure_absolute_url,
    LogglySinkConfig._blank_tag_is_unset,
)
