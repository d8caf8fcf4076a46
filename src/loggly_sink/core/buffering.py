"""
Buffered batch publisher driving a sink's publish callback.

The publisher owns a bounded FIFO buffer and a background worker that runs its
own asyncio loop on a daemon thread, so producers never wait on network I/O:

- ``try_post`` appends to the buffer and returns immediately; entries past
  ``max_buffer_size`` are dropped.
- The worker publishes when ``buffering_count`` entries are buffered or when
  ``buffering_interval`` elapses with entries pending.
- The publish callback returns how many entries (from the head of the batch)
  the buffer should remove; the rest stay for a later attempt.
- ``flush`` publishes everything now and returns a ``concurrent.futures``
  future that completes once the buffer is drained or a publish makes no
  progress.
- Only one publish runs at a time.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
import time
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from ..metrics.metrics import MetricsCollector
from . import diagnostics
from .concurrency import BoundedBuffer, CancellationToken
from .defaults import MIN_PUBLISH_BACKOFF_SECONDS, WORKER_JOIN_TIMEOUT_SECONDS
from .errors import FlushFailedError

T = TypeVar("T")

PublishCallable = Callable[[Sequence[T]], Awaitable[int]]


def completed_future() -> concurrent.futures.Future[None]:
    future: concurrent.futures.Future[None] = concurrent.futures.Future()
    future.set_result(None)
    return future


class BufferedPublisher(Generic[T]):
    """Accumulates entries and hands them to ``publish`` in batches."""

    def __init__(
        self,
        sink_id: str,
        publish: PublishCallable[T],
        *,
        buffering_interval: float,
        buffering_count: int,
        max_buffer_size: int,
        cancellation: CancellationToken,
        metrics: MetricsCollector | None = None,
    ) -> None:
        if buffering_interval <= 0:
            raise ValueError("buffering_interval must be > 0")
        if buffering_count < 0:
            raise ValueError("buffering_count must be >= 0")
        self._sink_id = sink_id
        self._publish = publish
        self._interval = buffering_interval
        self._count = buffering_count
        self._buffer: BoundedBuffer[T] = BoundedBuffer(max_buffer_size)
        self._cancellation = cancellation
        self._metrics = metrics
        self._worker_loop: asyncio.AbstractEventLoop | None = None
        self._worker_thread: threading.Thread | None = None
        self._main_task: asyncio.Task[None] | None = None
        self._wake: asyncio.Event | None = None
        self._publish_lock: asyncio.Lock | None = None
        self._pause = 0.0
        self._backoff = 0.0
        self._overflowing = False
        self._disposed = False
        self._unregister_cancel: Callable[[], None] | None = None

    @classmethod
    def create_and_start(
        cls,
        sink_id: str,
        publish: PublishCallable[T],
        *,
        buffering_interval: float,
        buffering_count: int,
        max_buffer_size: int,
        cancellation: CancellationToken,
        metrics: MetricsCollector | None = None,
    ) -> BufferedPublisher[T]:
        publisher = cls(
            sink_id,
            publish,
            buffering_interval=buffering_interval,
            buffering_count=buffering_count,
            max_buffer_size=max_buffer_size,
            cancellation=cancellation,
            metrics=metrics,
        )
        publisher.start()
        return publisher

    @property
    def sink_id(self) -> str:
        return self._sink_id

    @property
    def pending_count(self) -> int:
        return len(self._buffer)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def start(self) -> None:
        if self._worker_thread is not None:
            return
        ready = threading.Event()

        def _thread_main() -> None:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._worker_loop = loop
            self._wake = asyncio.Event()
            self._publish_lock = asyncio.Lock()
            self._main_task = loop.create_task(self._run())
            ready.set()
            try:
                loop.run_until_complete(self._main_task)
            finally:
                # Resolve flushes still pending so callers never hang
                pending = asyncio.all_tasks(loop)
                for task in pending:
                    task.cancel()
                if pending:
                    loop.run_until_complete(
                        asyncio.gather(*pending, return_exceptions=True)
                    )
                loop.run_until_complete(loop.shutdown_asyncgens())
                loop.close()
                self._worker_loop = None

        thread = threading.Thread(
            target=_thread_main, name=f"{self._sink_id} publisher", daemon=True
        )
        self._worker_thread = thread
        thread.start()
        ready.wait()
        self._unregister_cancel = self._cancellation.register(self._stop_worker)

    def try_post(self, entry: T) -> bool:
        """Buffer ``entry`` without blocking; False when it was not accepted."""
        if self._should_stop():
            return False
        if not self._buffer.try_push(entry):
            if self._metrics is not None:
                self._metrics.record_dropped(1)
            if not self._overflowing:
                self._overflowing = True
                diagnostics.warn(
                    "buffered-publisher",
                    "buffer full, dropping entries",
                    sink=self._sink_id,
                    max_buffer_size=self._buffer.capacity,
                )
            return False
        self._overflowing = False
        if self._count_reached():
            self._notify()
        return True

    def flush(self) -> concurrent.futures.Future[None]:
        """Publish all buffered entries now."""
        loop = self._worker_loop
        if loop is None or self._should_stop():
            return completed_future()
        try:
            return asyncio.run_coroutine_threadsafe(self._flush(), loop)
        except RuntimeError:
            # Loop closed between the check and the call
            return completed_future()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._unregister_cancel is not None:
            self._unregister_cancel()
            self._unregister_cancel = None
        self._stop_worker()
        thread = self._worker_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=WORKER_JOIN_TIMEOUT_SECONDS)
        self._buffer.clear()

    def _should_stop(self) -> bool:
        return self._disposed or self._cancellation.is_cancelled

    def _count_reached(self) -> bool:
        return self._count > 0 and len(self._buffer) >= self._count

    def _call_in_loop(self, callback: Callable[[], object]) -> None:
        loop = self._worker_loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(callback)
        except RuntimeError:
            pass

    def _notify(self) -> None:
        wake = self._wake
        if wake is not None:
            self._call_in_loop(wake.set)

    def _stop_worker(self) -> None:
        task = self._main_task
        if task is not None:
            self._call_in_loop(task.cancel)

    async def _run(self) -> None:
        try:
            while not self._should_stop():
                await self._wait_for_trigger()
                if self._should_stop():
                    return
                if self._buffer.is_empty():
                    continue
                try:
                    progressed = await self._publish_available(drain=False)
                except Exception as exc:
                    self._backoff = min(
                        max(self._backoff * 2, MIN_PUBLISH_BACKOFF_SECONDS),
                        max(self._interval, MIN_PUBLISH_BACKOFF_SECONDS),
                    )
                    self._pause = self._backoff
                    self._emit_publish_error(exc, retry_in=self._backoff)
                    continue
                self._backoff = 0.0
                # Retained batches wait a full interval instead of retrying per push
                self._pause = 0.0 if progressed else self._interval
        except asyncio.CancelledError:
            return

    async def _wait_for_trigger(self) -> None:
        if self._pause > 0:
            pause, self._pause = self._pause, 0.0
            await asyncio.sleep(pause)
            return
        if self._count_reached():
            return
        assert self._wake is not None
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
        except asyncio.TimeoutError:
            pass
        finally:
            self._wake.clear()

    async def _publish_available(self, *, drain: bool) -> bool:
        assert self._publish_lock is not None
        async with self._publish_lock:
            progressed = False
            while not self._should_stop():
                batch = self._buffer.peek(self._count or None)
                if not batch:
                    break
                start = time.perf_counter()
                taken = await self._publish(batch)
                if self._metrics is not None:
                    self._metrics.record_publish_latency(time.perf_counter() - start)
                taken = max(0, min(int(taken or 0), len(batch)))
                if taken == 0:
                    break
                self._buffer.remove(taken)
                progressed = True
                if not drain:
                    break
            return progressed

    async def _flush(self) -> None:
        try:
            await self._publish_available(drain=True)
        except Exception as exc:
            self._emit_publish_error(exc)
            raise FlushFailedError(
                f"Flush failed for {self._sink_id}", cause=exc
            ) from exc

    def _emit_publish_error(self, exc: Exception, **fields: object) -> None:
        if self._metrics is not None:
            self._metrics.record_publish_error()
        diagnostics.warn(
            "buffered-publisher",
            "publish error",
            sink=self._sink_id,
            error_type=type(exc).__name__,
            error=str(exc),
            **fields,
        )
