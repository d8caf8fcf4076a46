"""
Minimal in-process event stream.

Fans entries out to subscribed observers. An observer that raises from
``on_next`` is reported through diagnostics and stays subscribed; the stream
and the other observers are unaffected. Once the stream completes or fails,
later subscribers receive the same terminal signal immediately.
"""

from __future__ import annotations

import threading
from typing import Callable

from .core import diagnostics
from .core.entry import LogEntry
from .sinks import EntryObserver


class Subscription:
    """Handle returned by ``EventStream.subscribe``; ``dispose`` unsubscribes."""

    def __init__(self, stream: EventStream, observer: EntryObserver) -> None:
        self._stream: EventStream | None = stream
        self._observer = observer

    def dispose(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream._unsubscribe(self._observer)


class EventStream:
    """Push-based stream of ``LogEntry`` values."""

    def __init__(self) -> None:
        self._observers: list[EntryObserver] = []
        self._lock = threading.Lock()
        self._terminal: Callable[[EntryObserver], None] | None = None

    def __enter__(self) -> EventStream:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.complete()

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def subscribe(self, observer: EntryObserver) -> Subscription:
        """Add ``observer``; a terminated stream replays its terminal signal."""
        with self._lock:
            terminal = self._terminal
            if terminal is None:
                self._observers.append(observer)
        if terminal is not None:
            terminal(observer)
        return Subscription(self, observer)

    def publish(self, entry: LogEntry) -> None:
        for observer in self._snapshot():
            try:
                observer.on_next(entry)
            except Exception as exc:
                diagnostics.warn(
                    "event-stream",
                    "observer failed on entry",
                    observer=type(observer).__name__,
                    error=str(exc),
                )

    def complete(self) -> None:
        self._terminate(lambda observer: observer.on_completed())

    def fail(self, error: BaseException) -> None:
        self._terminate(lambda observer: observer.on_error(error))

    close = complete

    def _snapshot(self) -> list[EntryObserver]:
        with self._lock:
            return list(self._observers)

    def _terminate(self, signal: Callable[[EntryObserver], None]) -> None:
        with self._lock:
            if self._terminal is not None:
                return
            self._terminal = signal
            observers, self._observers = self._observers, []
        first_error: BaseException | None = None
        for observer in observers:
            try:
                signal(observer)
            except Exception as exc:
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def _unsubscribe(self, observer: EntryObserver) -> None:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass
