"""
Thread-safe primitives shared by the sink and its publisher.

This module contains:
- CancellationToken: set-once cancellation signal with callbacks
- BoundedBuffer: FIFO buffer with a hard capacity; try_push fails when full

Producers push from arbitrary threads while the publisher's worker thread
reads and trims the head of the buffer, so both primitives guard their state
with a lock rather than relying on a single event loop.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class CancellationToken:
    """Cancellation signal that is set exactly once and never reset."""

    __slots__ = ("_callbacks", "_event", "_lock")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Set the signal. Returns False when it was already set."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                # A callback failing must not stop the others from running
                pass
        return True

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation (immediately if already set).

        Returns a function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class BoundedBuffer(Generic[T]):
    """FIFO buffer with fixed capacity.

    - ``try_push`` never blocks; it returns False when the buffer is full.
    - ``peek`` copies up to ``limit`` items from the head without removing them.
    - ``remove`` drops items from the head once they were delivered or discarded.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self._capacity = capacity
        self._items: deque[T] = deque()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def is_empty(self) -> bool:
        return len(self) == 0

    def try_push(self, item: T) -> bool:
        with self._lock:
            if len(self._items) >= self._capacity:
                return False
            self._items.append(item)
            return True

    def peek(self, limit: int | None = None) -> list[T]:
        with self._lock:
            if limit is None or limit >= len(self._items):
                return list(self._items)
            return [self._items[i] for i in range(limit)]

    def remove(self, count: int) -> int:
        """Remove up to ``count`` items from the head; returns how many."""
        with self._lock:
            removed = 0
            while removed < count and self._items:
                self._items.popleft()
                removed += 1
            return removed

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
