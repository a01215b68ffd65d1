"""Bounded, non-blocking outbound channel for gesture events.

Sensor threads must never stall on a slow consumer. When the channel is full
the newest event is dropped and counted: a lost gesture is less harmful than
a stalled sensor callback.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Generic, Optional, TypeVar

logger = logging.getLogger("wristflick.channel")

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Thread-safe bounded queue with drop-newest overflow."""

    def __init__(self, capacity: int = 32):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._queue: queue.Queue = queue.Queue(maxsize=capacity)
        self._lock = threading.Lock()
        self._closed = False
        self._dropped = 0
        self._sent = 0

    def send(self, item: T) -> bool:
        """Enqueue without blocking. Returns False if dropped or closed."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            with self._lock:
                self._dropped += 1
                dropped = self._dropped
            logger.warning("Event channel full (capacity %d), dropped %r (%d total)",
                           self.capacity, item, dropped)
            return False
        with self._lock:
            self._sent += 1
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Wait up to ``timeout`` seconds for the next item, or None."""
        try:
            return self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self, max_items: Optional[int] = None) -> list[T]:
        """Take every queued item (or at most ``max_items``) without blocking."""
        items: list[T] = []
        while max_items is None or len(items) < max_items:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return items

    def close(self):
        self._closed = True

    def reopen(self):
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def sent(self) -> int:
        return self._sent

    def __len__(self) -> int:
        return self._queue.qsize()
