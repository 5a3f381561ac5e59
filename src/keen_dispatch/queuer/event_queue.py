"""Bounded in-memory event queue between producers and the dispatch worker.

Any number of producer threads put events; a single consumer takes them off
with a blocking get() for the first event and get_nowait() while draining.
When the queue is full, put() blocks so producers feel backpressure instead
of events being silently lost.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from ..core.events import AnalyticsEvent


class QueueClosedError(RuntimeError):
    """Raised when putting to, or closing, a queue that is already closed."""


class QueueFullError(RuntimeError):
    """Raised when put() times out waiting for free space."""


@dataclass
class QueueConfig:
    """Configuration for the event queue."""

    max_size: int = 100  # Maximum events waiting for the worker
    put_timeout_seconds: Optional[float] = None  # None = block until space is free


class EventQueue:
    """Thread-safe bounded FIFO queue for analytics events."""

    def __init__(self, config: Optional[QueueConfig] = None):
        """Initialize the event queue.

        Args:
            config: Queue configuration
        """
        self.config = config or QueueConfig()
        if self.config.max_size <= 0:
            raise ValueError("Queue max size must be positive")

        self._queue: deque[AnalyticsEvent] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        self._closed = False

        # Statistics
        self._total_enqueued = 0
        self._total_dequeued = 0

    def put(self, event: AnalyticsEvent, timeout: Optional[float] = None) -> None:
        """Add an event to the queue, waiting for space if it is full.

        Args:
            event: Event to enqueue
            timeout: Maximum time to wait for space, defaults to the configured value

        Raises:
            QueueClosedError: If the queue has been closed
            QueueFullError: If no space became free within the timeout
        """
        if timeout is None:
            timeout = self.config.put_timeout_seconds
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._not_full:
            while not self._closed and len(self._queue) >= self.config.max_size:
                if deadline is None:
                    self._not_full.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise QueueFullError(f"Queue full ({self.config.max_size} events), dropping {event.collection!r} event")
                self._not_full.wait(remaining)

            if self._closed:
                raise QueueClosedError("Queue is closed")

            self._queue.append(event)
            self._total_enqueued += 1
            self._not_empty.notify()

    def get(self) -> Optional[AnalyticsEvent]:
        """Remove and return the next event, blocking until one is available.

        Returns:
            The next event, or None once the queue is closed and empty
        """
        with self._not_empty:
            while not self._queue and not self._closed:
                self._not_empty.wait()

            if not self._queue:
                return None
            return self._pop()

    def get_nowait(self) -> Optional[AnalyticsEvent]:
        """Remove and return the next event without waiting.

        Returns:
            The next event, or None if the queue is momentarily empty
        """
        with self._lock:
            if not self._queue:
                return None
            return self._pop()

    def close(self) -> None:
        """Stop accepting events and wake every waiting producer and consumer.

        Events already queued remain available to get() and get_nowait().

        Raises:
            QueueClosedError: If the queue was already closed
        """
        with self._lock:
            if self._closed:
                raise QueueClosedError("Queue already closed")
            self._closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()

            logger.debug(f"Queue closed. Stats - Enqueued: {self._total_enqueued}, Dequeued: {self._total_dequeued}, Remaining: {len(self._queue)}")

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def size(self) -> int:
        """Return the current queue size."""
        with self._lock:
            return len(self._queue)

    def is_empty(self) -> bool:
        with self._lock:
            return len(self._queue) == 0

    def get_stats(self) -> dict:
        """Get queue statistics."""
        with self._lock:
            return {
                "current_size": len(self._queue),
                "max_size": self.config.max_size,
                "total_enqueued": self._total_enqueued,
                "total_dequeued": self._total_dequeued,
                "closed": self._closed,
                "utilization": len(self._queue) / self.config.max_size,
            }

    def _pop(self) -> AnalyticsEvent:
        # Caller holds the lock
        event = self._queue.popleft()
        self._total_dequeued += 1
        self._not_full.notify()
        return event
