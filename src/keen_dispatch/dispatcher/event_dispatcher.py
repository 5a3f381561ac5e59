"""Event dispatcher that batches queued events and posts them to the collector.

This module coordinates the event flow:
Producers → EventQueue → EventAccumulator → HTTPSender → API

A single worker thread owns the accumulator and is the only caller of the
sender. It blocks for one event, drains whatever else is already queued
without blocking, then flushes everything as one request. Under light load
each event goes out on its own almost immediately; under heavy load events
pile up while a request is in flight and go out together in the next one.
"""

from __future__ import annotations

import threading
from contextlib import suppress
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Tuple

from loguru import logger

from ..batcher import EventAccumulator
from ..config import ConfigurationError, DispatcherConfig
from ..core.events import AnalyticsEvent, Batch
from ..queuer import EventQueue, QueueClosedError, QueueConfig
from ..sender import HTTPSender, SenderConfig


class BatchSender(Protocol):
    """Anything that can deliver one batch per call."""

    def send_batch(self, batch: Batch) -> Tuple[bool, str]: ...


class DispatcherState(str, Enum):
    """Lifecycle of a dispatcher."""

    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"


class DispatcherClosedError(RuntimeError):
    """Raised when queueing to, or closing, a dispatcher that is already closed."""


class EventDispatcher:
    """Queues analytics events and sends them in batches from a background thread."""

    def __init__(self, config: DispatcherConfig, sender: Optional[BatchSender] = None):
        """Create the dispatcher and start its worker thread.

        Args:
            config: Dispatcher configuration
            sender: Transport for flushed batches, defaults to an HTTPSender built from config

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        is_valid, errors = config.validate(require_destination=sender is None)
        if not is_valid:
            raise ConfigurationError(f"Invalid dispatcher configuration: {', '.join(errors)}")

        self.config = config
        self.sender: BatchSender = sender or HTTPSender(SenderConfig(**config.get_sender_config()))

        self._queue = EventQueue(QueueConfig(**config.get_queue_config()))
        self._accumulator = EventAccumulator()
        self._state = DispatcherState.RUNNING
        self._state_lock = threading.Lock()
        self._done = threading.Event()

        # Statistics, only written by the worker
        self._total_events_batched = 0
        self._total_null_events = 0
        self._total_flushes = 0
        self._total_flushes_failed = 0

        self._thread = threading.Thread(target=self._run, name="keen-dispatcher", daemon=True)
        self._thread.start()
        logger.info(f"Started event dispatcher for project {config.project_id or '<custom sender>'}")

    def __enter__(self) -> EventDispatcher:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.state is DispatcherState.RUNNING:
            self.close()
        elif self._thread.is_alive():
            # A timed out close() left the worker still flushing
            self._thread.join()

    @property
    def state(self) -> DispatcherState:
        with self._state_lock:
            return self._state

    def queue(self, collection: str, data: Any) -> None:
        """Queue an event for sending.

        data can be anything that is JSON serializable. The call returns as
        soon as the event is on the queue; it only waits if the queue is full.

        Args:
            collection: Collection the event belongs to
            data: Event payload

        Raises:
            DispatcherClosedError: If close() has been called
            QueueFullError: If a put timeout is configured and the queue stayed full
        """
        if self.state is not DispatcherState.RUNNING:
            raise DispatcherClosedError("Dispatcher is closed")

        try:
            self._queue.put(AnalyticsEvent(collection, data))
        except QueueClosedError as e:
            raise DispatcherClosedError("Dispatcher is closed") from e

    def close(self, timeout: Optional[float] = None) -> bool:
        """Close the dispatcher and wait for queued events to be sent.

        Args:
            timeout: Maximum time to wait for the worker, None waits indefinitely

        Returns:
            True if the worker flushed everything and exited, False on timeout

        Raises:
            DispatcherClosedError: If the dispatcher was already closed
        """
        with self._state_lock:
            if self._state is not DispatcherState.RUNNING:
                raise DispatcherClosedError("Dispatcher already closed")
            self._state = DispatcherState.CLOSING

        logger.debug("Closing dispatcher, flushing queued events")
        with suppress(QueueClosedError):
            self._queue.close()

        if not self._done.wait(timeout):
            logger.warning(f"Dispatcher did not finish flushing within {timeout}s")
            return False

        self._thread.join()
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get dispatcher statistics."""
        sender_stats = self.sender.get_stats() if hasattr(self.sender, "get_stats") else {}

        return {
            "state": self.state.value,
            "buffered_events": self._accumulator.count,
            "total_events_batched": self._total_events_batched,
            "total_null_events": self._total_null_events,
            "total_flushes": self._total_flushes,
            "total_flushes_failed": self._total_flushes_failed,
            "queue": self._queue.get_stats(),
            "sender": sender_stats,
            "config": {
                "send_threshold": self.config.send_threshold,
                "flush_on_threshold": self.config.flush_on_threshold,
                "queue_max_size": self.config.queue_max_size,
            },
        }

    def _run(self) -> None:
        """Main dispatch loop."""
        logger.debug("Started dispatch loop")

        try:
            # Block for the first event, then drain everything already queued
            while (event := self._queue.get()) is not None:
                try:
                    self._add(event)
                    self._drain()
                    self._flush()
                except Exception:
                    logger.exception("Error in dispatch loop, continuing")

            # Events buffered before an error in the last cycle
            self._flush()
        finally:
            # Producers blocked on a full queue must not wait on a dead worker
            with suppress(QueueClosedError):
                self._queue.close()
            with self._state_lock:
                self._state = DispatcherState.CLOSED
            self._done.set()
            logger.info(
                f"Dispatcher exited. Stats - Events: {self._total_events_batched}, Flushes: {self._total_flushes}, Failed flushes: {self._total_flushes_failed}"
            )

    def _drain(self) -> None:
        """Add queued events without waiting until the queue is momentarily empty."""
        while (event := self._queue.get_nowait()) is not None:
            if not self._add(event):
                break

    def _add(self, event: AnalyticsEvent) -> bool:
        """Add an event to the accumulator, flushing early past the send threshold."""
        if not self._accumulator.add(event):
            self._total_null_events += 1
            return False

        self._total_events_batched += 1

        if self.config.flush_on_threshold and self._accumulator.count > self.config.send_threshold:
            logger.debug(f"Send threshold {self.config.send_threshold} exceeded, flushing early")
            self._flush()

        return True

    def _flush(self) -> None:
        """Send everything accumulated as one batch, then forget it."""
        # Whether the send succeeds or not, the batch is gone after this
        batch = self._accumulator.take_all()
        if not batch:
            return

        self._total_flushes += 1
        try:
            success, _ = self.sender.send_batch(batch)
        except Exception:
            logger.exception("Sender raised while sending batch, batch dropped")
            success = False

        if not success:
            self._total_flushes_failed += 1


def create_dispatcher(project_id: str, write_key: str, **overrides: Any) -> EventDispatcher:
    """Create a dispatcher for the hosted collector API.

    Args:
        project_id: Destination project identifier
        write_key: Write credential for the project
        **overrides: Further DispatcherConfig fields

    Returns:
        Running dispatcher
    """
    config = DispatcherConfig(project_id=project_id, write_key=write_key, **overrides)
    return EventDispatcher(config)
