"""Event accumulator for collecting events into per-collection batches.

The accumulator groups payloads by collection so a whole batch can be sent
to the collector as a single write. It is owned by the dispatch worker and
is never shared between threads, so it carries no lock.
"""

from __future__ import annotations

from typing import Any, Dict, List

from loguru import logger

from ..core.events import AnalyticsEvent, Batch


class EventAccumulator:
    """Aggregates event payloads by collection until the next flush."""

    def __init__(self) -> None:
        self._events: Dict[str, List[Any]] = {}
        self._count = 0

    @property
    def count(self) -> int:
        """Number of events buffered since the last take_all()."""
        return self._count

    def __len__(self) -> int:
        return self._count

    def is_empty(self) -> bool:
        return self._count == 0

    def add(self, event: AnalyticsEvent) -> bool:
        """Append an event's payload under its collection.

        Args:
            event: Event to buffer

        Returns:
            True if the event was buffered, False for a null event
        """
        if event.is_null():
            logger.debug("Ignoring event without a collection")
            return False

        self._events.setdefault(event.collection, []).append(event.data)
        self._count += 1
        return True

    def take_all(self) -> Batch:
        """Return everything buffered and reset to empty."""
        batch = self._events
        self._events = {}
        self._count = 0
        return batch

    def get_stats(self) -> Dict[str, Any]:
        return {
            "buffered_events": self._count,
            "collections": {name: len(payloads) for name, payloads in self._events.items()},
        }
