"""Event model for the dispatch pipeline.

Events flow through the dispatcher as: Producer → Queue → Accumulator → Sender → API
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

# A flushed batch: collection name -> payloads in enqueue order
Batch = Dict[str, List[Any]]


@dataclass(frozen=True)
class AnalyticsEvent:
    """A single analytics event tagged with the collection it belongs to."""

    collection: str
    data: Any = None

    def is_null(self) -> bool:
        """Check if this event has no collection and must not be batched."""
        return not self.collection
