"""Event queuing module between producers and the dispatch worker."""

from .event_queue import EventQueue, QueueClosedError, QueueConfig, QueueFullError

__all__ = ["EventQueue", "QueueConfig", "QueueClosedError", "QueueFullError"]
