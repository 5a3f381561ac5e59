"""Event batching module for efficient transmission."""

from .event_accumulator import EventAccumulator

__all__ = ["EventAccumulator"]
