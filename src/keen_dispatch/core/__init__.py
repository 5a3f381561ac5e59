"""Core event types shared by the dispatch components."""

from .events import AnalyticsEvent, Batch

__all__ = ["AnalyticsEvent", "Batch"]
