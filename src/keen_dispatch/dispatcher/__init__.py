"""Dispatch module coordinating queue, accumulator and sender."""

from .event_dispatcher import BatchSender, DispatcherClosedError, DispatcherState, EventDispatcher, create_dispatcher

__all__ = ["EventDispatcher", "DispatcherState", "DispatcherClosedError", "BatchSender", "create_dispatcher"]
