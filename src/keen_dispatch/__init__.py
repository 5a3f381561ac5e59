"""Keen Dispatch - asynchronous batching of analytics events to a collector API."""

from .config import DispatcherConfig, setup_logging
from .dispatcher import DispatcherClosedError, DispatcherState, EventDispatcher, create_dispatcher

__version__ = "1.0.0"

__all__ = ["EventDispatcher", "DispatcherConfig", "DispatcherState", "DispatcherClosedError", "create_dispatcher", "setup_logging"]
