"""Configuration module for the event dispatcher."""

from .logger_config import setup_logging
from .settings import ConfigurationError, DispatcherConfig

__all__ = ["DispatcherConfig", "ConfigurationError", "setup_logging"]
