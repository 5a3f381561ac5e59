"""Configuration for the event dispatcher.

Values come from constructor arguments, with environment variable overrides
applied on top so deployments can point a dispatcher elsewhere without code
changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from ..sender.http_sender import KEEN_API_URL


class ConfigurationError(ValueError):
    """Raised when a dispatcher is built from an invalid configuration."""


@dataclass
class DispatcherConfig:
    """Complete dispatcher configuration."""

    # Destination
    project_id: str = ""
    write_key: str = ""
    api_url: str = KEEN_API_URL

    # Queue settings
    queue_max_size: int = 100
    queue_put_timeout_seconds: Optional[float] = None

    # Batching settings
    send_threshold: int = 90  # Flush early once more events than this are buffered
    flush_on_threshold: bool = True

    # Sender settings
    timeout_seconds: Optional[float] = None

    def __post_init__(self):
        """Apply environment variable overrides."""
        self._apply_env_overrides()

    def _apply_env_overrides(self):
        """Apply configuration overrides from environment variables."""
        if project_id := os.getenv("KEEN_PROJECT_ID"):
            self.project_id = project_id

        if write_key := os.getenv("KEEN_WRITE_KEY"):
            self.write_key = write_key

        if api_url := os.getenv("KEEN_API_URL"):
            self.api_url = api_url

        if queue_max_size := os.getenv("KEEN_QUEUE_MAX_SIZE"):
            try:
                self.queue_max_size = int(queue_max_size)
            except ValueError:
                logger.warning(f"Invalid queue max size: {queue_max_size}")

        if send_threshold := os.getenv("KEEN_SEND_THRESHOLD"):
            try:
                self.send_threshold = int(send_threshold)
            except ValueError:
                logger.warning(f"Invalid send threshold: {send_threshold}")

        if timeout_seconds := os.getenv("KEEN_TIMEOUT_SECONDS"):
            try:
                self.timeout_seconds = float(timeout_seconds)
            except ValueError:
                logger.warning(f"Invalid timeout: {timeout_seconds}")

        if flush_on_threshold := os.getenv("KEEN_FLUSH_ON_THRESHOLD"):
            self.flush_on_threshold = flush_on_threshold.strip().lower() in ("1", "true", "yes", "on")

    def get_queue_config(self) -> dict:
        """Get configuration for the event queue."""
        return {
            "max_size": self.queue_max_size,
            "put_timeout_seconds": self.queue_put_timeout_seconds,
        }

    def get_sender_config(self) -> dict:
        """Get configuration for the HTTP sender."""
        return {
            "project_id": self.project_id,
            "write_key": self.write_key,
            "api_url": self.api_url,
            "timeout_seconds": self.timeout_seconds,
        }

    def validate(self, require_destination: bool = True) -> tuple[bool, list[str]]:
        """Validate the configuration.

        Args:
            require_destination: Whether project ID and write key must be set

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors = []

        if require_destination:
            if not self.project_id:
                errors.append("Project ID is required")

            if not self.write_key:
                errors.append("Write key is required")

            if not self.api_url:
                errors.append("API URL is required")

        if self.queue_max_size <= 0:
            errors.append("Queue max size must be positive")

        if self.send_threshold <= 0:
            errors.append("Send threshold must be positive")

        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            errors.append("Timeout must be positive")

        return len(errors) == 0, errors
