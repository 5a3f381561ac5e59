"""HTTP transport module for sending batches to the collector API."""

from .http_sender import KEEN_API_URL, HTTPSender, SenderConfig, create_default_sender

__all__ = ["HTTPSender", "SenderConfig", "KEEN_API_URL", "create_default_sender"]
