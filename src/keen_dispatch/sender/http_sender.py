"""HTTP sender for posting event batches to the collector API.

Each flush becomes exactly one POST whose JSON body maps collection names to
the list of payloads queued under them. Delivery is best effort: a batch
that cannot be serialized or posted is logged and dropped, never retried.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from loguru import logger

from ..core.events import Batch

KEEN_API_URL = "https://api.keen.io/3.0/projects/"


@dataclass
class SenderConfig:
    """Configuration for the HTTP sender."""

    project_id: str = ""  # Destination project on the collector
    write_key: str = ""  # Write credential, sent as the api_key query parameter
    api_url: str = KEEN_API_URL  # Base URL, project id is appended
    timeout_seconds: Optional[float] = None  # None = no timeout on the write

    @property
    def events_url(self) -> str:
        """URL events are posted to, including project details."""
        base = self.api_url if self.api_url.endswith("/") else self.api_url + "/"
        return f"{base}{quote(self.project_id, safe='')}/events?api_key={quote(self.write_key, safe='')}"


class HTTPSender:
    """Posts batches of events to the collector, one request per batch."""

    def __init__(self, config: Optional[SenderConfig] = None):
        """Initialize the HTTP sender.

        Args:
            config: Sender configuration
        """
        self.config = config or SenderConfig()

        # Statistics
        self._total_batches_sent = 0
        self._total_batches_failed = 0
        self._total_events_sent = 0
        self._total_send_time = 0.0
        self._last_successful_send: Optional[datetime] = None
        self._last_error: Optional[str] = None

    def send_batch(self, batch: Batch) -> Tuple[bool, str]:
        """Send a batch of events in a single request.

        Args:
            batch: Mapping of collection name to payloads

        Returns:
            Tuple of (success, error_message)
        """
        event_count = sum(len(payloads) for payloads in batch.values())
        if event_count == 0:
            return True, ""

        try:
            body = json.dumps(batch).encode("utf-8")
        except (TypeError, ValueError) as e:
            return self._record_failure(f"Couldn't serialize {event_count} events: {e}")

        start_time = time.monotonic()
        success, error_msg = self._post(body)
        send_time = time.monotonic() - start_time
        self._total_send_time += send_time

        if not success:
            return self._record_failure(f"Failed to post {event_count} events: {error_msg}")

        self._total_batches_sent += 1
        self._total_events_sent += event_count
        self._last_successful_send = datetime.now()
        self._last_error = None
        logger.info(f"Sent {event_count} events in {len(batch)} collections in {send_time:.3f}s")
        return True, ""

    def get_stats(self) -> Dict[str, Any]:
        """Get sender statistics.

        Returns:
            Dictionary with sender statistics
        """
        attempts = self._total_batches_sent + self._total_batches_failed

        return {
            "total_batches_sent": self._total_batches_sent,
            "total_batches_failed": self._total_batches_failed,
            "total_events_sent": self._total_events_sent,
            "success_rate": self._total_batches_sent / max(1, attempts),
            "average_send_time_seconds": self._total_send_time / max(1, attempts),
            "last_successful_send": self._last_successful_send.isoformat() if self._last_successful_send else None,
            "last_error": self._last_error,
        }

    def _post(self, body: bytes) -> Tuple[bool, str]:
        """Send a single HTTP request.

        Args:
            body: Encoded JSON document

        Returns:
            Tuple of (success, error_message)
        """
        req = Request(
            self.config.events_url,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            if self.config.timeout_seconds is None:
                response_cm = urlopen(req)
            else:
                response_cm = urlopen(req, timeout=self.config.timeout_seconds)

            with response_cm as response:
                response.read()
                if response.status != 200:
                    return False, f"HTTP {response.status}: {response.reason}"
                return True, ""

        except HTTPError as e:
            return False, f"HTTP error: {e.code} {e.reason}"

        except URLError as e:
            return False, f"Network error: {e.reason}"

        except Exception as e:
            return False, f"Request error: {e}"

    def _record_failure(self, error_msg: str) -> Tuple[bool, str]:
        self._total_batches_failed += 1
        self._last_error = error_msg
        logger.error(f"{error_msg}. Batch dropped")
        return False, error_msg


def create_default_sender(project_id: str, write_key: str) -> HTTPSender:
    """Create an HTTP sender for the hosted collector API.

    Args:
        project_id: Destination project identifier
        write_key: Write credential for the project

    Returns:
        Configured HTTP sender
    """
    return HTTPSender(SenderConfig(project_id=project_id, write_key=write_key))
