"""Shared fixtures: a recording sender, a local collector and dispatcher factories."""

import copy
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

import pytest

from keen_dispatch import DispatcherConfig, DispatcherState, EventDispatcher


class RecordingSender:
    """Sender stand-in that keeps every batch it is asked to send."""

    def __init__(self, delay: float = 0.0, fail: bool = False, raise_error: bool = False):
        self.delay = delay
        self.fail = fail
        self.raise_error = raise_error
        self.gate = None
        self.entered = threading.Event()
        self.batches = []
        self._lock = threading.Lock()

    def send_batch(self, batch):
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.delay:
            time.sleep(self.delay)

        with self._lock:
            self.batches.append(copy.deepcopy(batch))

        if self.raise_error:
            raise RuntimeError("simulated transport crash")
        if self.fail:
            return False, "simulated failure"
        return True, ""

    @property
    def write_count(self):
        with self._lock:
            return len(self.batches)

    def event_count(self):
        with self._lock:
            return sum(len(payloads) for batch in self.batches for payloads in batch.values())

    def batch_sizes(self):
        with self._lock:
            return [sum(len(payloads) for payloads in batch.values()) for batch in self.batches]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep KEEN_* variables from the outer environment out of the tests."""
    for name in (
        "KEEN_PROJECT_ID",
        "KEEN_WRITE_KEY",
        "KEEN_API_URL",
        "KEEN_QUEUE_MAX_SIZE",
        "KEEN_SEND_THRESHOLD",
        "KEEN_TIMEOUT_SECONDS",
        "KEEN_FLUSH_ON_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def recording_sender():
    return RecordingSender()


@pytest.fixture
def sender_factory():
    return RecordingSender


@pytest.fixture
def make_dispatcher():
    """Build dispatchers and make sure none is left running after the test."""
    created = []

    def factory(sender=None, **overrides):
        config = DispatcherConfig(project_id=overrides.pop("project_id", "test-project"), write_key=overrides.pop("write_key", "test-key"), **overrides)
        dispatcher = EventDispatcher(config, sender=sender)
        created.append(dispatcher)
        return dispatcher

    yield factory

    for dispatcher in created:
        if dispatcher.state is DispatcherState.RUNNING:
            dispatcher.close(timeout=5.0)


@pytest.fixture
def wait_for():
    def waiter(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return waiter


class CollectorHandler(BaseHTTPRequestHandler):
    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length)
        split = urlsplit(self.path)

        self.server.requests.append(
            {
                "path": split.path,
                "query": parse_qs(split.query),
                "content_type": self.headers.get("Content-Type"),
                "body": json.loads(body.decode("utf-8")),
            }
        )

        self.send_response(self.server.response_status)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(b"{}")

    def log_message(self, format, *args):
        pass


@pytest.fixture
def collector():
    """Local HTTP server standing in for the collector API."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), CollectorHandler)
    server.requests = []
    server.response_status = 200
    server.api_url = f"http://127.0.0.1:{server.server_address[1]}/3.0/projects/"

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield server

    server.shutdown()
    server.server_close()
    thread.join(timeout=5.0)
