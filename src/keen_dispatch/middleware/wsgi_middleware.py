"""WSGI middleware that reports every HTTP request to the collector.

Wrap any WSGI application and pass it a running dispatcher:

    dispatcher = create_dispatcher(project_id, write_key)
    app = EventMiddleware(app, dispatcher, "apievents")

To add your own data to the events reported, pass a callback. It receives the
WSGI environ and the event dict and may add or change keys in place:

    def callback(environ, data):
        data["my_parameter"] = environ.get("myapp.important_info")

    app = EventMiddleware(app, dispatcher, "apievents", callback=callback)
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional
from urllib.parse import quote

from loguru import logger

from ..dispatcher import DispatcherClosedError, EventDispatcher
from .models import RequestEvent

EventCallback = Callable[[Dict[str, Any], Dict[str, Any]], None]

# CGI variables that carry request headers without the HTTP_ prefix
_UNPREFIXED_HEADERS = {"CONTENT_TYPE": "Content-Type", "CONTENT_LENGTH": "Content-Length"}


class EventMiddleware:
    """Reports url, method, status and timing for each request handled by the wrapped app."""

    def __init__(
        self,
        app: Callable,
        dispatcher: EventDispatcher,
        collection: str,
        callback: Optional[EventCallback] = None,
    ):
        self.app = app
        self.dispatcher = dispatcher
        self.collection = collection
        self.callback = callback

    def __call__(self, environ: Dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        start = time.perf_counter_ns()
        status = {"code": 200}

        def tracking_start_response(status_line: str, headers: list, exc_info=None):
            status["code"] = int(status_line.split(" ", 1)[0])
            if exc_info is None:
                return start_response(status_line, headers)
            return start_response(status_line, headers, exc_info)

        try:
            result = self.app(environ, tracking_start_response)
        except Exception:
            status["code"] = 500
            self._report(environ, status["code"], time.perf_counter_ns() - start)
            raise

        return _ReportingIterable(result, lambda: self._report(environ, status["code"], time.perf_counter_ns() - start))

    def _report(self, environ: Dict[str, Any], status_code: int, duration_ns: int) -> None:
        """Queue the request event. Reporting problems never reach the WSGI server."""
        path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")

        try:
            event = RequestEvent(
                url=request_uri(environ),
                path=path,
                method=environ.get("REQUEST_METHOD", "GET"),
                status_code=status_code,
                duration_ns=duration_ns,
                user_agent=environ.get("HTTP_USER_AGENT", ""),
                header=request_headers(environ),
            )
            data = event.model_dump()

            if self.callback is not None:
                self.callback(environ, data)

            self.dispatcher.queue(self.collection, data)

        except DispatcherClosedError:
            logger.warning(f"Dispatcher closed, request event for {path} not reported")

        except Exception:
            logger.exception(f"Failed to report request event for {path}")


class _ReportingIterable:
    """Response wrapper that reports the request once the server closes the response."""

    def __init__(self, iterable: Iterable[bytes], on_close: Callable[[], None]):
        self._iterable = iterable
        self._on_close = on_close

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._iterable)

    def close(self) -> None:
        try:
            if hasattr(self._iterable, "close"):
                self._iterable.close()
        finally:
            self._on_close()


def request_uri(environ: Dict[str, Any]) -> str:
    """Rebuild the request URI as the client sent it."""
    if raw := environ.get("RAW_URI") or environ.get("REQUEST_URI"):
        return raw

    uri = quote(environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", ""), safe="/;=,")
    if query := environ.get("QUERY_STRING"):
        uri += "?" + query
    return uri


def request_headers(environ: Dict[str, Any]) -> Dict[str, List[str]]:
    """Collect request headers from the environ, keyed by canonical header name."""
    headers: Dict[str, List[str]] = {}

    for key, value in environ.items():
        if key in _UNPREFIXED_HEADERS:
            name = _UNPREFIXED_HEADERS[key]
        elif key.startswith("HTTP_"):
            name = "-".join(part.capitalize() for part in key[5:].split("_"))
        else:
            continue

        if value:
            headers[name] = [str(value)]

    return headers
