"""Tests for the request-reporting WSGI middleware."""

from wsgiref.util import setup_testing_defaults

import pytest
from pydantic import ValidationError

from keen_dispatch.middleware import EventMiddleware, RequestEvent
from keen_dispatch.middleware.wsgi_middleware import request_headers, request_uri


def _environ(**overrides):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(overrides)
    return environ


def _call(app, environ):
    statuses = []

    def start_response(status, headers, exc_info=None):
        statuses.append(status)

    result = app(environ, start_response)
    try:
        body = b"".join(result)
    finally:
        result.close()
    return statuses, body


def not_found_app(environ, start_response):
    start_response("404 Not Found", [("Content-Type", "text/plain")])
    return [b"missing"]


def ok_app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"hello"]


def test_request_is_reported(make_dispatcher, recording_sender):
    dispatcher = make_dispatcher(recording_sender)
    app = EventMiddleware(not_found_app, dispatcher, "apievents")

    environ = _environ(REQUEST_METHOD="POST", PATH_INFO="/things/1", QUERY_STRING="verbose=1", HTTP_USER_AGENT="pytest-agent", HTTP_X_REQUEST_ID="abc")
    statuses, body = _call(app, environ)
    assert dispatcher.close()

    assert statuses == ["404 Not Found"]
    assert body == b"missing"

    events = recording_sender.batches[0]["apievents"]
    assert len(events) == 1
    event = events[0]
    assert event["url"] == "/things/1?verbose=1"
    assert event["path"] == "/things/1"
    assert event["method"] == "POST"
    assert event["status_code"] == 404
    assert event["duration_ns"] >= 0
    assert event["user_agent"] == "pytest-agent"
    assert event["header"]["X-Request-Id"] == ["abc"]
    assert event["header"]["User-Agent"] == ["pytest-agent"]


def test_callback_adds_fields(make_dispatcher, recording_sender):
    dispatcher = make_dispatcher(recording_sender)

    def callback(environ, data):
        data["tenant"] = environ["myapp.tenant"]

    app = EventMiddleware(ok_app, dispatcher, "apievents", callback=callback)
    _call(app, _environ(**{"myapp.tenant": "acme"}))
    assert dispatcher.close()

    event = recording_sender.batches[0]["apievents"][0]
    assert event["tenant"] == "acme"
    assert event["status_code"] == 200


def test_failing_app_reported_as_500(make_dispatcher, recording_sender):
    dispatcher = make_dispatcher(recording_sender)

    def broken_app(environ, start_response):
        raise RuntimeError("handler failed")

    app = EventMiddleware(broken_app, dispatcher, "apievents")
    with pytest.raises(RuntimeError):
        app(_environ(), lambda status, headers, exc_info=None: None)
    assert dispatcher.close()

    assert recording_sender.batches[0]["apievents"][0]["status_code"] == 500


def test_closed_dispatcher_does_not_break_requests(make_dispatcher, recording_sender):
    dispatcher = make_dispatcher(recording_sender)
    dispatcher.close()

    app = EventMiddleware(ok_app, dispatcher, "apievents")
    statuses, body = _call(app, _environ())

    assert statuses == ["200 OK"]
    assert body == b"hello"
    assert recording_sender.write_count == 0


def test_request_uri():
    assert request_uri({"RAW_URI": "/a%20b?x=1", "PATH_INFO": "/a b"}) == "/a%20b?x=1"
    assert request_uri({"SCRIPT_NAME": "/app", "PATH_INFO": "/a b", "QUERY_STRING": "x=1"}) == "/app/a%20b?x=1"
    assert request_uri({"PATH_INFO": "/plain"}) == "/plain"


def test_request_headers():
    headers = request_headers({"HTTP_ACCEPT_ENCODING": "gzip", "CONTENT_TYPE": "application/json", "CONTENT_LENGTH": "", "PATH_INFO": "/"})
    assert headers == {"Accept-Encoding": ["gzip"], "Content-Type": ["application/json"]}


def test_request_event_validation():
    with pytest.raises(ValidationError):
        RequestEvent(url="/", path="/", method="GET", status_code=42, duration_ns=1)

    with pytest.raises(ValidationError):
        RequestEvent(url="/", path="/", method="GET", duration_ns=1, unexpected=True)


def test_nonstandard_status_is_reported(make_dispatcher, recording_sender):
    dispatcher = make_dispatcher(recording_sender)

    def custom_status_app(environ, start_response):
        start_response("600 Custom", [])
        return [b""]

    app = EventMiddleware(custom_status_app, dispatcher, "apievents")
    statuses, _ = _call(app, _environ())
    assert dispatcher.close()

    assert statuses == ["600 Custom"]
    assert recording_sender.batches[0]["apievents"][0]["status_code"] == 600


def test_reported_values_are_not_altered(make_dispatcher, recording_sender):
    dispatcher = make_dispatcher(recording_sender)
    app = EventMiddleware(ok_app, dispatcher, "apievents")

    _call(app, _environ(HTTP_USER_AGENT=" agent ", RAW_URI="/padded "))
    assert dispatcher.close()

    event = recording_sender.batches[0]["apievents"][0]
    assert event["user_agent"] == " agent "
    assert event["url"] == "/padded "


def test_failing_callback_does_not_break_request(make_dispatcher, recording_sender):
    dispatcher = make_dispatcher(recording_sender)

    def callback(environ, data):
        raise KeyError("missing")

    app = EventMiddleware(ok_app, dispatcher, "apievents", callback=callback)
    statuses, body = _call(app, _environ())
    assert dispatcher.close()

    assert statuses == ["200 OK"]
    assert body == b"hello"
    assert recording_sender.write_count == 0


def test_invalid_status_does_not_break_request(make_dispatcher, recording_sender):
    dispatcher = make_dispatcher(recording_sender)

    def tiny_status_app(environ, start_response):
        start_response("42 Odd", [])
        return [b"odd"]

    app = EventMiddleware(tiny_status_app, dispatcher, "apievents")
    statuses, body = _call(app, _environ())
    assert dispatcher.close()

    assert body == b"odd"
    assert recording_sender.write_count == 0
