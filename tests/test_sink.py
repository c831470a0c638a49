from __future__ import annotations

import base64

import requests

from visitor_log.sink import HttpSink, NullSink, resolve_sink_endpoint

from _fakes import CapturingLogger, FakeSession, make_record

ENDPOINT = "https://sink.example.test/exec"


def test_record_is_posted_as_json() -> None:
    session = FakeSession()
    sink = HttpSink(ENDPOINT, session=session, timeout_s=1.5, background=False)
    record = make_record(1)

    sink.deliver(record)

    ((url, kwargs),) = session.post_calls
    assert url == ENDPOINT
    assert kwargs["json"] == record.to_dict()
    assert kwargs["timeout"] == 1.5


def test_rejected_delivery_is_swallowed_and_reported(event_logger: CapturingLogger) -> None:
    sink = HttpSink(
        ENDPOINT,
        session=FakeSession(post_result=500),
        event_logger=event_logger,
        background=False,
    )

    sink.deliver(make_record(1))

    (event,) = event_logger.of_type("sink_failed")
    assert event["record_id"] == "rec-0001"
    assert "HTTP 500" in event["error"]


def test_network_errors_are_swallowed(event_logger: CapturingLogger) -> None:
    sink = HttpSink(
        ENDPOINT,
        session=FakeSession(post_result=requests.exceptions.ConnectionError("offline")),
        event_logger=event_logger,
    )

    sink.deliver(make_record(1))
    sink.flush(2.0)

    assert event_logger.of_type("sink_failed")[0]["error"].startswith("ConnectionError")


def test_background_delivery_completes_on_flush() -> None:
    session = FakeSession()
    sink = HttpSink(ENDPOINT, session=session)

    sink.deliver(make_record(1))
    sink.deliver(make_record(2))
    sink.flush(2.0)

    assert len(session.post_calls) == 2


def test_null_sink_accepts_records() -> None:
    sink = NullSink()

    sink.deliver(make_record(1))
    sink.flush()


def test_endpoint_resolution() -> None:
    encoded = "b64:" + base64.b64encode(ENDPOINT.encode()).decode()

    assert resolve_sink_endpoint("SINK", {"SINK": ENDPOINT}) == ENDPOINT
    assert resolve_sink_endpoint("SINK", {"SINK": encoded}) == ENDPOINT
    assert resolve_sink_endpoint("SINK", {"SINK": "b64:%%%"}) is None
    assert resolve_sink_endpoint("SINK", {"SINK": "  "}) is None
    assert resolve_sink_endpoint("SINK", {}) is None
