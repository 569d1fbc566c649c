import json
from datetime import datetime, timezone

import requests

from services.logging.client import (
    INGESTION_URL,
    LogShipper,
    MISSING_KEY_MESSAGE,
    SUCCESS_MESSAGE,
    utc_timestamp,
)
from services.logging.config import LoggerConfig


class StubResponse:
    def __init__(self, status_code=202, text=""):
        self.status_code = status_code
        self.text = text


class StubSession:
    def __init__(self, response=None, error=None):
        self.response = response or StubResponse()
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


FIXED_NOW = datetime(2024, 5, 17, 8, 30, 5, tzinfo=timezone.utc)


def _shipper(session, api_key="tok_123"):
    return LogShipper(LoggerConfig(api_key=api_key), session=session, clock=lambda: FIXED_NOW)


def test_missing_api_key_skips_network():
    session = StubSession()
    result = _shipper(session, api_key=None).send("hello")
    assert result.delivered is False
    assert result.message == MISSING_KEY_MESSAGE
    assert "API key is not set" in str(result)
    assert session.calls == []


def test_delivered_on_202_with_bearer_and_json_body():
    session = StubSession(StubResponse(202))
    result = _shipper(session).send("hello")

    assert result.delivered is True
    assert result.message == SUCCESS_MESSAGE
    assert result.status_code == 202

    url, kwargs = session.calls[0]
    assert url == INGESTION_URL
    assert kwargs["json"] == {"dt": "2024-05-17 08:30:05 UTC", "message": "hello"}
    assert kwargs["headers"]["Authorization"] == "Bearer tok_123"
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["timeout"] == 15
    assert len(session.calls) == 1


def test_rejection_reports_status_and_body():
    session = StubSession(StubResponse(500, "oops"))
    result = _shipper(session).send("hello")
    assert result.delivered is False
    assert "500" in result.message
    assert "oops" in result.message
    assert result.status_code == 500
    assert len(session.calls) == 1


def test_any_status_other_than_202_fails():
    for status in (200, 201, 204, 401, 403, 429, 503):
        session = StubSession(StubResponse(status, "nope"))
        result = _shipper(session).send("x")
        assert result.delivered is False
        assert str(status) in result.message


def test_transport_error_is_reported_not_raised():
    session = StubSession(error=requests.ConnectionError("connection refused"))
    result = _shipper(session).send("hello")
    assert result.delivered is False
    assert result.message == "Failed to send log message. Error: connection refused"
    assert result.status_code is None


def test_empty_and_long_messages_are_sent_untouched():
    session = StubSession()
    long_message = "x" * 100_000
    _shipper(session).send("")
    _shipper(session).send(long_message)
    assert session.calls[0][1]["json"]["message"] == ""
    assert session.calls[1][1]["json"]["message"] == long_message


def test_body_serializes_to_expected_shape():
    session = StubSession()
    _shipper(session).send("hello")
    body = json.dumps(session.calls[0][1]["json"], separators=(",", ":"))
    assert body == '{"dt":"2024-05-17 08:30:05 UTC","message":"hello"}'


def test_utc_timestamp_converts_aware_times():
    from datetime import timedelta

    local = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert utc_timestamp(local) == "2024-01-01 08:00:00 UTC"
