"""
Tests for the /webhook endpoint.

Tests cover:
- Valid callback published and echoed back (200)
- Missing `to` / `msisdn` (400, empty body, nothing published)
- Broker failures reported as 5xx, never as success
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import AuthenticationError, ConnectionError, ResponseError

from smsrelay.broker import get_redis
from smsrelay.main import app


@pytest.fixture
def client(broker):
    """Test client with the in-memory broker injected."""
    app.dependency_overrides[get_redis] = lambda: broker
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def valid_params() -> dict:
    return {
        "to": "15550001111",
        "msisdn": "447911123456",
        "messageId": "0A0000001234567B",
        "text": "Hello",
        "type": "SMS",
        "message-timestamp": "1700000000000",
    }


def failing_client(exc):
    """Test client whose broker raises `exc` on publish."""
    broker = AsyncMock()
    broker.publish.side_effect = exc
    app.dependency_overrides[get_redis] = lambda: broker
    return TestClient(app), broker


class TestWebhookSuccess:
    """Valid callbacks are published before the response is sent."""

    def test_publish_and_respond(self, client, broker, valid_params):
        response = client.get("/webhook", params=valid_params)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "messageId": "0A0000001234567B",
            "from": "447911123456",
            "text": "Hello",
            "type": "SMS",
            "timestamp": "1700000000000",
        }
        assert len(broker.published) == 1
        channel, payload = broker.published[0]
        assert channel == "sms-notifications"
        envelope = json.loads(payload)
        assert envelope["name"] == "smsEvent"
        assert envelope["data"]["from"] == "447911123456"

    def test_post_with_query_params(self, client, broker, valid_params):
        response = client.post("/webhook", params=valid_params)

        assert response.status_code == 200
        assert len(broker.published) == 1

    def test_optional_fields_absent(self, client, broker):
        response = client.get("/webhook", params={"to": "15550001111", "msisdn": "447911123456"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "messageId": None,
            "from": "447911123456",
            "text": None,
            "type": None,
            "timestamp": None,
        }

    def test_repeated_callback_published_again(self, client, broker, valid_params):
        client.get("/webhook", params=valid_params)
        client.get("/webhook", params=valid_params)

        assert len(broker.published) == 2

    def test_request_id_header(self, client, valid_params):
        response = client.get("/webhook", params=valid_params)

        assert "X-Request-ID" in response.headers


class TestWebhookValidation:
    """Invalid callbacks are rejected with an empty 400."""

    @pytest.mark.parametrize("field", ["to", "msisdn"])
    def test_missing_field(self, client, broker, valid_params, field):
        del valid_params[field]
        response = client.get("/webhook", params=valid_params)

        assert response.status_code == 400
        assert response.content == b""
        assert broker.published == []

    @pytest.mark.parametrize("field", ["to", "msisdn"])
    def test_empty_field(self, client, broker, valid_params, field):
        valid_params[field] = ""
        response = client.get("/webhook", params=valid_params)

        assert response.status_code == 400
        assert response.content == b""
        assert broker.published == []


class TestWebhookPublishFailure:
    """Broker failures never produce a success response."""

    def test_unreachable(self, valid_params):
        test_client, broker = failing_client(ConnectionError("refused"))
        try:
            with test_client:
                response = test_client.get("/webhook", params=valid_params)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json() == {"success": False, "detail": "broker unreachable"}
        assert broker.publish.await_count == 1

    def test_unauthorized(self, valid_params):
        test_client, broker = failing_client(AuthenticationError("invalid password"))
        try:
            with test_client:
                response = test_client.get("/webhook", params=valid_params)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 502
        assert response.json() == {"success": False, "detail": "broker rejected credentials"}
        assert broker.publish.await_count == 1

    def test_error_reply(self, valid_params):
        test_client, broker = failing_client(ResponseError("READONLY You can't write against a read only replica."))
        try:
            with test_client:
                response = test_client.get("/webhook", params=valid_params)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json() == {"success": False, "detail": "broker error"}
        assert "X-Request-ID" in response.headers
        assert broker.publish.await_count == 1
