"""
Tests for the push gateway dispatcher.

The gateway is replaced by an httpx.MockTransport so every request can be
inspected and every answer chosen per endpoint.
"""

import json

import httpx
import pytest

from lesson_ledger.services.notification import PushGatewayDispatcher, SQLChannelStore
from tests.utils.notification import InMemoryChannelStore

GATEWAY_URL = "https://push-gateway.internal/send"
PAYLOAD = {"title": "Course reminder", "body": "Jan 03 (Wed) Piano", "tag": "course-crs_1-2024-01-03"}


def _subscription(name: str) -> dict:
    return {"endpoint": f"https://fcm.googleapis.com/fcm/send/{name}", "keys": {"p256dh": "k", "auth": "a"}}


class TestPushGatewayDispatcher:

    def setup_method(self):
        self.store = InMemoryChannelStore()
        self.requests = []
        self.answers = {}

    def _dispatcher(self, gateway_url=GATEWAY_URL) -> PushGatewayDispatcher:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            self.requests.append((request, body))
            answer = self.answers.get(body["subscription"]["endpoint"], 201)
            if isinstance(answer, tuple):
                exc_class, message = answer
                raise exc_class(message, request=request)
            return httpx.Response(answer)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        return PushGatewayDispatcher(self.store, gateway_url=gateway_url, client=client)

    def test_no_channels_reports_no_channels(self):
        result = self._dispatcher().notify("user_1", PAYLOAD)

        assert result.no_channels
        assert not result.ok
        assert self.requests == []

    def test_posts_once_per_channel(self):
        self.store.register_channel("user_1", _subscription("a"))
        self.store.register_channel("user_1", _subscription("b"))

        result = self._dispatcher().notify("user_1", PAYLOAD)

        assert result.ok
        assert len(result.channels) == 2
        assert len(self.requests) == 2
        request, body = self.requests[0]
        assert request.headers["x-internal-api-key"] is not None
        assert body["payload"] == PAYLOAD
        assert body["subscription"]["keys"] == {"p256dh": "k", "auth": "a"}

    def test_one_failing_channel_does_not_stop_others(self):
        self.store.register_channel("user_1", _subscription("a"))
        self.store.register_channel("user_1", _subscription("b"))
        self.answers[_subscription("a")["endpoint"]] = 500

        result = self._dispatcher().notify("user_1", PAYLOAD)

        assert result.ok
        assert [c.ok for c in result.channels] == [False, True]
        assert result.failures[0].error == "http_500"

    @pytest.mark.parametrize("status_code", [404, 410])
    def test_gone_subscription_is_unregistered(self, status_code):
        self.store.register_channel("user_1", _subscription("a"))
        self.answers[_subscription("a")["endpoint"]] = status_code

        result = self._dispatcher().notify("user_1", PAYLOAD)

        assert not result.ok
        assert result.channels[0].error == "subscription_gone"
        assert self.store.channels_for("user_1") == []

    def test_timeout_is_reported_per_channel(self):
        self.store.register_channel("user_1", _subscription("a"))
        self.answers[_subscription("a")["endpoint"]] = (httpx.ReadTimeout, "too slow")

        result = self._dispatcher().notify("user_1", PAYLOAD)

        assert not result.ok
        assert result.channels[0].error == "timeout"
        assert "timeout" in result.error_summary()

    def test_connection_error_is_reported_per_channel(self):
        self.store.register_channel("user_1", _subscription("a"))
        self.answers[_subscription("a")["endpoint"]] = (httpx.ConnectError, "refused")

        result = self._dispatcher().notify("user_1", PAYLOAD)

        assert not result.ok
        assert "refused" in result.channels[0].error

    def test_unconfigured_gateway_fails_without_requests(self):
        self.store.register_channel("user_1", _subscription("a"))

        result = self._dispatcher(gateway_url="").notify("user_1", PAYLOAD)

        assert not result.no_channels
        assert not result.ok
        assert result.channels[0].error == "gateway_not_configured"
        assert self.requests == []


def test_sql_channel_store_round_trip(session_factory):
    store = SQLChannelStore(session_factory)

    store.register_channel("user_1", _subscription("a"))
    store.register_channel("user_1", {**_subscription("a"), "keys": {"p256dh": "new", "auth": "a"}})
    store.register_channel("user_2", _subscription("b"))

    channels = store.channels_for("user_1")
    assert len(channels) == 1
    assert channels[0]["keys"]["p256dh"] == "new"
    assert store.unregister_channel("user_1", _subscription("a")["endpoint"]) is True
    assert store.unregister_channel("user_1", _subscription("a")["endpoint"]) is False
    assert store.channels_for("user_1") == []
    assert len(store.channels_for("user_2")) == 1
