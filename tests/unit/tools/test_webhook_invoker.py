"""Unit tests for webhook tool invocation."""

import json

import httpx
import pytest

from parley.tools.base import WebhookToolSpec
from parley.tools.builtin.webhook import WebhookInvoker, build_request


def _spec(**overrides) -> WebhookToolSpec:
    values = {"name": "lookup_order", "endpoint": "https://shop.example.com/orders"}
    values.update(overrides)
    return WebhookToolSpec(**values)


class TestBuildRequest:
    def test_post_sends_json_body(self):
        request = build_request(_spec(headers={"X-Shop": "1"}), {"order_id": "A1"})
        assert request["method"] == "POST"
        assert request["json"] == {"order_id": "A1"}
        assert request["headers"] == {"Content-Type": "application/json", "X-Shop": "1"}
        assert "params" not in request

    def test_get_sends_query_params(self):
        request = build_request(_spec(method="GET"), {"order_id": "A1", "limit": 5})
        assert request["params"] == {"order_id": "A1", "limit": "5"}
        assert "json" not in request

    def test_payload_string_is_decoded(self):
        request = build_request(_spec(), {"payload": '{"order_id": "A1"}'})
        assert request["json"] == {"order_id": "A1"}

    def test_invalid_payload_string_sent_as_is(self):
        request = build_request(_spec(), {"payload": "not json"})
        assert request["json"] == {"payload": "not json"}

    def test_bearer_auth(self):
        request = build_request(_spec(auth_type="bearer", api_key="k1"), {})
        assert request["headers"]["Authorization"] == "Bearer k1"

    def test_header_auth(self):
        request = build_request(_spec(auth_type="header", auth_param_name="X-Api-Key", api_key="k1"), {})
        assert request["headers"]["X-Api-Key"] == "k1"

    def test_query_auth(self):
        request = build_request(_spec(auth_type="query", auth_param_name="token", api_key="k1"), {})
        assert request["params"] == {"token": "k1"}

    def test_auth_without_key_is_skipped(self):
        request = build_request(_spec(auth_type="bearer"), {})
        assert "Authorization" not in request["headers"]


class TestWebhookInvoker:
    @pytest.mark.asyncio
    async def test_returns_response_text(self, settings):
        received = {}

        def handler(request: httpx.Request) -> httpx.Response:
            received["body"] = json.loads(request.content)
            received["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, text='{"status": "shipped"}')

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await WebhookInvoker(client, settings.tools).call(
                _spec(auth_type="bearer", api_key="k1"), {"order_id": "A1"}
            )

        assert result == '{"status": "shipped"}'
        assert received == {"body": {"order_id": "A1"}, "auth": "Bearer k1"}

    @pytest.mark.asyncio
    async def test_error_status_reported(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await WebhookInvoker(client, settings.tools).call(_spec(), {})
        assert result == "Error: HTTP 502: bad gateway"

    @pytest.mark.asyncio
    async def test_response_truncated(self, settings):
        settings.tools.webhook_max_chars = 5
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="abcdefghij"))
        async with httpx.AsyncClient(transport=transport) as client:
            assert await WebhookInvoker(client, settings.tools).call(_spec(), {}) == "abcde"

    @pytest.mark.asyncio
    async def test_empty_response(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(204))
        async with httpx.AsyncClient(transport=transport) as client:
            assert await WebhookInvoker(client, settings.tools).call(_spec(), {}) == "HTTP 204 (empty response)"
