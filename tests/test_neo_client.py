"""
Tests for NeoClient against a mocked HTTP transport.

Tests cover:
- Request shapes and auth header
- Status code and transport error mapping
"""

import json

import httpx
import pytest

from pulumi_mcp.config import NeoConfig
from pulumi_mcp.errors import ConfigurationError, NeoApiError, NeoBusyError
from pulumi_mcp.neo.client import NeoClient, utc_timestamp

TASKS_URL = "https://api.pulumi.test/api/preview/agents/acme/tasks"


@pytest.fixture
def config():
    return NeoConfig(api_url="https://api.pulumi.test", console_url="https://app.pulumi.test", org="acme")


def make_client(config, handler, token="pul-token"):
    return NeoClient(config, token_provider=lambda: token, transport=httpx.MockTransport(handler))


class TestCreateTask:
    async def test_posts_content_with_token(self, config):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"taskId": "t1"})

        client = make_client(config, handler)
        try:
            assert await client.create_task("do X") == "t1"
        finally:
            await client.close()

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == TASKS_URL
        assert request.headers["Authorization"] == "token pul-token"
        assert json.loads(request.content) == {"content": "do X"}

    async def test_non_2xx_carries_status_and_body(self, config):
        client = make_client(config, lambda request: httpx.Response(403, text="forbidden"))

        with pytest.raises(NeoApiError) as exc_info:
            await client.create_task("do X")

        assert exc_info.value.status_code == 403
        assert exc_info.value.body == "forbidden"

    async def test_transport_error_has_no_status(self, config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(config, handler)

        with pytest.raises(NeoApiError) as exc_info:
            await client.create_task("do X")

        assert exc_info.value.status_code is None
        assert "ConnectError" in str(exc_info.value)

    async def test_missing_token(self, config):
        client = make_client(config, lambda request: httpx.Response(201, json={"taskId": "t1"}), token=None)

        with pytest.raises(ConfigurationError):
            await client.create_task("do X")
        assert client.has_token is False


class TestListEvents:
    async def test_requests_page_size(self, config):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"events": [{"id": "e1"}]})

        client = make_client(config, handler)

        assert await client.list_events("t1") == [{"id": "e1"}]
        assert seen[0].url.path == "/api/preview/agents/acme/tasks/t1/events"
        assert seen[0].url.params["pageSize"] == "100"

    async def test_missing_events_key_is_empty(self, config):
        client = make_client(config, lambda request: httpx.Response(200, json={}))
        assert await client.list_events("t1") == []

    async def test_error_status(self, config):
        client = make_client(config, lambda request: httpx.Response(500, text="oops"))

        with pytest.raises(NeoApiError, match="Events API returned status 500"):
            await client.list_events("t1")


class TestSendEvents:
    async def test_user_message(self, config):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200)

        client = make_client(config, handler)
        await client.send_user_message("t1", "more please")

        event = seen[0]["event"]
        assert event["type"] == "user_message"
        assert event["content"] == "more please"
        assert event["timestamp"].endswith("Z")

    async def test_busy(self, config):
        client = make_client(config, lambda request: httpx.Response(409))

        with pytest.raises(NeoBusyError) as exc_info:
            await client.send_user_message("t1", "more please")
        assert exc_info.value.status_code == 409

    async def test_confirmation(self, config):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200)

        client = make_client(config, handler)
        await client.send_confirmation("t1", "a1", False, note="not now")
        await client.send_confirmation("t1", "a1", True)

        rejected, approved = seen[0]["event"], seen[1]["event"]
        assert rejected["type"] == "user_confirmation"
        assert rejected["approval_request_id"] == "a1"
        assert rejected["ok"] is False
        assert rejected["note"] == "not now"
        assert approved["ok"] is True
        assert "note" not in approved


def test_utc_timestamp_format():
    stamp = utc_timestamp()
    assert stamp.endswith("Z")
    assert "." in stamp
