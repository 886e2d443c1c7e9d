"""Tests for the Luma API client (httpx.MockTransport, no network)."""

import json

import httpx
import pytest

from sonic.luma.client import LumaClient
from sonic.luma.errors import LumaAuthError, LumaConfigError, LumaError, LumaNotFoundError


def _client(handler):
    return LumaClient("key-123", base_url="https://luma.test/v1", transport=httpx.MockTransport(handler))


class TestLumaClient:
    def test_requires_key(self):
        with pytest.raises(LumaConfigError):
            LumaClient("")

    @pytest.mark.asyncio
    async def test_list_events_sends_key_and_cursor(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["cursor"] = request.url.params.get("pagination_cursor")
            seen["key"] = request.headers.get("x-luma-api-key")
            return httpx.Response(200, json={"entries": [], "has_more": False})

        data = await _client(handler).list_events(pagination_cursor="abc")
        assert data == {"entries": [], "has_more": False}
        assert seen == {"path": "/v1/calendar/list-events", "cursor": "abc", "key": "key-123"}

    @pytest.mark.asyncio
    async def test_get_event_unwraps(self):
        def handler(request):
            assert request.url.params["api_id"] == "evt-1"
            return httpx.Response(200, json={"event": {"api_id": "evt-1", "name": "ETHDenver"}})

        assert (await _client(handler).get_event("evt-1"))["name"] == "ETHDenver"

    @pytest.mark.asyncio
    async def test_get_guests_filter(self):
        def handler(request):
            assert request.url.params["event_api_id"] == "evt-1"
            assert request.url.params["approval_status"] == "pending_approval"
            return httpx.Response(200, json={"entries": [{"api_id": "g1"}], "has_more": True})

        data = await _client(handler).get_guests("evt-1", approval_status="pending_approval")
        assert data["has_more"] is True

    @pytest.mark.asyncio
    async def test_update_guest_status_body(self):
        bodies = []

        def handler(request):
            assert request.method == "POST"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={})

        await _client(handler).update_guest_status("evt-1", "ana@example.com", "declined")
        assert bodies == [{
            "guest": {"type": "email", "email": "ana@example.com"},
            "event_api_id": "evt-1",
            "status": "declined",
            "should_refund": False,
        }]

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            await _client(lambda r: httpx.Response(200, json={})).update_guest_status("evt-1", "a@b.co", "pending")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, error_cls", [
        (401, LumaAuthError),
        (403, LumaAuthError),
        (404, LumaNotFoundError),
        (500, LumaError),
    ])
    async def test_http_errors_mapped(self, status, error_cls):
        client = _client(lambda r: httpx.Response(status, text="nope"))
        with pytest.raises(error_cls) as exc:
            await client.get_guests("evt-7")
        assert exc.value.operation == "getGuests"
        assert exc.value.target == "evt-7"

    @pytest.mark.asyncio
    async def test_transport_error_mapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(LumaError) as exc:
            await _client(handler).get_self()
        assert exc.value.operation == "getSelf"
        assert "ConnectError" in str(exc.value)
