"""Tests for the authenticated request primitive."""

import asyncio

import httpx
import pytest

from booking_hub.errors import AuthError, TransportError, ValidationError
from booking_hub.services.api_client import ApiClient, unwrap


def client_for(handler, token="test-token"):
    return ApiClient(
        token=token,
        base_url="http://upstream.test/api",
        transport=httpx.MockTransport(handler),
    )


class TestApiClient:
    def test_sends_bearer_token_and_params(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"ok": True})

        body = asyncio.run(
            client_for(handler).get("/entities/1/bookings", params={"startDate": "2024-03-01", "x": None})
        )

        assert body == {"ok": True}
        assert seen["url"] == "http://upstream.test/api/entities/1/bookings?startDate=2024-03-01"
        assert seen["auth"] == "Bearer test-token"

    def test_missing_token_fails_before_sending(self):
        handler_calls = []

        def handler(request):
            handler_calls.append(request)
            return httpx.Response(200)

        with pytest.raises(AuthError):
            asyncio.run(client_for(handler, token=None).get("/entities/mine"))
        assert handler_calls == []

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failures(self, status):
        handler = lambda request: httpx.Response(status, json={"message": "Token expired"})
        with pytest.raises(AuthError, match="Token expired"):
            asyncio.run(client_for(handler).get("/entities/mine"))

    def test_validation_failure_carries_errors(self):
        handler = lambda request: httpx.Response(
            422, json={"detail": "Invalid booking", "errors": [{"field": "start"}]}
        )
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(client_for(handler).post("/bookings", json={}))
        assert exc_info.value.errors == [{"field": "start"}]
        assert str(exc_info.value) == "Invalid booking"

    def test_server_error(self):
        handler = lambda request: httpx.Response(503)
        with pytest.raises(TransportError) as exc_info:
            asyncio.run(client_for(handler).get("/entities/mine"))
        assert exc_info.value.status_code == 503

    def test_timeout_maps_to_transport_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("slow", request=request)

        with pytest.raises(TransportError, match="timeout"):
            asyncio.run(client_for(handler).get("/entities/mine"))

    def test_empty_body(self):
        handler = lambda request: httpx.Response(204)
        assert asyncio.run(client_for(handler).delete("/bookings/r1")) is None


class TestUnwrap:
    def test_envelope_is_stripped(self):
        assert unwrap({"success": True, "data": [1, 2]}) == [1, 2]
        assert unwrap({"message": "ok", "data": {"a": 1}}) == {"a": 1}

    def test_plain_bodies_pass_through(self):
        assert unwrap([1]) == [1]
        assert unwrap({"data": 1}) == {"data": 1}
        assert unwrap(None) is None
