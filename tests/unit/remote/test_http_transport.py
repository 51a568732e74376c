"""Unit tests for sheetsync/remote/transport.py.

Covers:
- _parse_retry_after
- _raise_for_status status and rate-limit mapping
- _dump_payload redaction
- AsyncTransport.request (success, empty body, typed errors, network errors)
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import httpx
import pytest

from sheetsync.config import SheetSyncConfig
from sheetsync.errors import (
    AuthError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
    ServerError,
    ValidationError,
)
from sheetsync.observability.metrics import REQUEST_DURATION_MS
from sheetsync.remote.transport import (
    AsyncTransport,
    _dump_payload,
    _parse_retry_after,
    _raise_for_status,
    is_rate_limit_signal,
)

BASE_URL = "https://sheets.test/v4"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_response(
    status_code: int = 200,
    body: dict | None = None,
    headers: dict | None = None,
) -> httpx.Response:
    """Build a minimal httpx.Response with a request attached."""
    content = json.dumps(body).encode() if body is not None else b""
    resp = httpx.Response(status_code, content=content, headers=headers or {})
    resp.request = httpx.Request("GET", f"{BASE_URL}/spreadsheets/abc")
    return resp


def google_error(code: int, message: str, status: str = "", reason: str | None = None) -> dict:
    error: dict = {"code": code, "message": message, "status": status}
    if reason is not None:
        error["errors"] = [{"reason": reason, "message": message}]
    return {"error": error}


def make_transport(handler, **overrides) -> AsyncTransport:
    config = SheetSyncConfig(token="test_token_1234", base_url=BASE_URL, **overrides)
    client = httpx.AsyncClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        headers={"Authorization": f"Bearer {config.token}"},
    )
    return AsyncTransport(config, client=client)


# ---------------------------------------------------------------------------
# _parse_retry_after
# ---------------------------------------------------------------------------

class TestParseRetryAfter:
    def test_numeric(self):
        assert _parse_retry_after(make_response(429, headers={"Retry-After": "12"})) == 12.0

    def test_missing(self):
        assert _parse_retry_after(make_response(429)) is None

    def test_unparseable(self):
        resp = make_response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
        assert _parse_retry_after(resp) is None


# ---------------------------------------------------------------------------
# _raise_for_status
# ---------------------------------------------------------------------------

class TestRaiseForStatus:
    def test_429_is_rate_limited(self):
        resp = make_response(
            429,
            google_error(429, "Quota exceeded", "RESOURCE_EXHAUSTED"),
            headers={"Retry-After": "7"},
        )
        with pytest.raises(RateLimitedError) as exc_info:
            _raise_for_status(resp, "POST", "/spreadsheets/abc:batchUpdate")
        err = exc_info.value
        assert err.retry_after == 7.0
        assert err.context["status_code"] == 429

    def test_403_with_quota_reason_is_rate_limited(self):
        resp = make_response(403, google_error(403, "User rate limit", reason="userRateLimitExceeded"))
        with pytest.raises(RateLimitedError) as exc_info:
            _raise_for_status(resp, "GET", "/spreadsheets/abc")
        assert exc_info.value.context["reason"] == "userRateLimitExceeded"

    def test_plain_403_is_permission_denied(self):
        resp = make_response(403, google_error(403, "The caller does not have permission", "PERMISSION_DENIED"))
        with pytest.raises(PermissionDeniedError):
            _raise_for_status(resp, "GET", "/spreadsheets/abc")

    @pytest.mark.parametrize("status", [500, 502, 503])
    def test_5xx_is_server_error(self, status):
        with pytest.raises(ServerError) as exc_info:
            _raise_for_status(make_response(status, google_error(status, "Internal")), "GET", "/x")
        assert exc_info.value.context["status_code"] == status

    def test_401(self):
        with pytest.raises(AuthError):
            _raise_for_status(make_response(401, google_error(401, "bad creds")), "GET", "/x")

    def test_404(self):
        with pytest.raises(NotFoundError) as exc_info:
            _raise_for_status(make_response(404, google_error(404, "missing")), "GET", "/spreadsheets/zzz")
        assert exc_info.value.context["path"] == "/spreadsheets/zzz"

    def test_400_is_validation_error(self):
        body = google_error(400, "Invalid requests[0].updateCells", "INVALID_ARGUMENT")
        with pytest.raises(ValidationError) as exc_info:
            _raise_for_status(make_response(400, body), "POST", "/x")
        assert exc_info.value.context["remote_status"] == "INVALID_ARGUMENT"
        assert "Invalid requests[0]" in str(exc_info.value)

    def test_non_json_body(self):
        resp = httpx.Response(400, content=b"<html>bad</html>")
        resp.request = httpx.Request("GET", f"{BASE_URL}/x")
        with pytest.raises(ValidationError):
            _raise_for_status(resp, "GET", "/x")

    def test_rate_limit_signal(self):
        assert is_rate_limit_signal(429, "")
        assert is_rate_limit_signal(503, "Quota exceeded for quota metric")
        assert not is_rate_limit_signal(503, "backend unavailable")


# ---------------------------------------------------------------------------
# _dump_payload
# ---------------------------------------------------------------------------

class TestDumpPayload:
    def test_token_is_redacted(self, capsys):
        _dump_payload(
            "POST",
            f"{BASE_URL}/x",
            {"requests": [], "authorization": "Bearer test_token_1234"},
            200,
            {"replies": []},
            token="test_token_1234",
        )
        err = capsys.readouterr().err
        assert "test_token_1234" not in err
        assert '"response_status": 200' in err


# ---------------------------------------------------------------------------
# AsyncTransport.request
# ---------------------------------------------------------------------------

class TestAsyncTransport:
    @pytest.mark.asyncio
    async def test_success_returns_json(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"replies": [{}]})

        transport = make_transport(handler)
        result = await transport.request("POST", "/spreadsheets/abc:batchUpdate", json={"requests": [{}]})
        await transport.close()

        assert result == {"replies": [{}]}
        assert seen[0].headers["authorization"] == "Bearer test_token_1234"
        assert json.loads(seen[0].content) == {"requests": [{}]}

    @pytest.mark.asyncio
    async def test_empty_body(self):
        transport = make_transport(lambda request: httpx.Response(204))
        assert await transport.request("POST", "/x") == {}
        await transport.close()

    @pytest.mark.asyncio
    async def test_single_attempt_on_error(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, json=google_error(503, "unavailable"))

        async with make_transport(handler) as transport:
            with pytest.raises(ServerError):
                await transport.request("GET", "/x")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_network_failure_is_typed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_transport(handler) as transport:
            with pytest.raises(NetworkError) as exc_info:
                await transport.request("GET", "/x")
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_read_timeout_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with make_transport(handler) as transport:
            with pytest.raises(NetworkError):
                await transport.request("GET", "/x")

    @pytest.mark.asyncio
    async def test_dropped_connection_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("peer closed connection", request=request)

        async with make_transport(handler) as transport:
            with pytest.raises(NetworkError) as exc_info:
                await transport.request("GET", "/x")
        assert isinstance(exc_info.value.cause, httpx.RemoteProtocolError)

    @pytest.mark.asyncio
    async def test_duration_metric(self):
        metrics = MagicMock()
        transport = make_transport(lambda request: httpx.Response(200, json={}), metrics=metrics)
        await transport.request("GET", "/x")
        await transport.close()
        name, _elapsed = metrics.timing.call_args.args
        assert name == REQUEST_DURATION_MS
        assert metrics.timing.call_args.kwargs["tags"] == {"method": "GET", "status": "200"}

    @pytest.mark.asyncio
    async def test_debug_dump(self, capsys):
        transport = make_transport(
            lambda request: httpx.Response(200, json={"ok": True}),
            debug_dump_payload=True,
        )
        await transport.request("POST", "/x", json={"requests": []})
        await transport.close()
        assert '"request_body"' in capsys.readouterr().err
