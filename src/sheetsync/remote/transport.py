"""Async HTTP transport for the spreadsheet API.

:class:`AsyncTransport` performs **one** attempt per :meth:`request` call:

1. Send the HTTP request with the bearer token.
2. On ``2xx`` -- return the parsed JSON response.
3. On a rate-limit signal -- raise :class:`RateLimitedError` carrying
   ``Retry-After``.
4. On ``5xx`` or a network failure -- raise a transient error.
5. On any other ``4xx`` -- raise the matching permanent error.

Quota pacing, circuit breaking, timeouts per attempt and retries are layered
on top by :class:`~sheetsync.remote.guard.QuotaGuard` and
:class:`~sheetsync.remote.retries.RetryLoop`.
"""

from __future__ import annotations

import json as _json
import re
import sys
import time
from typing import Any

import httpx

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
from sheetsync.observability.metrics import REQUEST_DURATION_MS, NoopMetricsHook

# Rate limiting is signalled by 429, but the API also reports quota
# exhaustion as 403 with a reason, or inside a 5xx message.
_RATE_LIMIT_RE = re.compile(
    r"rate.?limit|quota|RESOURCE_EXHAUSTED|rateLimitExceeded|userRateLimitExceeded",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the ``Retry-After`` header value as a float, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _error_details(response: httpx.Response) -> tuple[dict[str, Any], str, str, list[str]]:
    """Return ``(body, message, status, reasons)`` from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    error = body.get("error")
    if not isinstance(error, dict):
        error = {}
    message = str(error.get("message") or response.text[:500])
    remote_status = str(error.get("status") or "")
    reasons = [
        str(item.get("reason"))
        for item in error.get("errors", []) or []
        if isinstance(item, dict) and item.get("reason")
    ]
    return body, message, remote_status, reasons


def is_rate_limit_signal(status_code: int, text: str) -> bool:
    """Whether a response is the API telling the client to slow down."""
    return status_code == 429 or bool(_RATE_LIMIT_RE.search(text))


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the typed error matching a non-2xx *response*."""
    status = response.status_code
    body, message, remote_status, reasons = _error_details(response)
    where = f"{method} {path}"
    signal_text = " ".join([message, remote_status, *reasons])

    if is_rate_limit_signal(status, signal_text):
        retry_after = _parse_retry_after(response)
        raise RateLimitedError(
            message=f"Rate limited on {where}: {message}",
            context={
                "status_code": status,
                "retry_after_seconds": retry_after,
                "reason": reasons[0] if reasons else remote_status,
            },
        )
    if status >= 500:
        raise ServerError(
            message=f"Server error {status} on {where}: {message}",
            context={"status_code": status, "path": path, "remote_status": remote_status},
        )
    if status == 401:
        raise AuthError(
            message=f"Authentication failed on {where}: {message}",
            context={"status_code": status, "remote_status": remote_status},
        )
    if status == 403:
        raise PermissionDeniedError(
            message=f"Permission denied on {where}: {message}",
            context={"status_code": status, "remote_status": remote_status, "operation": where},
        )
    if status == 404:
        raise NotFoundError(
            message=f"Resource not found on {where}: {message}",
            context={"status_code": status, "remote_status": remote_status, "path": path},
        )
    raise ValidationError(
        message=f"Client error {status} on {where}: {message}",
        context={"status_code": status, "remote_status": remote_status, "body": body},
    )


def _dump_payload(
    method: str,
    url: str,
    payload: Any,
    response_status: int | None,
    response_body: Any,
    token: str | None = None,
) -> None:
    """Write a redacted debug dump of the request/response to stderr."""
    from sheetsync.utils.redact import redact

    dump: dict[str, Any] = {"method": method, "url": url}
    if payload is not None:
        dump["request_body"] = payload
    if response_status is not None:
        dump["response_status"] = response_status
    if response_body is not None:
        dump["response_body"] = response_body
    print(_json.dumps(redact(dump, token), indent=2, default=str), file=sys.stderr)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class AsyncTransport:
    """Asynchronous single-attempt HTTP transport.

    Parameters
    ----------
    config:
        Supplies the token, base URL, proxy, timeout and debug flag.
    client:
        Optional pre-built :class:`httpx.AsyncClient` (e.g. one wired to an
        :class:`httpx.MockTransport`).  The transport closes it on
        :meth:`close` either way.
    """

    def __init__(self, config: SheetSyncConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._metrics = config.metrics if config.metrics is not None else NoopMetricsHook()
        if client is None:
            client = httpx.AsyncClient(
                base_url=config.base_url,
                headers={
                    "Authorization": f"Bearer {config.token}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(config.attempt_timeout_seconds),
                proxy=config.http_proxy,
            )
        self._client = client

    async def request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Execute one HTTP request against the API.

        Parameters
        ----------
        method:
            HTTP method.
        path:
            Path relative to ``base_url``, e.g. ``/spreadsheets/abc``.
        **kwargs:
            Forwarded to :meth:`httpx.AsyncClient.request` (``json=``,
            ``params=`` ...).

        Returns
        -------
        dict
            Parsed JSON body (``{}`` for empty responses).

        Raises
        ------
        RateLimitedError, ServerError, NetworkError
            Transient failures.
        ValidationError, AuthError, PermissionDeniedError, NotFoundError
            Permanent failures.
        """
        t0 = time.monotonic()
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise NetworkError(
                message=f"Network error on {method} {path}: {exc}",
                context={"url": path, "method": method},
                cause=exc,
            ) from exc

        elapsed_ms = (time.monotonic() - t0) * 1000
        self._metrics.timing(
            REQUEST_DURATION_MS,
            elapsed_ms,
            tags={"method": method, "status": str(response.status_code)},
        )

        if self._config.debug_dump_payload:
            try:
                resp_body: Any = response.json()
            except ValueError:
                resp_body = response.text[:1000]
            _dump_payload(
                method, str(response.url), kwargs.get("json"),
                response.status_code, resp_body, token=self._config.token,
            )

        if 200 <= response.status_code < 300:
            if response.status_code == 204 or not response.content:
                return {}
            result: dict = response.json()
            return result

        _raise_for_status(response, method, path)
        raise AssertionError("unreachable")  # pragma: no cover

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
