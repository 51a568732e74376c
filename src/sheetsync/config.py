"""Configuration for sheetsync.

:class:`SheetSyncConfig` is a dataclass that captures every tuneable knob of
the batching, diffing and resource-protection layers.  A single instance is
normally built once per process and handed to :class:`SyncContext`, which
shares the quota window, circuit breaker and artifact cache derived from it.

Values may also be read from ``SHEETSYNC_*`` environment variables via
:meth:`SheetSyncConfig.from_env`.
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

GOOGLE_SHEETS_MAX_BATCH_REQUESTS = 100
"""Sub-operations the remote ``batchUpdate`` call accepts per request."""

DEFAULT_MAX_PAYLOAD_BYTES = 9_000_000
"""Serialized request ceiling, leaving headroom under the 10 MB API limit."""

ENV_PREFIX = "SHEETSYNC_"


@dataclass
class SheetSyncConfig:
    """Complete configuration for sheetsync.

    Every parameter has a sensible default.

    Parameters
    ----------
    token:
        OAuth bearer token for the remote spreadsheet API.  Never logged.
    base_url:
        API root URL.  Override for proxy or testing environments.
    concurrency_limit:
        Maximum remote operations in flight per compiler or engine
        (resource groups for batching, sub-unit fetches for diffing).
    quota_requests_per_window:
        Remote call attempts allowed per quota window, shared by every
        component using the same :class:`SyncContext`.
    quota_window_seconds:
        Length of the quota window.  Calls beyond the ceiling wait for the
        next window instead of failing.
    breaker_failure_threshold:
        Consecutive remote-attributable failures that open the circuit.
    breaker_cooldown_seconds:
        How long the circuit stays open before a single trial call is allowed.
    cache_max_bytes:
        Byte budget of the shared artifact cache (exact serialized size).
    cache_ttl_seconds:
        Lifetime of a cache entry regardless of size pressure.
    batch_size_cap:
        Maximum sub-operations packed into one ``batchUpdate`` call.
    max_payload_bytes:
        Maximum serialized size of one packed batch.
    retry_max_attempts:
        Total attempts (including the first) for transient failures.
    retry_base_delay:
        Base delay (seconds) for exponential backoff.
    retry_max_delay:
        Upper cap (seconds) on computed backoff delay.
    retry_jitter:
        Scale each backoff delay randomly to 50--100 % of its value.
    attempt_timeout_seconds:
        Timeout applied to each remote call attempt individually.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    diff_block_rows:
        Rows per block when fingerprinting sheet contents in blocks.
    metrics:
        Optional :class:`~sheetsync.observability.MetricsHook` backend.
    events:
        Optional :class:`~sheetsync.observability.EventSink` receiving
        structured events (circuit transitions, quota waits, completions).
    debug_dump_payload:
        Write the redacted request/response of every remote call to
        *stderr*.
    """

    # ── Core ────────────────────────────────────────────────────────────
    token: str = ""

    base_url: str = "https://sheets.googleapis.com/v4"

    # ── Concurrency & quota ─────────────────────────────────────────────
    concurrency_limit: int = 10

    quota_requests_per_window: int = 60

    quota_window_seconds: float = 60.0

    # ── Circuit breaker ─────────────────────────────────────────────────
    breaker_failure_threshold: int = 5

    breaker_cooldown_seconds: float = 30.0

    # ── Cache ───────────────────────────────────────────────────────────
    cache_max_bytes: int = 100 * 1024 * 1024  # 100 MiB

    cache_ttl_seconds: float = 300.0

    # ── Batching ────────────────────────────────────────────────────────
    batch_size_cap: int = GOOGLE_SHEETS_MAX_BATCH_REQUESTS

    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES

    # ── Retry ───────────────────────────────────────────────────────────
    retry_max_attempts: int = 3

    retry_base_delay: float = 1.0

    retry_max_delay: float = 60.0

    retry_jitter: bool = True

    # ── HTTP ────────────────────────────────────────────────────────────
    attempt_timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Diff ────────────────────────────────────────────────────────────
    diff_block_rows: int = 1000

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    events: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_payload: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        parsed = urlparse(self.base_url)
        if parsed.scheme == "http" and parsed.hostname not in (
            "localhost",
            "127.0.0.1",
            "::1",
        ):
            raise ValueError(
                f"base_url uses insecure HTTP for non-local host '{parsed.hostname}'. "
                "Use HTTPS to protect your API token, or target localhost for testing."
            )

        if self.concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {self.concurrency_limit}")
        if self.quota_requests_per_window < 1:
            raise ValueError(
                f"quota_requests_per_window must be >= 1, got {self.quota_requests_per_window}"
            )
        if self.quota_window_seconds <= 0:
            raise ValueError(f"quota_window_seconds must be > 0, got {self.quota_window_seconds}")
        if self.breaker_failure_threshold < 1:
            raise ValueError(
                f"breaker_failure_threshold must be >= 1, got {self.breaker_failure_threshold}"
            )
        if self.breaker_cooldown_seconds < 0:
            raise ValueError(
                f"breaker_cooldown_seconds must be >= 0, got {self.breaker_cooldown_seconds}"
            )
        if self.cache_max_bytes < 0:
            raise ValueError(f"cache_max_bytes must be >= 0, got {self.cache_max_bytes}")
        if self.cache_ttl_seconds <= 0:
            raise ValueError(f"cache_ttl_seconds must be > 0, got {self.cache_ttl_seconds}")
        if not 1 <= self.batch_size_cap <= GOOGLE_SHEETS_MAX_BATCH_REQUESTS:
            raise ValueError(
                f"batch_size_cap must be between 1 and {GOOGLE_SHEETS_MAX_BATCH_REQUESTS}, "
                f"got {self.batch_size_cap}"
            )
        if self.max_payload_bytes < 1:
            raise ValueError(f"max_payload_bytes must be >= 1, got {self.max_payload_bytes}")
        if self.retry_max_attempts < 1:
            raise ValueError(f"retry_max_attempts must be >= 1, got {self.retry_max_attempts}")
        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")
        if self.retry_max_delay < 0:
            raise ValueError(f"retry_max_delay must be >= 0, got {self.retry_max_delay}")
        if self.attempt_timeout_seconds <= 0:
            raise ValueError(
                f"attempt_timeout_seconds must be > 0, got {self.attempt_timeout_seconds}"
            )
        if self.diff_block_rows < 1:
            raise ValueError(f"diff_block_rows must be >= 1, got {self.diff_block_rows}")

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> SheetSyncConfig:
        """Build a config from ``SHEETSYNC_<FIELD>`` environment variables.

        Only plain scalar fields are read (``metrics`` and ``events`` must be
        passed as *overrides*).  Explicit *overrides* win over the
        environment.

        Examples
        --------
        >>> SheetSyncConfig.from_env({"SHEETSYNC_CONCURRENCY_LIMIT": "4"}).concurrency_limit
        4
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            if f.name in ("metrics", "events"):
                continue
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            values[f.name] = _coerce(f.name, f.default, raw)
        values.update(overrides)
        return cls(**values)

    def __repr__(self) -> str:
        """Mask the token to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "token":
                masked = f"...{val[-4:]}" if len(val) >= 4 else "****"
                parts.append(f"token='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"SheetSyncConfig({', '.join(parts)})"


_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def _coerce(name: str, default: Any, raw: str) -> Any:
    """Convert an environment string to the type of the field's default."""
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY:
            return False
        raise ValueError(f"{ENV_PREFIX}{name.upper()} must be a boolean, got {raw!r}")
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError as exc:
        raise ValueError(
            f"{ENV_PREFIX}{name.upper()} must be a number, got {raw!r}"
        ) from exc
    if default is None:
        return raw or None
    return raw
