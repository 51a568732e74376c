"""Metrics hook protocol and the no-op default.

Components record counters and timings through a :class:`MetricsHook`.
Without a configured backend a :class:`NoopMetricsHook` is used, so call
sites never need ``None`` guards.

Emitted metric names:

* ``sheetsync.remote_attempts_total``    -- counter, tag ``outcome``
* ``sheetsync.request_duration_ms``      -- timing
* ``sheetsync.retries_total``            -- counter, tag ``label``
* ``sheetsync.rate_limited_total``       -- counter
* ``sheetsync.quota_wait_ms``            -- timing
* ``sheetsync.circuit_rejections_total`` -- counter
* ``sheetsync.cache_hits_total``         -- counter
* ``sheetsync.cache_misses_total``       -- counter
* ``sheetsync.cache_evictions_total``    -- counter, tag ``reason``
* ``sheetsync.cache_bytes``              -- gauge
* ``sheetsync.batches_total``            -- counter, tag ``status``
* ``sheetsync.diff_units_total``         -- counter, tag ``change``
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

REMOTE_ATTEMPTS = "sheetsync.remote_attempts_total"
REQUEST_DURATION_MS = "sheetsync.request_duration_ms"
RETRIES = "sheetsync.retries_total"
RATE_LIMITED = "sheetsync.rate_limited_total"
QUOTA_WAIT_MS = "sheetsync.quota_wait_ms"
CIRCUIT_REJECTIONS = "sheetsync.circuit_rejections_total"
CACHE_HITS = "sheetsync.cache_hits_total"
CACHE_MISSES = "sheetsync.cache_misses_total"
CACHE_EVICTIONS = "sheetsync.cache_evictions_total"
CACHE_BYTES = "sheetsync.cache_bytes"
BATCHES = "sheetsync.batches_total"
DIFF_UNITS = "sheetsync.diff_units_total"


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol any metrics backend must satisfy.

    *tags* maps string keys to string values; backends translate them to
    their own labelling scheme.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge to an absolute value."""
        ...


class NoopMetricsHook:
    """Metrics backend that discards every data point."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass
