"""Byte-budgeted LRU artifact cache keyed by fingerprint.

Entries are sized by the exact length of their canonical serialization
(:func:`~sheetsync.utils.hashing.canonical_bytes`), so the configured byte
budget is a hard ceiling: after any sequence of :meth:`ArtifactCache.put`
calls, :attr:`ArtifactCache.total_bytes` never exceeds ``max_bytes``.

Every entry also carries a time-to-live.  An expired entry is never
returned, even when no size pressure has evicted it yet.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sheetsync.observability.events import NoopEventSink, SyncEvent
from sheetsync.observability.metrics import (
    CACHE_BYTES,
    CACHE_EVICTIONS,
    CACHE_HITS,
    CACHE_MISSES,
    NoopMetricsHook,
)
from sheetsync.utils.hashing import canonical_bytes


@dataclass
class CacheEntry:
    """One cached artifact and its accounting data."""

    fingerprint: str
    artifact: Any
    size: int
    created_at: float
    expires_at: float
    last_access: float


class ArtifactCache:
    """LRU cache mapping fingerprints to artifacts under a byte budget.

    Parameters
    ----------
    max_bytes:
        Byte budget over all entries.
    ttl_seconds:
        Default lifetime of an entry.
    clock:
        Monotonic clock returning seconds.  Injectable for tests.
    events, metrics:
        Observability sinks.  Evictions emit ``cache.evicted`` events.

    Notes
    -----
    :meth:`get` returns the stored object itself, not a copy.  Callers must
    treat cached artifacts as read-only.
    """

    def __init__(
        self,
        max_bytes: int = 100 * 1024 * 1024,
        ttl_seconds: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        events: Any | None = None,
        metrics: Any | None = None,
    ) -> None:
        if max_bytes < 0:
            raise ValueError(f"max_bytes must be >= 0, got {max_bytes}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")

        self.max_bytes = max_bytes
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._events = events if events is not None else NoopEventSink()
        self._metrics = metrics if metrics is not None else NoopMetricsHook()
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._total_bytes = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    # -- introspection -----------------------------------------------------

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        entry = self._entries.get(fingerprint)  # type: ignore[arg-type]
        return entry is not None and entry.expires_at > self._clock()

    def stats(self) -> dict[str, int]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "expirations": self._expirations,
            "entries": len(self._entries),
            "bytes": self._total_bytes,
            "max_bytes": self.max_bytes,
        }

    # -- internals ---------------------------------------------------------

    def _drop(self, fingerprint: str, reason: str) -> None:
        entry = self._entries.pop(fingerprint)
        self._total_bytes -= entry.size
        if reason == "ttl":
            self._expirations += 1
        elif reason == "size":
            self._evictions += 1
        if reason in ("ttl", "size"):
            self._metrics.increment(CACHE_EVICTIONS, tags={"reason": reason})
            self._events.emit(SyncEvent("cache.evicted", {
                "fingerprint": fingerprint,
                "bytes": entry.size,
                "reason": reason,
            }))

    # -- public API --------------------------------------------------------

    def get(self, fingerprint: str, default: Any = None) -> Any:
        """Return the artifact cached under *fingerprint*, or *default*.

        A hit refreshes the entry's recency.  Expired entries are purged
        and reported as misses.
        """
        entry = self._entries.get(fingerprint)
        now = self._clock()
        if entry is not None and entry.expires_at <= now:
            self._drop(fingerprint, "ttl")
            entry = None
        if entry is None:
            self._misses += 1
            self._metrics.increment(CACHE_MISSES)
            return default

        entry.last_access = now
        self._entries.move_to_end(fingerprint)
        self._hits += 1
        self._metrics.increment(CACHE_HITS)
        return entry.artifact

    def put(self, fingerprint: str, artifact: Any, ttl: float | None = None) -> bool:
        """Store *artifact* under *fingerprint*.

        Least-recently-used entries are evicted until the new entry fits.

        Returns
        -------
        bool
            ``False`` if the artifact alone is larger than the whole budget,
            in which case nothing is stored (and any previous entry for the
            fingerprint is dropped).
        """
        size = len(canonical_bytes(artifact))
        now = self._clock()
        lifetime = self.ttl_seconds if ttl is None else ttl

        if fingerprint in self._entries:
            self._drop(fingerprint, "replaced")
        if size > self.max_bytes or lifetime <= 0:
            return False

        self.cleanup()
        while self._entries and self._total_bytes + size > self.max_bytes:
            oldest = next(iter(self._entries))
            self._drop(oldest, "size")

        self._entries[fingerprint] = CacheEntry(
            fingerprint=fingerprint,
            artifact=artifact,
            size=size,
            created_at=now,
            expires_at=now + lifetime,
            last_access=now,
        )
        self._total_bytes += size
        self._metrics.gauge(CACHE_BYTES, self._total_bytes)
        return True

    def delete(self, fingerprint: str) -> bool:
        if fingerprint not in self._entries:
            return False
        self._drop(fingerprint, "deleted")
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._total_bytes = 0

    def cleanup(self) -> int:
        """Purge every expired entry and return how many were removed."""
        now = self._clock()
        expired = [fp for fp, entry in self._entries.items() if entry.expires_at <= now]
        for fp in expired:
            self._drop(fp, "ttl")
        return len(expired)
