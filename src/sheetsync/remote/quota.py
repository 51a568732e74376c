"""Fixed-window request quota shared by every remote call.

:class:`QuotaWindow` counts remote call attempts per window.  When the
ceiling is reached, callers suspend until the window rolls over instead of
failing: the quota is a throttle, not an error path.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from sheetsync.observability.events import NoopEventSink, SyncEvent
from sheetsync.observability.metrics import QUOTA_WAIT_MS, NoopMetricsHook


class QuotaWindow:
    """Per-window request ceiling.

    The check-and-increment in :meth:`acquire` runs without any suspension
    point in between, so concurrent tasks on the same event loop can never
    observe a torn counter.

    Parameters
    ----------
    max_requests:
        Attempts allowed per window.
    window_seconds:
        Window length in seconds.
    clock:
        Monotonic clock returning seconds.  Injectable for tests.
    sleep:
        Coroutine used to wait for the next window.  Injectable for tests.
    events, metrics:
        Observability sinks.
    """

    __slots__ = (
        "_clock",
        "_events",
        "_metrics",
        "_sleep",
        "max_requests",
        "requests_this_window",
        "total_wait_seconds",
        "window_seconds",
        "window_start",
    )

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        events: Any | None = None,
        metrics: Any | None = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {window_seconds}")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._events = events if events is not None else NoopEventSink()
        self._metrics = metrics if metrics is not None else NoopMetricsHook()
        self.window_start: float = clock()
        self.requests_this_window = 0
        self.total_wait_seconds = 0.0

    def _roll(self, now: float) -> None:
        if now - self.window_start >= self.window_seconds:
            self.window_start = now
            self.requests_this_window = 0

    def try_acquire(self) -> bool:
        """Take a slot if one is free in the current window."""
        self._roll(self._clock())
        if self.requests_this_window < self.max_requests:
            self.requests_this_window += 1
            return True
        return False

    async def acquire(self) -> float:
        """Take a slot, waiting for the next window if the ceiling is hit.

        Returns
        -------
        float
            Seconds spent waiting (``0.0`` if a slot was free).
        """
        waited = 0.0
        while not self.try_acquire():
            wait = max(self.window_start + self.window_seconds - self._clock(), 0.0)
            self._events.emit(SyncEvent("quota.wait", {
                "wait_seconds": round(wait, 3),
                "requests_this_window": self.requests_this_window,
                "max_requests": self.max_requests,
            }))
            await self._sleep(wait)
            waited += wait

        if waited > 0:
            self.total_wait_seconds += waited
            self._metrics.timing(QUOTA_WAIT_MS, waited * 1000)
        return waited

    def remaining(self) -> int:
        """Slots left in the current window."""
        self._roll(self._clock())
        return self.max_requests - self.requests_this_window
