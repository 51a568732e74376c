"""Single-attempt admission control for remote calls.

:class:`QuotaGuard` combines the shared :class:`QuotaWindow`, the shared
:class:`CircuitBreaker` and a per-attempt timeout.  Every remote call
attempt, whether issued by the batch compiler or by the diff engine, goes
through :meth:`QuotaGuard.call` exactly once; retrying is the job of
:class:`~sheetsync.remote.retries.RetryLoop`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sheetsync.errors import (
    AttemptTimeoutError,
    CircuitOpenError,
    RateLimitedError,
    error_code,
)
from sheetsync.observability.metrics import (
    CIRCUIT_REJECTIONS,
    RATE_LIMITED,
    REMOTE_ATTEMPTS,
    NoopMetricsHook,
)

from .breaker import CircuitBreaker
from .quota import QuotaWindow

T = TypeVar("T")


class QuotaGuard:
    """Rate limiter plus circuit breaker shared by all remote calls.

    Parameters
    ----------
    window:
        The process-wide quota window.
    breaker:
        The process-wide circuit breaker.
    attempt_timeout:
        Seconds allowed for one attempt.  An attempt that runs longer is
        cancelled and reported as :class:`AttemptTimeoutError`, which is
        transient.
    metrics:
        Optional metrics hook.
    """

    def __init__(
        self,
        window: QuotaWindow,
        breaker: CircuitBreaker,
        *,
        attempt_timeout: float | None = 30.0,
        metrics: Any | None = None,
    ) -> None:
        self.window = window
        self.breaker = breaker
        self.attempt_timeout = attempt_timeout
        self._metrics = metrics if metrics is not None else NoopMetricsHook()

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "remote",
    ) -> T:
        """Run one attempt of *operation* under quota and breaker control.

        Parameters
        ----------
        operation:
            Zero-argument factory returning a fresh awaitable per attempt.
        label:
            Short description used in error context and metric tags.

        Raises
        ------
        CircuitOpenError
            The circuit rejected the call; *operation* was never invoked.
        AttemptTimeoutError
            The attempt exceeded ``attempt_timeout``.
        SheetSyncError
            Whatever typed error the operation raised.
        """
        # An open circuit should not spend quota.
        self._admit(self.breaker.check, label)
        await self.window.acquire()
        # The circuit may have opened while this call waited for quota.
        self._admit(self.breaker.before_call, label)

        try:
            try:
                result = await asyncio.wait_for(operation(), timeout=self.attempt_timeout)
            except asyncio.TimeoutError as exc:
                raise AttemptTimeoutError(
                    message=f"{label} attempt timed out after {self.attempt_timeout}s",
                    context={"timeout_seconds": self.attempt_timeout, "label": label},
                    cause=exc,
                ) from exc
        except Exception as exc:
            self.breaker.record_failure(exc)
            if isinstance(exc, RateLimitedError):
                self._metrics.increment(RATE_LIMITED, tags={"label": label})
            outcome = error_code(exc)
            self._metrics.increment(REMOTE_ATTEMPTS, tags={"label": label, "outcome": outcome})
            raise
        except BaseException:
            # Cancelled before producing an outcome.
            self.breaker.release_trial()
            raise

        self.breaker.record_success()
        self._metrics.increment(REMOTE_ATTEMPTS, tags={"label": label, "outcome": "ok"})
        return result

    def _admit(self, gate: Callable[[], None], label: str) -> None:
        try:
            gate()
        except CircuitOpenError:
            self._metrics.increment(CIRCUIT_REJECTIONS, tags={"label": label})
            raise
