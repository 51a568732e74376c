"""Retry classification, backoff computation and the retry state machine.

* :func:`is_transient` / :func:`should_retry` -- decide whether a failed
  attempt is worth repeating.
* :func:`compute_backoff` -- delay before the next attempt.
* :class:`RetryLoop` -- drives repeated :meth:`QuotaGuard.call` attempts
  through an explicit ``attempting -> backoff -> attempting -> exhausted``
  state machine with a bounded attempt counter.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from sheetsync.errors import RetryExhaustedError, TransientRemoteError, error_code
from sheetsync.observability.events import NoopEventSink, SyncEvent
from sheetsync.observability.metrics import RETRIES, NoopMetricsHook

from .guard import QuotaGuard

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Whether *exc* is a remote failure that may succeed on a later attempt.

    Permanent remote errors, circuit rejections and compile errors are not
    transient.
    """
    return isinstance(exc, TransientRemoteError)


def should_retry(exc: BaseException, attempt: int, max_attempts: int) -> bool:
    """Decide whether a failed attempt should be repeated.

    Parameters
    ----------
    exc:
        The error raised by the attempt.
    attempt:
        The attempt that failed (0-indexed).
    max_attempts:
        Maximum total attempts allowed (including the first).
    """
    if attempt + 1 >= max_attempts:
        return False
    return is_transient(exc)


def compute_backoff(
    attempt: int,
    base: float = 1.0,
    maximum: float = 60.0,
    jitter: bool = True,
    retry_after: float | None = None,
) -> float:
    """Compute the delay before the next attempt.

    The delay follows exponential backoff (``base * 2^attempt``) capped at
    *maximum*.  With *jitter* it is randomly scaled to between 50 % and
    100 % of its value.  A server-provided ``Retry-After`` is a floor: the
    returned delay is never shorter than it.

    Parameters
    ----------
    attempt:
        The attempt that just failed (0-indexed).
    base:
        Base delay in seconds.
    maximum:
        Cap in seconds on the exponential term.
    jitter:
        Whether to apply random jitter.
    retry_after:
        Seconds the server asked the client to wait, if any.

    Returns
    -------
    float
        Delay in seconds.
    """
    delay = min(base * (2 ** attempt), maximum)
    if jitter:
        delay *= 0.5 + random.random() * 0.5
    if retry_after is not None:
        delay = max(delay, retry_after)
    return delay


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling and backoff parameters."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: bool = True

    @classmethod
    def from_config(cls, config: Any) -> RetryPolicy:
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            jitter=config.retry_jitter,
        )


class RetryState(str, Enum):
    """States of :class:`RetryLoop`."""

    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    EXHAUSTED = "exhausted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RetryLoop(Generic[T]):
    """Bounded retry driver for one logical remote operation.

    A loop is used for a single :meth:`run`; afterwards :attr:`attempts`,
    :attr:`state` and :attr:`last_error` describe what happened, which is
    how callers attribute failures.

    Parameters
    ----------
    guard:
        Admission control every attempt goes through.
    policy:
        Attempt ceiling and backoff parameters.
    sleep:
        Coroutine used for backoff waits.  Injectable for tests.
    events, metrics:
        Observability sinks.
    """

    def __init__(
        self,
        guard: QuotaGuard,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        events: Any | None = None,
        metrics: Any | None = None,
    ) -> None:
        self._guard = guard
        self._policy = policy
        self._sleep = sleep
        self._events = events if events is not None else NoopEventSink()
        self._metrics = metrics if metrics is not None else NoopMetricsHook()
        self.state = RetryState.ATTEMPTING
        self.attempts = 0
        self.last_error: Exception | None = None

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "remote",
    ) -> T:
        """Run *operation* until it succeeds, fails permanently or exhausts.

        Raises
        ------
        RetryExhaustedError
            Every allowed attempt failed transiently.  ``context`` carries
            ``attempts``, ``label`` and ``last_error_code``.
        SheetSyncError
            Any non-transient error, re-raised unchanged after one attempt.
        """
        max_attempts = self._policy.max_attempts
        self.state = RetryState.ATTEMPTING
        self.attempts = 0
        self.last_error = None

        while True:
            if self.state == RetryState.ATTEMPTING:
                self.attempts += 1
                try:
                    result = await self._guard.call(operation, label=label)
                except Exception as exc:
                    self.last_error = exc
                    if should_retry(exc, self.attempts - 1, max_attempts):
                        self.state = RetryState.BACKOFF
                    elif is_transient(exc):
                        self.state = RetryState.EXHAUSTED
                    else:
                        self.state = RetryState.FAILED
                        raise
                    continue
                self.state = RetryState.SUCCEEDED
                return result

            if self.state == RetryState.BACKOFF:
                assert self.last_error is not None
                delay = compute_backoff(
                    self.attempts - 1,
                    base=self._policy.base_delay,
                    maximum=self._policy.max_delay,
                    jitter=self._policy.jitter,
                    retry_after=getattr(self.last_error, "retry_after", None),
                )
                code = error_code(self.last_error)
                self._metrics.increment(RETRIES, tags={"label": label, "reason": code})
                self._events.emit(SyncEvent("retry.scheduled", {
                    "label": label,
                    "attempt": self.attempts,
                    "delay_seconds": round(delay, 3),
                    "error_code": code,
                }))
                await self._sleep(delay)
                self.state = RetryState.ATTEMPTING
                continue

            # EXHAUSTED
            assert self.last_error is not None
            raise RetryExhaustedError(
                message=(
                    f"All {self.attempts} attempts exhausted for {label} "
                    f"(last error: {self.last_error})"
                ),
                context={
                    "attempts": self.attempts,
                    "label": label,
                    "last_error_code": error_code(self.last_error),
                },
                cause=self.last_error,
            )
