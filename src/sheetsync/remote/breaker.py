"""Circuit breaker guarding the remote API.

States move ``closed -> open -> half_open -> closed``.  While open, calls
are rejected with :class:`~sheetsync.errors.CircuitOpenError` before any
network work.  Once the cooldown elapses a single trial call is let
through; its outcome decides whether the circuit closes again or re-opens.

Only failures attributable to the remote side grow the failure streak.
A caller error (bad payload, missing sheet) proves the remote answered, so
it is recorded as a healthy response.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from sheetsync.errors import CircuitOpenError, TransientRemoteError
from sheetsync.models import CircuitState
from sheetsync.observability.events import NoopEventSink, SyncEvent


class CircuitBreaker:
    """Failure-streak circuit breaker.

    Parameters
    ----------
    failure_threshold:
        Consecutive transient failures that open the circuit.
    cooldown_seconds:
        Time the circuit stays open before a trial call is allowed.
    clock:
        Monotonic clock returning seconds.
    events:
        Sink receiving ``circuit.transition`` events.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 30.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        events: Any | None = None,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        if cooldown_seconds < 0:
            raise ValueError(f"cooldown_seconds must be >= 0, got {cooldown_seconds}")

        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._events = events if events is not None else NoopEventSink()

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._rejections = 0
        self._transitions = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def _transition(self, new_state: CircuitState) -> None:
        old = self._state
        if old == new_state:
            return
        self._state = new_state
        self._transitions += 1
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        self._events.emit(SyncEvent("circuit.transition", {
            "from_state": old.value,
            "to_state": new_state.value,
            "failures": self._failures,
        }))

    def _reject(self, retry_in: float) -> None:
        self._rejections += 1
        raise CircuitOpenError(
            message=f"Circuit is {self._state.value}; call rejected without a network attempt",
            context={"state": self._state.value, "retry_in_seconds": round(retry_in, 3)},
        )

    def _retry_in(self) -> float | None:
        """Seconds until a call could be admitted, or ``None`` if it can be now."""
        if self._state == CircuitState.OPEN:
            assert self._opened_at is not None
            remaining = self._opened_at + self.cooldown_seconds - self._clock()
            return remaining if remaining > 0 else None
        if self._state == CircuitState.HALF_OPEN and self._trial_in_flight:
            return 0.0
        return None

    def check(self) -> None:
        """Reject a call that :meth:`before_call` would reject, without
        changing any state.

        Raises
        ------
        CircuitOpenError
            While the circuit is open, or while the half-open trial call is
            still in flight.
        """
        retry_in = self._retry_in()
        if retry_in is not None:
            self._reject(retry_in)

    def before_call(self) -> None:
        """Admit or reject a call.

        Raises
        ------
        CircuitOpenError
            While the circuit is open, or while the single half-open trial call
            is still in flight.
        """
        self.check()
        if self._state == CircuitState.OPEN:
            self._transition(CircuitState.HALF_OPEN)
        if self._state == CircuitState.HALF_OPEN:
            self._trial_in_flight = True

    def record_success(self) -> None:
        # Only the admitted half-open call may close an open circuit.
        if self._state == CircuitState.OPEN:
            return
        self._failures = 0
        self._trial_in_flight = False
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
            self._opened_at = None

    def record_failure(self, exc: BaseException | None = None) -> None:
        """Record a failed attempt.

        Non-transient errors count as healthy responses.
        """
        if exc is not None and not isinstance(exc, TransientRemoteError):
            self.record_success()
            return

        self._failures += 1
        if self._state == CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED and self._failures >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def release_trial(self) -> None:
        """Forget an admitted trial call that never produced an outcome."""
        self._trial_in_flight = False

    def reset(self) -> None:
        """Force the breaker back to ``closed`` and clear the streak."""
        self._failures = 0
        self._trial_in_flight = False
        self._transition(CircuitState.CLOSED)
        self._opened_at = None

    def stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "consecutive_failures": self._failures,
            "failure_threshold": self.failure_threshold,
            "rejections": self._rejections,
            "transitions": self._transitions,
            "trial_in_flight": self._trial_in_flight,
        }
