"""Tests for sheetsync.remote.breaker."""

from __future__ import annotations

import pytest

from sheetsync.errors import CircuitOpenError, NotFoundError, ServerError, ValidationError
from sheetsync.models import CircuitState
from sheetsync.remote.breaker import CircuitBreaker


def transient() -> ServerError:
    return ServerError("boom", context={"status_code": 503})


@pytest.fixture
def breaker(clock, events) -> CircuitBreaker:
    return CircuitBreaker(3, 30.0, clock=clock, events=events)


class TestCircuitBreaker:
    def test_invalid_arguments(self, clock):
        with pytest.raises(ValueError):
            CircuitBreaker(0, 1.0, clock=clock)
        with pytest.raises(ValueError):
            CircuitBreaker(1, -1.0, clock=clock)

    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        breaker.before_call()

    def test_opens_after_threshold_consecutive_transient_failures(self, breaker):
        for _ in range(3):
            breaker.before_call()
            breaker.record_failure(transient())
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.before_call()
        assert exc_info.value.context["state"] == "open"
        assert exc_info.value.context["retry_in_seconds"] == pytest.approx(30.0)

    def test_success_resets_streak(self, breaker):
        breaker.record_failure(transient())
        breaker.record_failure(transient())
        breaker.record_success()
        breaker.record_failure(transient())
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 1

    def test_caller_errors_do_not_count(self, breaker):
        breaker.record_failure(transient())
        breaker.record_failure(transient())
        breaker.record_failure(ValidationError("bad payload"))
        breaker.record_failure(NotFoundError("no such sheet"))
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0

    def test_single_trial_call_after_cooldown(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure(transient())
        clock.advance(30)

        breaker.before_call()
        assert breaker.state == CircuitState.HALF_OPEN
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_trial_success_closes(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure(transient())
        clock.advance(31)
        breaker.before_call()
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        breaker.before_call()

    def test_trial_failure_reopens(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure(transient())
        clock.advance(30)
        breaker.before_call()
        breaker.record_failure(transient())
        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_released_trial_can_be_retried(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure(transient())
        clock.advance(30)
        breaker.before_call()
        breaker.release_trial()
        breaker.before_call()
        assert breaker.state == CircuitState.HALF_OPEN

    def test_transitions_emit_events(self, breaker, clock, events):
        for _ in range(3):
            breaker.record_failure(transient())
        clock.advance(30)
        breaker.before_call()
        breaker.record_success()

        transitions = [
            (e.fields["from_state"], e.fields["to_state"])
            for e in events.named("circuit.transition")
        ]
        assert transitions == [
            ("closed", "open"),
            ("open", "half_open"),
            ("half_open", "closed"),
        ]

    def test_reset_and_stats(self, breaker):
        for _ in range(3):
            breaker.record_failure(transient())
        with pytest.raises(CircuitOpenError):
            breaker.before_call()
        stats = breaker.stats()
        assert stats["state"] == "open"
        assert stats["rejections"] == 1

        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats()["consecutive_failures"] == 0

    def test_success_while_open_keeps_circuit_open(self, breaker):
        for _ in range(3):
            breaker.record_failure(transient())
        breaker.record_success()
        assert breaker.state == CircuitState.OPEN
        assert breaker.consecutive_failures == 3
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_check_does_not_change_state(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure(transient())
        with pytest.raises(CircuitOpenError):
            breaker.check()

        clock.advance(30)
        breaker.check()
        assert breaker.state == CircuitState.OPEN
        breaker.before_call()
        assert breaker.state == CircuitState.HALF_OPEN
        with pytest.raises(CircuitOpenError):
            breaker.check()
