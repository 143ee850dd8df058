"""Tests for the circuit breaker state machine."""

import threading

import pytest

from policyjudge.judge.circuit import CircuitBreaker, CircuitOpenError
from policyjudge.judge.models import CircuitState


@pytest.fixture
def transitions():
    return []


@pytest.fixture
def breaker(clock, transitions):
    return CircuitBreaker(
        failure_threshold=3,
        reset_timeout_ms=1000,
        half_open_success_threshold=2,
        clock=clock,
        on_transition=lambda state, details: transitions.append((state, details)),
    )


class TestClosed:
    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.last_failure_time is None
        breaker.before_call()

    def test_success_resets_failure_count(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    def test_opens_at_threshold(self, breaker, transitions):
        for _ in range(3):
            breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.trips == 1
        state, details = transitions[-1]
        assert state == CircuitState.OPEN
        assert details["failure_count"] == 3
        assert details["reset_timeout_ms"] == 1000

    def test_force_open(self, breaker):
        breaker.record_failure(force_open=True)

        assert breaker.state == CircuitState.OPEN
        assert breaker.failure_count == 3


class TestOpen:
    def test_rejects_until_reset_timeout(self, breaker, clock):
        breaker.record_failure(force_open=True)
        clock.advance(400)

        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.before_call()

        assert exc_info.value.remaining_ms == 600
        assert "Retry in 1s" in str(exc_info.value)
        assert breaker.state == CircuitState.OPEN

    def test_failure_while_open_restarts_reset_window(self, breaker, clock):
        breaker.record_failure(force_open=True)
        opened_at = breaker.last_failure_time
        clock.advance(500)
        with pytest.raises(CircuitOpenError):
            breaker.before_call()
        breaker.record_failure()

        assert breaker.last_failure_time == opened_at + 500
        assert breaker.failure_count == 4
        clock.advance(600)
        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.before_call()
        assert exc_info.value.remaining_ms == 400

    def test_further_failures_do_not_count_as_new_trips(self, breaker):
        breaker.record_failure(force_open=True)
        breaker.record_failure()

        assert breaker.trips == 1


class TestHalfOpen:
    def test_moves_to_half_open_after_timeout(self, breaker, clock, transitions):
        breaker.record_failure(force_open=True)
        clock.advance(1000)

        breaker.before_call()

        assert breaker.state == CircuitState.HALF_OPEN
        assert transitions[-1][0] == CircuitState.HALF_OPEN

    def test_closes_after_enough_successes(self, breaker, clock):
        breaker.record_failure(force_open=True)
        clock.advance(1000)
        breaker.before_call()

        breaker.record_success()
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.half_open_success_count == 1

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_any_failure_reopens(self, breaker, clock):
        breaker.record_failure(force_open=True)
        clock.advance(1000)
        breaker.before_call()

        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.trips == 2

    def test_half_open_counter_restarts_on_each_probe(self, breaker, clock):
        breaker.record_failure(force_open=True)
        clock.advance(1000)
        breaker.before_call()
        breaker.record_success()
        breaker.record_failure()

        clock.advance(1000)
        breaker.before_call()
        assert breaker.half_open_success_count == 0


class TestManagement:
    def test_reset(self, breaker):
        breaker.record_failure(force_open=True)
        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        breaker.before_call()

    def test_snapshot(self, breaker, clock):
        breaker.record_failure()
        snap = breaker.snapshot()

        assert snap["state"] == "CLOSED"
        assert snap["failure_count"] == 1
        assert snap["failure_threshold"] == 3
        assert snap["last_failure_time"] == clock.now

    def test_failing_callback_does_not_break_transition(self, clock):
        def explode(state, details):
            raise RuntimeError("subscriber bug")

        breaker = CircuitBreaker(failure_threshold=1, clock=clock, on_transition=explode)
        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN

    def test_concurrent_failures_trip_once(self, clock):
        breaker = CircuitBreaker(failure_threshold=10, clock=clock)

        def hammer():
            for _ in range(50):
                breaker.record_failure()

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert breaker.failure_count == 400
        assert breaker.trips == 1
