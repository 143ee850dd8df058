"""
Circuit breaker for the judge client.

State machine (initial CLOSED):
    CLOSED    --success-->                       CLOSED (failure count reset)
    CLOSED    --failures reach threshold-->      OPEN
    OPEN      --reset timeout elapsed, on call--> HALF_OPEN
    HALF_OPEN --successes reach threshold-->     CLOSED
    HALF_OPEN --any failure-->                   OPEN

Every read-modify-write happens under one lock. None of the critical
sections await, so the same lock serializes asyncio tasks and threads.
"""

import logging
import threading
import time
from typing import Optional, Callable, Dict, Any

from policyjudge.judge.models import CircuitState

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class CircuitOpenError(Exception):
    """Raised by before_call() while the circuit rejects traffic."""

    def __init__(self, remaining_ms: float):
        self.remaining_ms = remaining_ms
        seconds = max(0, int(-(-remaining_ms // 1000)))
        super().__init__(
            f"Circuit breaker OPEN - service unavailable. Retry in {seconds}s"
        )


class CircuitBreaker:
    """Failure-counting circuit breaker.

    Args:
        failure_threshold: Consecutive failures (while CLOSED) that trip the circuit.
        reset_timeout_ms: Time since the last failure before a HALF_OPEN probe.
        half_open_success_threshold: Successes in HALF_OPEN needed to close.
        clock: Millisecond clock, injectable for tests.
        on_transition: Called with (new_state, details) after each state
            change, outside the lock.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout_ms: float = 30000,
        half_open_success_threshold: int = 2,
        clock: Callable[[], float] = monotonic_ms,
        on_transition: Optional[Callable[[CircuitState, Dict[str, Any]], None]] = None,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self.half_open_success_threshold = half_open_success_threshold
        self._clock = clock
        self._on_transition = on_transition
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_success_count = 0
        self._last_failure_time: Optional[float] = None
        self._trips = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def half_open_success_count(self) -> int:
        with self._lock:
            return self._half_open_success_count

    @property
    def last_failure_time(self) -> Optional[float]:
        with self._lock:
            return self._last_failure_time

    @property
    def trips(self) -> int:
        with self._lock:
            return self._trips

    def before_call(self) -> None:
        """Gate a call. Raises CircuitOpenError if the circuit is OPEN.

        Moves OPEN -> HALF_OPEN once the reset timeout has elapsed.
        """
        transition = None
        with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._last_failure_time or 0)
                if elapsed >= self.reset_timeout_ms:
                    self._state = CircuitState.HALF_OPEN
                    self._half_open_success_count = 0
                    transition = (CircuitState.HALF_OPEN, {})
                else:
                    raise CircuitOpenError(self.reset_timeout_ms - elapsed)

        if transition:
            logger.info("Circuit breaker HALF_OPEN - testing service")
            self._notify(*transition)

    def record_success(self) -> None:
        transition = None
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_success_count += 1
                if self._half_open_success_count >= self.half_open_success_threshold:
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
                    transition = (CircuitState.CLOSED, {})
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

        if transition:
            logger.info("Circuit breaker CLOSED - service recovered")
            self._notify(*transition)

    def record_failure(self, force_open: bool = False) -> None:
        """Count a failure and trip the circuit when warranted.

        Args:
            force_open: Trip immediately regardless of the failure count.
        """
        transition = None
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            if force_open:
                self._failure_count = max(self._failure_count, self.failure_threshold)

            if (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self.failure_threshold
            ):
                transition = self._open_locked()

        if transition:
            logger.error(
                f"Circuit breaker OPEN - too many failures "
                f"(failures={transition[1]['failure_count']}, "
                f"reset_timeout_ms={self.reset_timeout_ms})"
            )
            self._notify(*transition)

    def _open_locked(self):
        if self._state == CircuitState.OPEN:
            return None
        self._state = CircuitState.OPEN
        self._trips += 1
        return (
            CircuitState.OPEN,
            {
                "failure_count": self._failure_count,
                "reset_timeout_ms": self.reset_timeout_ms,
            },
        )

    def reset(self) -> None:
        """Force the circuit CLOSED and clear counters."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._half_open_success_count = 0
        logger.info("Circuit breaker manually reset")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
                "reset_timeout_ms": self.reset_timeout_ms,
                "last_failure_time": self._last_failure_time,
                "half_open_success_threshold": self.half_open_success_threshold,
                "half_open_success_count": self._half_open_success_count,
            }

    def _notify(self, state: CircuitState, details: Dict[str, Any]) -> None:
        if self._on_transition is None:
            return
        try:
            self._on_transition(state, details)
        except Exception as e:
            logger.error(f"Circuit transition callback failed: {e}")
