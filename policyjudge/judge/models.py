"""
Type definitions for the judge client.

Enums and dataclasses for per-rule judge results, retry and circuit
breaker configuration, and mock responses used in deterministic tests.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any, Callable, Union, Awaitable

from policyjudge.policy.models import Verdict


class ErrorType(Enum):
    """Category of a failed provider call."""
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    SERVER_ERROR = "SERVER_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    UNKNOWN = "UNKNOWN"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE


_RETRYABLE = frozenset({
    ErrorType.TIMEOUT,
    ErrorType.RATE_LIMIT,
    ErrorType.SERVER_ERROR,
    ErrorType.NETWORK_ERROR,
})


class CircuitState(Enum):
    """Circuit breaker state."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class JudgeResult:
    """Normalized outcome of judging one rule against one piece of content."""
    verdict: Verdict
    confidence: float
    reasoning: str
    latency_ms: float = 0.0
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "verdict": self.verdict.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "latency_ms": self.latency_ms,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.error_type is not None:
            data["error_type"] = self.error_type.value
        return data


@dataclass
class RetryPolicy:
    """Retry settings read by every provider call.

    ``max_retries`` is the total number of attempts, not the number of
    extra attempts after the first.
    """
    max_retries: int = 3
    initial_delay_ms: float = 1000.0
    max_delay_ms: float = 10000.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1

    def base_delay_ms(self, attempt: int) -> float:
        """Exponential delay for a 1-based attempt number, capped."""
        delay = self.initial_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay_ms)


@dataclass
class RateLimitState:
    """Most recent rate-limit signal from the provider."""
    is_limited: bool = False
    retry_after_ms: float = 0.0
    last_rate_limit_time: Optional[float] = None


@dataclass
class MockResponse:
    """Programmable stand-in for one rule's provider reply.

    Failure injection fields take priority over the verdict fields:
    ``timeout`` sleeps that many seconds then fails with TIMEOUT,
    ``rate_limit`` fails with a 429, ``circuit_breaker`` forces the
    client's circuit open.
    """
    verdict: Verdict = Verdict.PASS
    confidence: float = 0.9
    reasoning: str = "Mock evaluation"
    timeout: Optional[float] = None
    rate_limit: bool = False
    circuit_breaker: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MockResponse":
        verdict = data.get("verdict", Verdict.PASS)
        if not isinstance(verdict, Verdict):
            verdict = Verdict(str(verdict).upper())
        return cls(
            verdict=verdict,
            confidence=data.get("confidence", 0.9),
            reasoning=data.get("reasoning", "Mock evaluation"),
            timeout=data.get("timeout"),
            rate_limit=bool(data.get("rate_limit", False)),
            circuit_breaker=bool(data.get("circuit_breaker", False)),
        )


MockResponseFunction = Callable[[str], Union[JudgeResult, Dict[str, Any], Awaitable[Any]]]
MockResponseSpec = Union[MockResponse, Dict[str, Any], MockResponseFunction]
