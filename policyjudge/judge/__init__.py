"""
LLM-as-judge client.

Evaluates single rules against content through a pluggable provider,
with retries, circuit breaking and rate-limit handling.
"""

from policyjudge.judge.models import (
    CircuitState,
    ErrorType,
    JudgeResult,
    MockResponse,
    RateLimitState,
    RetryPolicy,
)
from policyjudge.judge.errors import JudgeProviderError, categorize_error
from policyjudge.judge.circuit import CircuitBreaker, CircuitOpenError
from policyjudge.judge.providers import EvaluationProvider, LiteLLMProvider, MockProvider
from policyjudge.judge.client import JudgeClient

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ErrorType",
    "EvaluationProvider",
    "JudgeClient",
    "JudgeProviderError",
    "JudgeResult",
    "LiteLLMProvider",
    "MockProvider",
    "MockResponse",
    "RateLimitState",
    "RetryPolicy",
    "categorize_error",
]
