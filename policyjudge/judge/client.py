"""
Resilient judge client.

Wraps one EvaluationProvider with:
- Per-call timeout (asyncio.wait_for)
- Retries with exponential backoff and jitter
- Circuit breaker for fail-fast degradation
- Rate-limit tracking with retry-after handling
- Thread-safe metrics

evaluate() never raises for provider failures: it degrades to an
UNCERTAIN JudgeResult carrying the categorized error. The only
exception that escapes is asyncio.CancelledError, and only after the
cancelled call has been recorded as a failure.
"""

import asyncio
import logging
import random
import threading
import time
from dataclasses import replace
from typing import Optional, Dict, Any, Callable, Awaitable

from policyjudge.events import EventBus, EventType
from policyjudge.policy.models import Rule, Verdict
from policyjudge.judge.circuit import CircuitBreaker, CircuitOpenError, monotonic_ms
from policyjudge.judge.errors import (
    JudgeProviderError,
    categorize_error,
    parse_retry_after_ms,
)
from policyjudge.judge.metrics import JudgeMetrics
from policyjudge.judge.models import (
    CircuitState,
    ErrorType,
    JudgeResult,
    MockResponseSpec,
    RateLimitState,
    RetryPolicy,
)
from policyjudge.judge.providers import EvaluationProvider, LiteLLMProvider, MockProvider

logger = logging.getLogger(__name__)

_CIRCUIT_EVENTS = {
    CircuitState.OPEN: EventType.CIRCUIT_OPEN,
    CircuitState.HALF_OPEN: EventType.CIRCUIT_HALF_OPEN,
    CircuitState.CLOSED: EventType.CIRCUIT_CLOSED,
}


class JudgeClient:
    """Calls the evaluation provider for one rule at a time.

    One instance is shared by every concurrently evaluated rule; its
    circuit breaker, rate-limit state and metrics are guarded by locks.

    Args:
        model: litellm model identifier for the live provider.
        temperature: Sampling temperature.
        max_tokens: Max response tokens.
        timeout_ms: Per-attempt timeout.
        max_retries: Total attempts per evaluation.
        retry_delay_ms: Initial backoff delay.
        max_retry_delay_ms: Backoff cap (before jitter).
        backoff_multiplier: Exponential backoff base.
        jitter_factor: Max jitter as a fraction of the delay.
        circuit_breaker_threshold: Failures that open the circuit.
        circuit_breaker_reset_ms: Open duration before a half-open probe.
        half_open_success_threshold: Probe successes needed to close.
        api_key: Optional API key passed through to litellm.
        provider: Explicit provider (overrides model parameters and mock_mode).
        mock_mode: Start with a MockProvider instead of the live provider.
        mock_responses: Responses for the MockProvider.
        events: EventBus for lifecycle notifications.
        clock: Millisecond clock for the circuit breaker.
        sleep: Coroutine used for backoff sleeps (seconds).
        rng: Random source in [0, 1) for jitter.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        max_tokens: int = 500,
        timeout_ms: float = 30000,
        max_retries: int = 3,
        retry_delay_ms: float = 1000,
        max_retry_delay_ms: float = 10000,
        backoff_multiplier: float = 2.0,
        jitter_factor: float = 0.1,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_reset_ms: float = 30000,
        half_open_success_threshold: int = 2,
        api_key: Optional[str] = None,
        provider: Optional[EvaluationProvider] = None,
        mock_mode: bool = False,
        mock_responses: Optional[Dict[str, MockResponseSpec]] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_ms = timeout_ms
        self._api_key = api_key

        self._retry = RetryPolicy(
            max_retries=max_retries,
            initial_delay_ms=retry_delay_ms,
            max_delay_ms=max_retry_delay_ms,
            backoff_multiplier=backoff_multiplier,
            jitter_factor=jitter_factor,
        )

        self.events = events or EventBus()
        self._clock = clock
        self._sleep = sleep
        self._rng = rng

        self._circuit = CircuitBreaker(
            failure_threshold=circuit_breaker_threshold,
            reset_timeout_ms=circuit_breaker_reset_ms,
            half_open_success_threshold=half_open_success_threshold,
            clock=clock,
            on_transition=self._on_circuit_transition,
        )

        self._rate_limit_lock = threading.Lock()
        self._rate_limit = RateLimitState()
        self._metrics = JudgeMetrics()

        self._live_provider: Optional[EvaluationProvider] = None
        if provider is not None:
            self._provider = provider
        elif mock_mode:
            self._provider = MockProvider(mock_responses)
        else:
            self._provider = self._get_live_provider()

        logger.info(
            f"JudgeClient initialized (model={self.model}, mode={self._provider.mode}, "
            f"timeout_ms={self.timeout_ms}, max_retries={self._retry.max_retries}, "
            f"circuit_threshold={self._circuit.failure_threshold})"
        )

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "JudgeClient":
        """Build a client from a JudgeConfig (or any pydantic model with the same fields)."""
        params = config.model_dump() if hasattr(config, "model_dump") else dict(config)
        params.update(kwargs)
        return cls(**params)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def provider(self) -> EvaluationProvider:
        return self._provider

    @property
    def mode(self) -> str:
        return self._provider.mode

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def circuit(self) -> CircuitBreaker:
        return self._circuit

    @property
    def circuit_state(self) -> CircuitState:
        return self._circuit.state

    @property
    def is_rate_limited(self) -> bool:
        with self._rate_limit_lock:
            return self._rate_limit.is_limited

    @property
    def rate_limit_state(self) -> RateLimitState:
        with self._rate_limit_lock:
            return replace(self._rate_limit)

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def evaluate(self, rule: Rule, content: str) -> JudgeResult:
        """Judge one rule against content. Never raises for provider failures."""
        start = time.perf_counter()
        self._metrics.increment("requests")

        logger.info(
            f"Evaluating rule '{rule.id}' (content_length={len(content)}, "
            f"circuit={self._circuit.state.value})"
        )
        self.events.emit(EventType.JUDGE_EVALUATION_START, rule_id=rule.id)

        try:
            try:
                self._circuit.before_call()
            except CircuitOpenError as e:
                return self._rejected(rule, e, start)

            result = await self._evaluate_with_retry(rule, content)

        except asyncio.CancelledError:
            latency = _elapsed_ms(start)
            self._metrics.increment("timeouts")
            self._record_failure(latency)
            logger.warning(f"Evaluation of rule '{rule.id}' cancelled after {latency:.0f}ms")
            self.events.emit(
                EventType.JUDGE_EVALUATION_ERROR,
                rule_id=rule.id,
                error="Evaluation cancelled",
                error_type=ErrorType.TIMEOUT.value,
                latency_ms=latency,
            )
            raise

        except Exception as e:
            return self._failed(rule, e, start)

        latency = _elapsed_ms(start)
        self._record_success(latency)
        self.events.emit(
            EventType.JUDGE_EVALUATION_COMPLETE,
            rule_id=rule.id,
            verdict=result.verdict.value,
            latency_ms=latency,
        )
        return replace(result, latency_ms=latency)

    async def _evaluate_with_retry(self, rule: Rule, content: str) -> JudgeResult:
        retry = self._retry
        attempts = max(1, retry.max_retries)
        timeout_s = self.timeout_ms / 1000
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._provider.evaluate(rule, content), timeout=timeout_s
                )
            except asyncio.TimeoutError:
                last_error = JudgeProviderError(
                    f"Request timeout after {self.timeout_ms:.0f}ms",
                    error_type=ErrorType.TIMEOUT,
                )
            except Exception as e:
                last_error = e

            error_type = categorize_error(last_error)
            if error_type == ErrorType.TIMEOUT:
                self._metrics.increment("timeouts")
            elif error_type == ErrorType.RATE_LIMIT:
                self._metrics.increment("rate_limits")
                self._mark_rate_limited(last_error)

            logger.warning(
                f"Rule '{rule.id}' attempt {attempt}/{attempts} failed: "
                f"{last_error} ({error_type.value})"
            )

            if getattr(last_error, "force_open", False) or not error_type.retryable:
                logger.warning(f"Non-retryable error ({error_type.value}), aborting retries")
                raise last_error

            if attempt < attempts:
                self._metrics.increment("retries")
                delay_ms = self.calculate_retry_delay(attempt, error_type, last_error)
                logger.info(
                    f"Retrying rule '{rule.id}' in {delay_ms:.0f}ms "
                    f"(attempt {attempt}, {error_type.value})"
                )
                await self._sleep(delay_ms / 1000)

        raise last_error

    def calculate_retry_delay(
        self,
        attempt: int,
        error_type: ErrorType,
        error: Optional[BaseException] = None,
    ) -> float:
        """Backoff delay in ms after a failed 1-based attempt."""
        retry = self._retry
        delay = retry.base_delay_ms(attempt)
        delay += delay * retry.jitter_factor * self._rng()

        if error_type == ErrorType.RATE_LIMIT:
            if error is not None:
                retry_after = parse_retry_after_ms(error)
            else:
                retry_after = self.rate_limit_state.retry_after_ms
            delay = max(delay, retry_after)

        return delay

    # =========================================================================
    # Outcome recording
    # =========================================================================

    def _rejected(self, rule: Rule, error: CircuitOpenError, start: float) -> JudgeResult:
        """Fail fast while the circuit is OPEN; the provider is not called.

        The rejection still counts as a circuit failure, which pushes the
        reset window out from the time of this call.
        """
        latency = _elapsed_ms(start)
        error_type = categorize_error(error)
        self._record_failure(latency)
        logger.warning(f"Rule '{rule.id}' rejected: {error}")
        self.events.emit(
            EventType.JUDGE_EVALUATION_ERROR,
            rule_id=rule.id,
            error=str(error),
            error_type=error_type.value,
            latency_ms=latency,
        )
        return _degraded(error, error_type, latency)

    def _failed(self, rule: Rule, error: BaseException, start: float) -> JudgeResult:
        latency = _elapsed_ms(start)
        error_type = categorize_error(error)
        self._record_failure(latency, force_open=getattr(error, "force_open", False))

        logger.error(
            f"Evaluation of rule '{rule.id}' failed: {error} "
            f"(type={error_type.value}, latency={latency:.0f}ms, "
            f"circuit={self._circuit.state.value})"
        )
        self.events.emit(
            EventType.JUDGE_EVALUATION_ERROR,
            rule_id=rule.id,
            error=str(error),
            error_type=error_type.value,
            latency_ms=latency,
        )
        return _degraded(error, error_type, latency)

    def _record_success(self, latency_ms: float) -> None:
        self._metrics.increment("successes")
        self._metrics.add_latency(latency_ms)
        self._circuit.record_success()
        with self._rate_limit_lock:
            self._rate_limit.is_limited = False

    def _record_failure(self, latency_ms: float, force_open: bool = False) -> None:
        self._metrics.increment("failures")
        self._metrics.add_latency(latency_ms)
        self._circuit.record_failure(force_open=force_open)

    def _mark_rate_limited(self, error: BaseException) -> None:
        retry_after = parse_retry_after_ms(error)
        with self._rate_limit_lock:
            self._rate_limit.is_limited = True
            self._rate_limit.retry_after_ms = retry_after
            self._rate_limit.last_rate_limit_time = self._clock()
        logger.warning(f"Rate limit detected (retry_after_ms={retry_after:.0f})")

    def _on_circuit_transition(self, state: CircuitState, details: Dict[str, Any]) -> None:
        self.events.emit(_CIRCUIT_EVENTS[state], **details)

    # =========================================================================
    # Management
    # =========================================================================

    def update_config(self, **changes: Any) -> None:
        """Hot-swap model, timeout, retry and circuit parameters.

        Unknown or None-valued keys are ignored.
        """
        changes = {k: v for k, v in changes.items() if v is not None}

        for key in ("model", "temperature", "max_tokens", "timeout_ms"):
            if key in changes:
                setattr(self, key, changes[key])
        if "api_key" in changes:
            self._api_key = changes["api_key"]

        retry_fields = {
            "max_retries": "max_retries",
            "retry_delay_ms": "initial_delay_ms",
            "max_retry_delay_ms": "max_delay_ms",
            "backoff_multiplier": "backoff_multiplier",
            "jitter_factor": "jitter_factor",
        }
        retry_updates = {
            field: changes[key] for key, field in retry_fields.items() if key in changes
        }
        if retry_updates:
            self._retry = replace(self._retry, **retry_updates)

        if "circuit_breaker_threshold" in changes:
            self._circuit.failure_threshold = changes["circuit_breaker_threshold"]
        if "circuit_breaker_reset_ms" in changes:
            self._circuit.reset_timeout_ms = changes["circuit_breaker_reset_ms"]
        if "half_open_success_threshold" in changes:
            self._circuit.half_open_success_threshold = changes["half_open_success_threshold"]

        if self._live_provider is not None:
            self._live_provider.configure(**self._provider_params())

        logger.info(
            f"JudgeClient configuration updated (model={self.model}, "
            f"timeout_ms={self.timeout_ms}, max_retries={self._retry.max_retries}, "
            f"circuit_threshold={self._circuit.failure_threshold})"
        )

    def set_mock_mode(
        self,
        enabled: bool,
        responses: Optional[Dict[str, MockResponseSpec]] = None,
    ) -> None:
        """Swap between the live provider and a MockProvider."""
        if enabled:
            self._provider = MockProvider(responses)
        else:
            self._provider = self._get_live_provider()
        logger.info(
            f"Mock mode {'enabled' if enabled else 'disabled'} "
            f"({len(responses or {})} responses)"
        )

    def get_metrics(self) -> Dict[str, Any]:
        report = self._metrics.snapshot()
        report.update(
            circuit_breaker_trips=self._circuit.trips,
            circuit_state=self._circuit.state.value,
            circuit_failure_count=self._circuit.failure_count,
            is_rate_limited=self.is_rate_limited,
        )
        return report

    def reset_circuit_breaker(self) -> None:
        self._circuit.reset()
        with self._rate_limit_lock:
            self._rate_limit.is_limited = False
        self.events.emit(EventType.CIRCUIT_RESET)

    async def health_check(self) -> Dict[str, Any]:
        """Report reachability without evaluating a rule."""
        result: Dict[str, Any] = {"healthy": True, "mode": self.mode}

        if self.mode == "mock":
            pass
        elif self._circuit.state == CircuitState.OPEN:
            result.update(healthy=False, error="Circuit breaker is OPEN")
        else:
            try:
                await asyncio.wait_for(self._provider.ping(), timeout=self.timeout_ms / 1000)
                result["model"] = self.model
            except Exception as e:
                result.update(healthy=False, error=str(e) or type(e).__name__)

        result["circuit_state"] = self._circuit.state.value
        result["metrics"] = self.get_metrics()
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    def _provider_params(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout_ms / 1000,
            "api_key": self._api_key,
        }

    def _get_live_provider(self) -> EvaluationProvider:
        if self._live_provider is None:
            self._live_provider = LiteLLMProvider(**self._provider_params())
        else:
            self._live_provider.configure(**self._provider_params())
        return self._live_provider


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _degraded(error: BaseException, error_type: ErrorType, latency_ms: float) -> JudgeResult:
    message = str(error) or type(error).__name__
    return JudgeResult(
        verdict=Verdict.UNCERTAIN,
        confidence=0.0,
        reasoning=f"Evaluation failed: {message}",
        latency_ms=latency_ms,
        error=message,
        error_type=error_type,
    )
