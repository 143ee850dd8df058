"""
Evaluation providers for the judge client.

An EvaluationProvider turns (rule, content) into a JudgeResult with one
call and no retries; retry, timeout and circuit breaking belong to
JudgeClient. Two implementations:

- LiteLLMProvider: live call through litellm.acompletion
- MockProvider: programmable stand-in keyed by rule id
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import replace
from typing import Optional, Dict, Any

from policyjudge.policy.models import Rule, Verdict
from policyjudge.judge.errors import JudgeProviderError
from policyjudge.judge.models import (
    ErrorType,
    JudgeResult,
    MockResponse,
    MockResponseSpec,
)
from policyjudge.judge.normalize import (
    normalize_confidence,
    normalize_verdict,
    parse_judge_response,
)
from policyjudge.judge.prompts import build_rule_prompts

logger = logging.getLogger(__name__)


class EvaluationProvider(ABC):
    """Contract between JudgeClient and an external judge."""

    @property
    @abstractmethod
    def mode(self) -> str:
        """'live' or 'mock'."""
        ...

    @abstractmethod
    async def evaluate(self, rule: Rule, content: str) -> JudgeResult:
        """Judge one rule against content. Raise on failure."""
        ...

    async def ping(self) -> None:
        """Check reachability. Raise on failure."""
        return None

    def configure(self, **params: Any) -> None:
        """Apply model parameter updates. Unknown keys are ignored."""
        return None


class LiteLLMProvider(EvaluationProvider):
    """Judge backed by any model litellm can route to.

    Example:
        provider = LiteLLMProvider(model="gpt-4o-mini")
        result = await provider.evaluate(rule, "some user content")
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        max_tokens: int = 500,
        timeout: float = 30.0,
        api_key: Optional[str] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.api_key = api_key
        self._total_tokens_used = 0

    @property
    def mode(self) -> str:
        return "live"

    @property
    def total_tokens_used(self) -> int:
        return self._total_tokens_used

    def configure(self, **params: Any) -> None:
        for key in ("model", "temperature", "max_tokens", "timeout", "api_key"):
            if params.get(key) is not None:
                setattr(self, key, params[key])

    async def evaluate(self, rule: Rule, content: str) -> JudgeResult:
        # Lazy import to avoid import-time side effects
        import litellm

        system_prompt, user_prompt = build_rule_prompts(
            rule.description, rule.judge_prompt, content
        )
        kwargs: Dict[str, Any] = {}
        if self.api_key:
            kwargs["api_key"] = self.api_key

        response = await litellm.acompletion(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
            response_format={"type": "json_object"},
            drop_params=True,
            num_retries=0,
            **kwargs,
        )

        if hasattr(response, "usage") and response.usage:
            self._total_tokens_used += getattr(response.usage, "total_tokens", 0) or 0

        text = self._extract_content(response)
        if not text:
            raise JudgeProviderError(
                "Empty response from judge", error_type=ErrorType.PARSE_ERROR
            )
        return parse_judge_response(text)

    async def ping(self) -> None:
        import litellm

        kwargs: Dict[str, Any] = {}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        await litellm.acompletion(
            model=self.model,
            messages=[{"role": "user", "content": "ping"}],
            max_tokens=1,
            timeout=self.timeout,
            num_retries=0,
            **kwargs,
        )

    def _extract_content(self, response: Any) -> str:
        if hasattr(response, "choices") and response.choices:
            choice = response.choices[0]
            if hasattr(choice, "message") and choice.message:
                return getattr(choice.message, "content", "") or ""
        return ""


class MockProvider(EvaluationProvider):
    """Deterministic provider for tests and offline runs.

    ``responses`` maps rule id to a MockResponse, a dict with the same
    fields, or a callable taking the content and returning a JudgeResult
    or dict (sync or async). Rules without an entry pass.

    ``calls`` counts provider invocations per rule id.
    """

    def __init__(self, responses: Optional[Dict[str, MockResponseSpec]] = None):
        self.responses: Dict[str, MockResponseSpec] = dict(responses or {})
        self.calls: Counter = Counter()

    @property
    def mode(self) -> str:
        return "mock"

    async def evaluate(self, rule: Rule, content: str) -> JudgeResult:
        self.calls[rule.id] += 1
        entry = self.responses.get(rule.id)

        if entry is None:
            return JudgeResult(
                verdict=Verdict.PASS,
                confidence=0.9,
                reasoning="Mock evaluation - content appears acceptable",
            )

        if callable(entry) and not isinstance(entry, (MockResponse, dict)):
            produced = entry(content)
            if inspect.isawaitable(produced):
                produced = await produced
            return self._coerce(produced)

        response = entry if isinstance(entry, MockResponse) else MockResponse.from_dict(entry)

        if response.timeout is not None:
            await asyncio.sleep(response.timeout)
            raise JudgeProviderError("Request timeout", error_type=ErrorType.TIMEOUT)

        if response.rate_limit:
            raise JudgeProviderError(
                "Rate limit exceeded",
                error_type=ErrorType.RATE_LIMIT,
                status_code=429,
            )

        if response.circuit_breaker:
            raise JudgeProviderError(
                "Circuit breaker OPEN",
                error_type=ErrorType.UNKNOWN,
                force_open=True,
            )

        return JudgeResult(
            verdict=response.verdict,
            confidence=normalize_confidence(response.confidence),
            reasoning=response.reasoning,
        )

    @staticmethod
    def _coerce(produced: Any) -> JudgeResult:
        if isinstance(produced, JudgeResult):
            return replace(produced, confidence=normalize_confidence(produced.confidence))
        if isinstance(produced, dict):
            return JudgeResult(
                verdict=normalize_verdict(produced.get("verdict")),
                confidence=normalize_confidence(produced.get("confidence")),
                reasoning=str(produced.get("reasoning", "Mock evaluation")),
            )
        raise JudgeProviderError(
            f"Mock response function returned {type(produced).__name__}",
            error_type=ErrorType.PARSE_ERROR,
        )
