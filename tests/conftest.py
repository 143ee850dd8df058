"""Pytest fixtures for policyjudge tests."""

from pathlib import Path
from typing import List

import pytest

from policyjudge.events import EventBus, LifecycleEvent
from policyjudge.judge.client import JudgeClient
from policyjudge.policy.models import Action, Policy, Rule


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def examples_dir() -> Path:
    return Path(__file__).parent.parent / "examples"


@pytest.fixture
def content_safety_path(examples_dir: Path) -> Path:
    return examples_dir / "content_safety" / "policy.yaml"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def captured(events: EventBus) -> List[LifecycleEvent]:
    """Every event emitted on the ``events`` bus."""
    received: List[LifecycleEvent] = []
    events.subscribe(received.append)
    return received


@pytest.fixture
def rule() -> Rule:
    return Rule(id="rule_1", description="Test rule", judge_prompt="Is it fine?")


@pytest.fixture
def three_rules() -> tuple:
    return (
        Rule(id="rule_1", judge_prompt="Check 1", on_fail=Action.BLOCK, weight=1.0),
        Rule(id="rule_2", judge_prompt="Check 2", on_fail=Action.WARN, weight=0.5),
        Rule(id="rule_3", judge_prompt="Check 3", on_fail=Action.REDACT, weight=0.8),
    )


@pytest.fixture
def three_rule_policy(three_rules) -> Policy:
    return Policy(name="test_policy", version="1.0", rules=three_rules)


@pytest.fixture
def make_client(clock: FakeClock, sleep: RecordingSleep, events: EventBus):
    """Factory for mock-mode JudgeClients with fast, deterministic timing."""

    def factory(responses=None, **kwargs) -> JudgeClient:
        params = dict(
            model="test-model",
            timeout_ms=1000,
            max_retries=3,
            retry_delay_ms=100,
            max_retry_delay_ms=1000,
            jitter_factor=0.0,
            circuit_breaker_threshold=5,
            circuit_breaker_reset_ms=30000,
            mock_mode=True,
            mock_responses=responses or {},
            events=events,
            clock=clock,
            sleep=sleep,
            rng=lambda: 0.0,
        )
        params.update(kwargs)
        return JudgeClient(**params)

    return factory
