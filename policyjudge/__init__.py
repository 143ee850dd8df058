"""
policyjudge - LLM-as-judge policy enforcement.

Evaluates content against declaratively defined rules. Each rule is
judged by an LLM (through litellm) and the per-rule verdicts are
aggregated into one enforcement decision: allow, block, warn or redact.

Quick Start:
    ```python
    from policyjudge import PolicyOrchestrator, PolicyParser

    policy = PolicyParser.parse_file("content_safety.yaml")
    orchestrator = PolicyOrchestrator(policy=policy)

    verdict = await orchestrator.evaluate("some user content")
    if not verdict.passed:
        print(verdict.final_verdict, verdict.summary.reason)
    ```

Offline / tests:
    ```python
    orchestrator = PolicyOrchestrator(
        policy=policy,
        mock_mode=True,
        mock_responses={"no_pii": {"verdict": "FAIL", "confidence": 0.95}},
    )
    ```
"""

__version__ = "0.1.0"

from policyjudge.config.settings import PolicyJudgeSettings
from policyjudge.events import EventBus, EventType, LifecycleEvent
from policyjudge.exceptions import PolicyJudgeError, PolicyStoreError, UnknownStrategyError
from policyjudge.policy import (
    Action,
    EvaluationStrategy,
    FinalVerdict,
    InMemoryHistory,
    Policy,
    PolicyParser,
    Rule,
    Verdict,
    YamlPolicyStore,
)
from policyjudge.judge import JudgeClient, JudgeResult, MockResponse
from policyjudge.aggregation import AggregationResult, RuleResult, aggregate
from policyjudge.engine import PolicyOrchestrator, PolicyVerdict, validate_policy

__all__ = [
    # Version
    "__version__",
    # Configuration
    "PolicyJudgeSettings",
    # Events
    "EventBus",
    "EventType",
    "LifecycleEvent",
    # Errors
    "PolicyJudgeError",
    "PolicyStoreError",
    "UnknownStrategyError",
    # Policy
    "Action",
    "EvaluationStrategy",
    "FinalVerdict",
    "InMemoryHistory",
    "Policy",
    "PolicyParser",
    "Rule",
    "Verdict",
    "YamlPolicyStore",
    # Judge
    "JudgeClient",
    "JudgeResult",
    "MockResponse",
    # Aggregation
    "AggregationResult",
    "RuleResult",
    "aggregate",
    # Engine
    "PolicyOrchestrator",
    "PolicyVerdict",
    "validate_policy",
]
