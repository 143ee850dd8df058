"""Aggregation of per-rule verdicts into a policy verdict."""

from policyjudge.aggregation.models import (
    AggregationResult,
    AggregationSummary,
    RuleResult,
)
from policyjudge.aggregation.strategies import (
    ACTION_PRIORITY,
    STRATEGIES,
    AggregationStrategy,
    AllStrategy,
    AnyStrategy,
    WeightedThresholdStrategy,
    aggregate,
    available_strategies,
    determine_final_action,
    resolve_strategy,
)

__all__ = [
    "ACTION_PRIORITY",
    "STRATEGIES",
    "AggregationResult",
    "AggregationStrategy",
    "AggregationSummary",
    "AllStrategy",
    "AnyStrategy",
    "RuleResult",
    "WeightedThresholdStrategy",
    "aggregate",
    "available_strategies",
    "determine_final_action",
    "resolve_strategy",
]
