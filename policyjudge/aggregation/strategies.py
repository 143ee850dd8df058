"""
Aggregation strategies: many rule verdicts in, one policy verdict out.

Three strategies, one per EvaluationStrategy member:
- all: every rule must pass
- any: at least one rule must pass
- weighted_threshold: weighted pass score must reach the threshold

Strategies are stateless and order-independent; ``aggregate`` has no
side effects beyond logging.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, Type, List, Sequence, Union

from policyjudge.exceptions import UnknownStrategyError
from policyjudge.policy.models import (
    Action,
    DEFAULT_THRESHOLD,
    EvaluationStrategy,
    FinalVerdict,
    Policy,
    Verdict,
)
from policyjudge.aggregation.models import (
    AggregationResult,
    AggregationSummary,
    RuleResult,
)

logger = logging.getLogger(__name__)

# Higher is more severe
ACTION_PRIORITY: Dict[Action, int] = {
    Action.BLOCK: 3,
    Action.REDACT: 2,
    Action.WARN: 1,
    Action.ALLOW: 0,
}

UNCERTAIN_WEIGHT_FACTOR = 0.5

_PASS_FACTOR: Dict[Verdict, float] = {
    Verdict.PASS: 1.0,
    Verdict.UNCERTAIN: UNCERTAIN_WEIGHT_FACTOR,
    Verdict.FAIL: 0.0,
}


def determine_final_action(
    results: Sequence[RuleResult],
    default_action: Action,
) -> FinalVerdict:
    """Most severe action among FAILED results.

    A failed result without an action contributes ``default_action``.
    With no failed results at all, ``default_action`` is returned.
    """
    actions = [
        r.action or default_action for r in results if r.verdict == Verdict.FAIL
    ]
    if not actions:
        return FinalVerdict.from_action(default_action)
    return FinalVerdict.from_action(max(actions, key=ACTION_PRIORITY.__getitem__))


class _Tally:
    """Verdict partition shared by every strategy."""

    def __init__(self, results: Sequence[RuleResult]):
        self.results = list(results)
        self.passed = [r for r in self.results if r.verdict == Verdict.PASS]
        self.failed = [r for r in self.results if r.verdict == Verdict.FAIL]
        self.uncertain = [r for r in self.results if r.verdict == Verdict.UNCERTAIN]

    def summary(self, strategy: str, reason: str, **extra) -> AggregationSummary:
        return AggregationSummary(
            total_rules=len(self.results),
            passed=len(self.passed),
            failed=len(self.failed),
            uncertain=len(self.uncertain),
            strategy=strategy,
            reason=reason,
            **extra,
        )


class AggregationStrategy(ABC):
    """Base class for aggregation strategies."""

    name: str = ""

    @abstractmethod
    def aggregate(self, results: Sequence[RuleResult], policy: Policy) -> AggregationResult:
        """Combine rule results into one verdict for ``policy``."""
        ...

    def _log_tally(self, tally: _Tally) -> None:
        logger.debug(
            f"[{self.name}] Aggregating results (total={len(tally.results)}, "
            f"passed={len(tally.passed)}, failed={len(tally.failed)}, "
            f"uncertain={len(tally.uncertain)})"
        )


# =============================================================================
# Strategies
# =============================================================================


class AllStrategy(AggregationStrategy):
    """Every rule must pass; uncertainty downgrades ALLOW to WARN."""

    name = EvaluationStrategy.ALL.value

    def aggregate(self, results: Sequence[RuleResult], policy: Policy) -> AggregationResult:
        tally = _Tally(results)
        self._log_tally(tally)

        if tally.failed:
            return AggregationResult(
                final_verdict=determine_final_action(tally.failed, policy.default_action),
                passed=False,
                summary=tally.summary(
                    self.name,
                    f"{len(tally.failed)} rule(s) failed - all rules must pass",
                ),
            )

        if tally.uncertain:
            return AggregationResult(
                final_verdict=FinalVerdict.WARN,
                passed=True,
                summary=tally.summary(
                    self.name,
                    f"{len(tally.uncertain)} rule(s) uncertain - manual review recommended",
                ),
            )

        return AggregationResult(
            final_verdict=FinalVerdict.ALLOW,
            passed=True,
            summary=tally.summary(self.name, "All rules passed"),
        )


class AnyStrategy(AggregationStrategy):
    """At least one rule must pass."""

    name = EvaluationStrategy.ANY.value

    def aggregate(self, results: Sequence[RuleResult], policy: Policy) -> AggregationResult:
        tally = _Tally(results)
        self._log_tally(tally)

        if tally.passed:
            return AggregationResult(
                final_verdict=FinalVerdict.ALLOW,
                passed=True,
                summary=tally.summary(
                    self.name,
                    f"{len(tally.passed)} rule(s) passed - only one required",
                ),
            )

        if tally.uncertain:
            return AggregationResult(
                final_verdict=FinalVerdict.WARN,
                passed=False,
                summary=tally.summary(
                    self.name,
                    "No rules passed, some uncertain - manual review required",
                ),
            )

        return AggregationResult(
            final_verdict=determine_final_action(tally.failed, policy.default_action),
            passed=False,
            summary=tally.summary(
                self.name, "All rules failed - at least one must pass"
            ),
        )


class WeightedThresholdStrategy(AggregationStrategy):
    """Weighted pass score must reach the policy threshold.

    PASS counts full weight, UNCERTAIN half, FAIL nothing. Sums use
    ``math.fsum`` so the score does not depend on result order.
    """

    name = EvaluationStrategy.WEIGHTED_THRESHOLD.value

    def aggregate(self, results: Sequence[RuleResult], policy: Policy) -> AggregationResult:
        tally = _Tally(results)
        threshold = DEFAULT_THRESHOLD if policy.threshold is None else policy.threshold

        weights = [1.0 if r.weight is None else r.weight for r in tally.results]
        total_weight = math.fsum(weights)
        passed_weight = math.fsum(
            weight * _PASS_FACTOR[result.verdict]
            for result, weight in zip(tally.results, weights)
        )

        score = passed_weight / total_weight if total_weight > 0 else 0.0
        passed = score >= threshold

        logger.debug(
            f"[{self.name}] total_weight={total_weight}, passed_weight={passed_weight}, "
            f"score={score:.3f}, threshold={threshold}, passed={passed}"
        )

        comparison = ">=" if passed else "<"
        summary = tally.summary(
            self.name,
            f"Weighted score {score * 100:.1f}% {comparison} threshold {threshold * 100:.1f}%",
            score=round(score, 3),
            threshold=threshold,
        )

        if passed:
            final = FinalVerdict.ALLOW
        elif tally.failed:
            final = determine_final_action(tally.failed, policy.default_action)
        else:
            final = FinalVerdict.BLOCK

        return AggregationResult(final_verdict=final, passed=passed, summary=summary)


# =============================================================================
# Module-level helpers
# =============================================================================


STRATEGIES: Dict[EvaluationStrategy, Type[AggregationStrategy]] = {
    EvaluationStrategy.ALL: AllStrategy,
    EvaluationStrategy.ANY: AnyStrategy,
    EvaluationStrategy.WEIGHTED_THRESHOLD: WeightedThresholdStrategy,
}

_unmapped = set(EvaluationStrategy) - set(STRATEGIES)
if _unmapped:
    raise RuntimeError(
        f"No aggregation strategy for: {sorted(s.value for s in _unmapped)}"
    )


def resolve_strategy(name: Union[str, EvaluationStrategy]) -> AggregationStrategy:
    """
    Instantiate the strategy for ``name``.

    Raises:
        UnknownStrategyError: If ``name`` is not an EvaluationStrategy value
    """
    try:
        member = EvaluationStrategy(name)
    except ValueError:
        raise UnknownStrategyError(str(name), EvaluationStrategy.names()) from None
    return STRATEGIES[member]()


def available_strategies() -> List[str]:
    return EvaluationStrategy.names()


def aggregate(results: Sequence[RuleResult], policy: Policy) -> AggregationResult:
    """Aggregate with the strategy named by ``policy.evaluation_strategy``."""
    return resolve_strategy(policy.evaluation_strategy).aggregate(results, policy)
