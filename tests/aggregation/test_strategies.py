"""Tests for verdict aggregation strategies."""

import itertools

import pytest

from policyjudge.aggregation import (
    STRATEGIES,
    AggregationStrategy,
    RuleResult,
    aggregate,
    available_strategies,
    determine_final_action,
    resolve_strategy,
)
from policyjudge.exceptions import UnknownStrategyError
from policyjudge.judge.models import ErrorType, JudgeResult
from policyjudge.policy.models import (
    Action,
    EvaluationStrategy,
    FinalVerdict,
    Policy,
    Rule,
    Verdict,
)


def result(rule_id, verdict, action=Action.BLOCK, weight=1.0, confidence=0.9):
    return RuleResult(
        rule_id=rule_id,
        verdict=verdict,
        confidence=confidence,
        reasoning=f"{rule_id} {verdict.value}",
        action=action,
        weight=weight,
    )


def policy(strategy="all", threshold=None, default_action=Action.BLOCK):
    return Policy(
        name="p",
        evaluation_strategy=strategy,
        threshold=threshold,
        default_action=default_action,
    )


class TestDetermineFinalAction:
    def test_highest_priority_failed_action(self):
        results = [
            result("a", Verdict.FAIL, Action.WARN),
            result("b", Verdict.FAIL, Action.REDACT),
        ]
        assert determine_final_action(results, Action.BLOCK) == FinalVerdict.REDACT

    def test_passed_results_do_not_contribute(self):
        results = [
            result("a", Verdict.PASS, Action.BLOCK),
            result("b", Verdict.FAIL, Action.WARN),
        ]
        assert determine_final_action(results, Action.ALLOW) == FinalVerdict.WARN

    def test_missing_action_uses_default(self):
        results = [result("a", Verdict.FAIL, None), result("b", Verdict.FAIL, Action.WARN)]
        assert determine_final_action(results, Action.REDACT) == FinalVerdict.REDACT

    def test_no_failures_returns_default(self):
        assert determine_final_action([], Action.WARN) == FinalVerdict.WARN


class TestAllStrategy:
    def test_all_pass(self):
        """Three passing rules allow the content."""
        results = [result(f"rule_{i}", Verdict.PASS) for i in range(1, 4)]
        outcome = aggregate(results, policy("all"))

        assert outcome.final_verdict == FinalVerdict.ALLOW
        assert outcome.passed is True
        assert outcome.summary.reason == "All rules passed"
        assert outcome.summary.total_rules == 3
        assert outcome.summary.passed == 3

    def test_one_failure_blocks(self):
        results = [
            result("rule_1", Verdict.FAIL, Action.BLOCK, 1.0),
            result("rule_2", Verdict.PASS, Action.WARN, 0.5),
            result("rule_3", Verdict.PASS, Action.REDACT, 0.8),
        ]
        outcome = aggregate(results, policy("all"))

        assert outcome.final_verdict == FinalVerdict.BLOCK
        assert outcome.passed is False
        assert outcome.summary.reason == "1 rule(s) failed - all rules must pass"

    def test_uncertain_warns_but_passes(self):
        """A timed-out rule degrades to UNCERTAIN, which warns."""
        degraded = RuleResult.from_judge_result(
            Rule(id="rule_2", judge_prompt="Check 2", on_fail=Action.WARN),
            JudgeResult(
                verdict=Verdict.UNCERTAIN,
                confidence=0.0,
                reasoning="Evaluation failed: Request timeout after 1000ms",
                error="Request timeout after 1000ms",
                error_type=ErrorType.TIMEOUT,
            ),
        )
        results = [result("rule_1", Verdict.PASS), degraded, result("rule_3", Verdict.PASS)]
        outcome = aggregate(results, policy("all"))

        assert outcome.final_verdict == FinalVerdict.WARN
        assert outcome.passed is True
        assert outcome.summary.reason == "1 rule(s) uncertain - manual review recommended"

    def test_failure_outranks_uncertain(self):
        results = [result("a", Verdict.UNCERTAIN), result("b", Verdict.FAIL, Action.REDACT)]
        outcome = aggregate(results, policy("all"))

        assert outcome.final_verdict == FinalVerdict.REDACT
        assert outcome.passed is False

    def test_empty_results_allow(self):
        outcome = aggregate([], policy("all"))

        assert outcome.final_verdict == FinalVerdict.ALLOW
        assert outcome.passed is True
        assert outcome.summary.total_rules == 0


class TestAnyStrategy:
    def test_one_pass_is_enough(self):
        results = [result("a", Verdict.FAIL), result("b", Verdict.PASS)]
        outcome = aggregate(results, policy("any"))

        assert outcome.final_verdict == FinalVerdict.ALLOW
        assert outcome.passed is True
        assert outcome.summary.reason == "1 rule(s) passed - only one required"

    def test_no_pass_with_uncertain_warns_and_fails(self):
        results = [result("a", Verdict.FAIL), result("b", Verdict.UNCERTAIN)]
        outcome = aggregate(results, policy("any"))

        assert outcome.final_verdict == FinalVerdict.WARN
        assert outcome.passed is False
        assert outcome.summary.reason == "No rules passed, some uncertain - manual review required"

    def test_all_fail_uses_most_severe_action(self):
        results = [
            result("rule_1", Verdict.FAIL, Action.WARN),
            result("rule_2", Verdict.FAIL, Action.BLOCK),
            result("rule_3", Verdict.FAIL, Action.REDACT),
        ]
        outcome = aggregate(results, policy("any"))

        assert outcome.final_verdict == FinalVerdict.BLOCK
        assert outcome.passed is False
        assert outcome.summary.reason == "All rules failed - at least one must pass"

    def test_empty_results_use_default_action(self):
        outcome = aggregate([], policy("any", default_action=Action.WARN))

        assert outcome.final_verdict == FinalVerdict.WARN
        assert outcome.passed is False


class TestWeightedThresholdStrategy:
    def test_weighted_pass(self):
        results = [
            result("rule_1", Verdict.PASS, Action.BLOCK, 1.0),
            result("rule_2", Verdict.FAIL, Action.WARN, 0.5),
            result("rule_3", Verdict.PASS, Action.REDACT, 0.8),
        ]
        outcome = aggregate(results, policy("weighted_threshold", threshold=0.6))

        assert outcome.final_verdict == FinalVerdict.ALLOW
        assert outcome.passed is True
        assert outcome.summary.score == 0.783
        assert outcome.summary.threshold == 0.6
        assert outcome.summary.reason == "Weighted score 78.3% >= threshold 60.0%"

    def test_below_threshold_uses_failed_actions(self):
        results = [
            result("a", Verdict.FAIL, Action.REDACT, 2.0),
            result("b", Verdict.PASS, Action.BLOCK, 1.0),
        ]
        outcome = aggregate(results, policy("weighted_threshold", threshold=0.5))

        assert outcome.final_verdict == FinalVerdict.REDACT
        assert outcome.passed is False
        assert outcome.summary.reason == "Weighted score 33.3% < threshold 50.0%"

    def test_uncertain_counts_half(self):
        results = [result("a", Verdict.UNCERTAIN, weight=1.0), result("b", Verdict.PASS, weight=1.0)]
        outcome = aggregate(results, policy("weighted_threshold", threshold=0.75))

        assert outcome.summary.score == 0.75
        assert outcome.passed is True

    def test_below_threshold_without_failures_blocks(self):
        results = [result("a", Verdict.UNCERTAIN, Action.WARN)]
        outcome = aggregate(
            results, policy("weighted_threshold", threshold=0.9, default_action=Action.ALLOW)
        )

        assert outcome.final_verdict == FinalVerdict.BLOCK
        assert outcome.passed is False

    def test_default_threshold(self):
        results = [result("a", Verdict.PASS, weight=7), result("b", Verdict.FAIL, Action.WARN, weight=3)]
        outcome = aggregate(results, policy("weighted_threshold"))

        assert outcome.summary.threshold == 0.7
        assert outcome.passed is True

    def test_zero_threshold_is_respected(self):
        results = [result("a", Verdict.FAIL)]
        outcome = aggregate(results, policy("weighted_threshold", threshold=0.0))

        assert outcome.summary.threshold == 0.0
        assert outcome.passed is True

    def test_zero_total_weight_scores_zero(self):
        results = [result("a", Verdict.PASS, weight=0.0)]
        outcome = aggregate(results, policy("weighted_threshold", threshold=0.5))

        assert outcome.summary.score == 0.0
        assert outcome.passed is False

    def test_empty_results(self):
        outcome = aggregate([], policy("weighted_threshold", threshold=0.5))

        assert outcome.summary.score == 0.0
        assert outcome.final_verdict == FinalVerdict.BLOCK


class TestOrderIndependence:
    @pytest.mark.parametrize("strategy", ["all", "any", "weighted_threshold"])
    def test_permutations_agree(self, strategy):
        results = [
            result("a", Verdict.PASS, Action.WARN, 0.4),
            result("b", Verdict.FAIL, Action.REDACT, 1.0),
            result("c", Verdict.UNCERTAIN, Action.BLOCK, 0.7),
            result("d", Verdict.FAIL, Action.WARN, 0.2),
        ]
        pol = policy(strategy, threshold=0.5)
        outcomes = {
            (o.final_verdict, o.passed, o.summary)
            for o in (aggregate(list(p), pol) for p in itertools.permutations(results))
        }
        assert len(outcomes) == 1

    def test_weighted_score_ignores_float_summation_order(self):
        # 0.1 + 0.1 + 0.2 rounds differently depending on addition order
        results = [
            result("a", Verdict.PASS, weight=0.1),
            result("b", Verdict.UNCERTAIN, weight=0.1),
            result("c", Verdict.PASS, weight=0.2),
        ]
        pol = policy("weighted_threshold", threshold=0.875)
        outcomes = {
            (o.final_verdict, o.passed, o.summary.score)
            for o in (aggregate(list(p), pol) for p in itertools.permutations(results))
        }
        assert len(outcomes) == 1


class TestStrategyLookup:
    def test_builtin_strategies(self):
        assert set(available_strategies()) >= {"all", "any", "weighted_threshold"}
        assert resolve_strategy("any").name == "any"

    def test_unknown_strategy(self):
        with pytest.raises(UnknownStrategyError) as exc_info:
            resolve_strategy("majority")

        assert exc_info.value.strategy == "majority"
        assert "Valid options: all, any, weighted_threshold" in str(exc_info.value)

    def test_unknown_strategy_via_aggregate(self):
        with pytest.raises(ValueError):
            aggregate([], policy("majority"))

    def test_every_strategy_member_is_mapped(self):
        assert set(STRATEGIES) == set(EvaluationStrategy)
        for member, strategy_class in STRATEGIES.items():
            assert issubclass(strategy_class, AggregationStrategy)
            assert strategy_class.name == member.value

    def test_resolve_accepts_enum_member(self):
        strategy = resolve_strategy(EvaluationStrategy.WEIGHTED_THRESHOLD)
        assert strategy.name == "weighted_threshold"

    def test_available_matches_validation_names(self):
        assert available_strategies() == EvaluationStrategy.names()
