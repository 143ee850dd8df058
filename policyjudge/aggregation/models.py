"""Result types produced by rule evaluation and aggregation."""

from dataclasses import dataclass
from typing import Optional, Dict, Any

from policyjudge.policy.models import Action, FinalVerdict, Rule, Verdict
from policyjudge.judge.models import ErrorType, JudgeResult


@dataclass(frozen=True)
class RuleResult:
    """A JudgeResult bound to the rule that produced it."""
    rule_id: str
    verdict: Verdict
    confidence: float
    reasoning: str
    action: Optional[Action] = None
    weight: float = 1.0
    latency_ms: float = 0.0
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None

    @classmethod
    def from_judge_result(cls, rule: Rule, result: JudgeResult) -> "RuleResult":
        return cls(
            rule_id=rule.id,
            verdict=result.verdict,
            confidence=result.confidence,
            reasoning=result.reasoning,
            action=rule.on_fail,
            weight=1.0 if rule.weight is None else rule.weight,
            latency_ms=result.latency_ms,
            error=result.error,
            error_type=result.error_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "rule_id": self.rule_id,
            "verdict": self.verdict.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "action": self.action.value if self.action else None,
            "weight": self.weight,
            "latency_ms": self.latency_ms,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.error_type is not None:
            data["error_type"] = self.error_type.value
        return data


@dataclass(frozen=True)
class AggregationSummary:
    """Counts and explanation behind an aggregated verdict."""
    total_rules: int
    passed: int
    failed: int
    uncertain: int
    strategy: str
    reason: str
    score: Optional[float] = None
    threshold: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "total_rules": self.total_rules,
            "passed": self.passed,
            "failed": self.failed,
            "uncertain": self.uncertain,
            "strategy": self.strategy,
            "reason": self.reason,
        }
        if self.score is not None:
            data["score"] = self.score
        if self.threshold is not None:
            data["threshold"] = self.threshold
        return data


@dataclass(frozen=True)
class AggregationResult:
    final_verdict: FinalVerdict
    passed: bool
    summary: AggregationSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_verdict": self.final_verdict.value,
            "passed": self.passed,
            "summary": self.summary.to_dict(),
        }
