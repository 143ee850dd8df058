"""Policy-level evaluation result."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Tuple, Dict, Any

from policyjudge.policy.models import FinalVerdict
from policyjudge.aggregation.models import AggregationSummary, RuleResult


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class PolicyVerdict:
    """Final decision for one piece of content under one policy."""
    policy_name: str
    policy_version: Optional[str]
    final_verdict: FinalVerdict
    passed: bool
    rule_results: Tuple[RuleResult, ...] = ()
    summary: Optional[AggregationSummary] = None
    error: Optional[str] = None
    total_latency_ms: float = 0.0
    evaluated_at: str = field(default_factory=utc_now_iso)
    evaluation_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.final_verdict == FinalVerdict.ERROR

    def with_evaluation_id(self, evaluation_id: str) -> "PolicyVerdict":
        return replace(self, evaluation_id=evaluation_id)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "policy_name": self.policy_name,
            "policy_version": self.policy_version,
            "final_verdict": self.final_verdict.value,
            "passed": self.passed,
            "evaluated_at": self.evaluated_at,
            "rule_results": [r.to_dict() for r in self.rule_results],
            "total_latency_ms": self.total_latency_ms,
        }
        if self.summary is not None:
            data["summary"] = self.summary.to_dict()
        if self.error is not None:
            data["error"] = self.error
        if self.evaluation_id is not None:
            data["evaluation_id"] = self.evaluation_id
        return data
