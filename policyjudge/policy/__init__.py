"""Policy definitions, parsing and persistence."""

from policyjudge.policy.models import (
    Action,
    DEFAULT_THRESHOLD,
    EvaluationStrategy,
    FinalVerdict,
    Policy,
    Rule,
    RuleOperationResult,
    ValidationResult,
    Verdict,
)
from policyjudge.policy.parser import PolicyParser
from policyjudge.policy.store import PolicyStore, YamlPolicyStore
from policyjudge.policy.history import HistoryRecord, HistorySink, InMemoryHistory

__all__ = [
    "Action",
    "DEFAULT_THRESHOLD",
    "EvaluationStrategy",
    "FinalVerdict",
    "HistoryRecord",
    "HistorySink",
    "InMemoryHistory",
    "Policy",
    "PolicyParser",
    "PolicyStore",
    "Rule",
    "RuleOperationResult",
    "ValidationResult",
    "Verdict",
    "YamlPolicyStore",
]
