"""Policy evaluation engine: orchestration, verdicts and policy validation."""

from policyjudge.engine.models import PolicyVerdict
from policyjudge.engine.validation import validate_policy
from policyjudge.engine.orchestrator import PolicyOrchestrator

__all__ = [
    "PolicyOrchestrator",
    "PolicyVerdict",
    "validate_policy",
]
