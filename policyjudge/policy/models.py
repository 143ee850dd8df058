"""
Policy and rule definitions.

Policies are loaded from YAML/JSON (see PolicyParser) or built in code.
Both Rule and Policy are frozen: the orchestrator swaps whole snapshots
instead of editing them in place.

Example YAML:
```yaml
name: content_safety
version: "1.0"
default_action: block
evaluation_strategy: weighted_threshold
threshold: 0.6
rules:
  - id: no_hate_speech
    description: Content must not contain hate speech
    judge_prompt: Does the content attack a person or group based on identity?
    on_fail: block
    weight: 1.0
  - id: professional_tone
    judge_prompt: Is the content written in a professional tone?
    on_fail: warn
    weight: 0.5
```
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Tuple, Dict, Any

from pydantic import BaseModel, ConfigDict, Field


class Action(Enum):
    """Enforcement action attached to a failed rule."""
    ALLOW = "allow"
    BLOCK = "block"
    WARN = "warn"
    REDACT = "redact"


class Verdict(Enum):
    """Per-rule outcome returned by the judge."""
    PASS = "PASS"
    FAIL = "FAIL"
    UNCERTAIN = "UNCERTAIN"


class FinalVerdict(Enum):
    """Policy-level outcome."""
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"
    WARN = "WARN"
    REDACT = "REDACT"
    ERROR = "ERROR"

    @classmethod
    def from_action(cls, action: Action) -> "FinalVerdict":
        return cls(action.value.upper())


class EvaluationStrategy(Enum):
    """How rule verdicts combine into one policy verdict."""
    ALL = "all"
    ANY = "any"
    WEIGHTED_THRESHOLD = "weighted_threshold"

    @classmethod
    def names(cls) -> List[str]:
        return [s.value for s in cls]


DEFAULT_THRESHOLD = 0.7


class Rule(BaseModel):
    """One evaluable criterion sent to the judge."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    description: str = ""
    judge_prompt: str = Field(..., min_length=1)
    on_fail: Action = Action.WARN
    weight: Optional[float] = 1.0


class Policy(BaseModel):
    """Named collection of rules plus the strategy that combines them.

    ``evaluation_strategy`` stays a plain string so that a misconfigured
    name reaches the orchestrator, which reports it as an ERROR verdict.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    version: Optional[str] = None
    default_action: Action = Action.BLOCK
    rules: Tuple[Rule, ...] = ()
    evaluation_strategy: str = EvaluationStrategy.ALL.value
    threshold: Optional[float] = None

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    @property
    def rule_ids(self) -> List[str]:
        return [r.id for r in self.rules]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validate_policy()."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RuleOperationResult:
    """Outcome of an add/update/delete rule call."""
    success: bool
    message: Optional[str] = None
    rule: Optional[Rule] = None
    deleted_rule: Optional[Rule] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.message is not None:
            data["message"] = self.message
        if self.rule is not None:
            data["rule"] = self.rule.model_dump(mode="json")
        if self.deleted_rule is not None:
            data["deleted_rule"] = self.deleted_rule.model_dump(mode="json")
        return data
