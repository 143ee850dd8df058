"""
Structural validation of policy definitions.

Works on raw mappings (as read from a file or request body) as well as
Policy models, and reports problems instead of raising.
"""

from collections import Counter
from typing import Union, Mapping, Any, List

from policyjudge.policy.models import Action, EvaluationStrategy, Policy, ValidationResult

_VALID_ACTIONS = {a.value for a in Action}


def _as_mapping(policy: Union[Policy, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(policy, Policy):
        return policy.model_dump(mode="json")
    return policy


def _action_value(value: Any) -> Any:
    return value.value if isinstance(value, Action) else value


def validate_policy(policy: Union[Policy, Mapping[str, Any]]) -> ValidationResult:
    """Check a policy definition.

    Errors make the policy unusable; warnings flag settings that work
    but are probably unintended.
    """
    data = _as_mapping(policy)
    if not isinstance(data, Mapping):
        return ValidationResult(
            valid=False, errors=["Policy definition must be a mapping"], warnings=[]
        )

    errors: List[str] = []
    warnings: List[str] = []

    if not data.get("name"):
        errors.append("Policy name is required")

    rules = data.get("rules")
    if isinstance(rules, tuple):
        rules = list(rules)
    if not isinstance(rules, list):
        errors.append("Policy rules must be an array")
    else:
        for index, rule in enumerate(rules, start=1):
            if not isinstance(rule, Mapping):
                errors.append(f"Rule {index}: must be a mapping")
                continue
            if not rule.get("id"):
                errors.append(f"Rule {index}: id is required")
            if not rule.get("judge_prompt"):
                errors.append(f"Rule {index}: judge_prompt is required")

            on_fail = _action_value(rule.get("on_fail"))
            if on_fail is not None and on_fail not in _VALID_ACTIONS:
                errors.append(
                    f"Rule {index}: invalid on_fail '{on_fail}'. "
                    f"Valid: {', '.join(sorted(_VALID_ACTIONS))}"
                )

            weight = rule.get("weight")
            if weight is not None:
                if not isinstance(weight, (int, float)) or isinstance(weight, bool):
                    errors.append(f"Rule {index}: weight must be a number")
                elif weight < 0 or weight > 1:
                    warnings.append(f"Rule {index}: weight should be between 0 and 1")

        ids = Counter(r.get("id") for r in rules if isinstance(r, Mapping) and r.get("id"))
        for rule_id, count in ids.items():
            if count > 1:
                errors.append(f"Duplicate rule id '{rule_id}'")

    default_action = _action_value(data.get("default_action"))
    if default_action is not None and default_action not in _VALID_ACTIONS:
        errors.append(
            f"Invalid default_action: {default_action}. "
            f"Valid: {', '.join(sorted(_VALID_ACTIONS))}"
        )

    strategy = data.get("evaluation_strategy")
    valid_strategies = EvaluationStrategy.names()
    if strategy and strategy not in valid_strategies:
        errors.append(
            f"Invalid evaluation_strategy: {strategy}. Valid: {', '.join(valid_strategies)}"
        )

    if strategy == EvaluationStrategy.WEIGHTED_THRESHOLD.value:
        threshold = data.get("threshold")
        if threshold is None:
            warnings.append("weighted_threshold strategy should have a threshold defined")
        elif not isinstance(threshold, (int, float)) or threshold < 0 or threshold > 1:
            errors.append("threshold must be between 0 and 1")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
