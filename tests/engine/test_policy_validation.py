"""Tests for policy validation."""

import pytest

from policyjudge.engine.validation import validate_policy
from policyjudge.policy.models import Action, Policy, Rule


def rule(**overrides):
    data = {"id": "r1", "judge_prompt": "Is it fine?", "on_fail": "block", "weight": 1.0}
    data.update(overrides)
    return data


class TestValidatePolicy:
    def test_valid_mapping(self):
        result = validate_policy({"name": "p", "rules": [rule()], "evaluation_strategy": "all"})

        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_valid_model(self, three_rule_policy):
        assert validate_policy(three_rule_policy).valid

    @pytest.mark.parametrize("definition", [None, [], ["name", "p"], "name: p", 42])
    def test_non_mapping_definition(self, definition):
        result = validate_policy(definition)

        assert result.valid is False
        assert result.errors == ["Policy definition must be a mapping"]
        assert result.warnings == []

    def test_missing_name(self):
        result = validate_policy({"rules": []})

        assert not result.valid
        assert "Policy name is required" in result.errors

    @pytest.mark.parametrize("rules", [None, "r1", {"id": "r1"}])
    def test_rules_must_be_a_list(self, rules):
        result = validate_policy({"name": "p", "rules": rules})
        assert "Policy rules must be an array" in result.errors

    def test_rule_field_errors_are_numbered_from_one(self):
        result = validate_policy(
            {"name": "p", "rules": [rule(), {"on_fail": "warn"}, "not a rule"]}
        )

        assert result.errors == [
            "Rule 2: id is required",
            "Rule 2: judge_prompt is required",
            "Rule 3: must be a mapping",
        ]

    def test_invalid_on_fail(self):
        result = validate_policy({"name": "p", "rules": [rule(on_fail="delete")]})
        assert result.errors == ["Rule 1: invalid on_fail 'delete'. Valid: allow, block, redact, warn"]

    def test_weight_out_of_range_is_a_warning(self):
        result = validate_policy({"name": "p", "rules": [rule(weight=1.5)]})

        assert result.valid
        assert result.warnings == ["Rule 1: weight should be between 0 and 1"]

    @pytest.mark.parametrize("weight", ["heavy", True])
    def test_non_numeric_weight(self, weight):
        result = validate_policy({"name": "p", "rules": [rule(weight=weight)]})
        assert result.errors == ["Rule 1: weight must be a number"]

    def test_duplicate_ids(self):
        result = validate_policy({"name": "p", "rules": [rule(), rule()]})
        assert result.errors == ["Duplicate rule id 'r1'"]

    def test_invalid_strategy(self):
        result = validate_policy({"name": "p", "rules": [], "evaluation_strategy": "majority"})
        assert result.errors == [
            "Invalid evaluation_strategy: majority. Valid: all, any, weighted_threshold"
        ]

    def test_invalid_default_action(self):
        result = validate_policy({"name": "p", "rules": [], "default_action": "shrug"})
        assert result.errors[0].startswith("Invalid default_action: shrug")

    def test_weighted_threshold_without_threshold_warns(self):
        result = validate_policy(
            {"name": "p", "rules": [], "evaluation_strategy": "weighted_threshold"}
        )

        assert result.valid
        assert result.warnings == ["weighted_threshold strategy should have a threshold defined"]

    @pytest.mark.parametrize("threshold", [-0.1, 1.1, "high"])
    def test_threshold_out_of_range(self, threshold):
        result = validate_policy(
            {
                "name": "p",
                "rules": [],
                "evaluation_strategy": "weighted_threshold",
                "threshold": threshold,
            }
        )
        assert result.errors == ["threshold must be between 0 and 1"]

    def test_zero_threshold_is_valid(self):
        result = validate_policy(
            {"name": "p", "rules": [], "evaluation_strategy": "weighted_threshold", "threshold": 0}
        )
        assert result.valid
        assert result.warnings == []

    def test_model_with_unknown_strategy(self):
        policy = Policy(
            name="p",
            evaluation_strategy="majority",
            rules=(Rule(id="a", judge_prompt="A?", on_fail=Action.REDACT),),
        )
        result = validate_policy(policy)

        assert not result.valid
        assert result.to_dict()["valid"] is False
