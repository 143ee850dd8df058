"""Tests for policy models and the policy parser."""

import json

import pytest
from pydantic import ValidationError

from policyjudge.policy.models import (
    Action,
    EvaluationStrategy,
    FinalVerdict,
    Policy,
    Rule,
    RuleOperationResult,
)
from policyjudge.policy.parser import PolicyParser


POLICY_YAML = """
name: tone
version: "2.1"
default_action: warn
evaluation_strategy: weighted_threshold
threshold: 0.5
rules:
  - id: polite
    description: Be polite
    judge_prompt: Is the content polite?
    on_fail: warn
    weight: 0.4
  - id: on_topic
    judge_prompt: Does the content stay on topic?
"""


class TestModels:
    def test_rule_defaults(self):
        rule = Rule(id="r", judge_prompt="Is it fine?")

        assert rule.description == ""
        assert rule.on_fail == Action.WARN
        assert rule.weight == 1.0

    def test_rule_requires_id_and_prompt(self):
        with pytest.raises(ValidationError):
            Rule(id="", judge_prompt="x")
        with pytest.raises(ValidationError):
            Rule(id="r")

    def test_models_are_frozen(self):
        rule = Rule(id="r", judge_prompt="x")
        with pytest.raises(ValidationError):
            rule.weight = 0.2

    def test_policy_defaults(self):
        policy = Policy(name="p")

        assert policy.default_action == Action.BLOCK
        assert policy.evaluation_strategy == "all"
        assert policy.threshold is None
        assert policy.rules == ()

    def test_unknown_strategy_is_kept(self):
        assert Policy(name="p", evaluation_strategy="majority").evaluation_strategy == "majority"

    def test_final_verdict_from_action(self):
        assert FinalVerdict.from_action(Action.REDACT) == FinalVerdict.REDACT
        assert EvaluationStrategy.names() == ["all", "any", "weighted_threshold"]

    def test_rule_operation_result_to_dict(self):
        rule = Rule(id="r", judge_prompt="x", on_fail=Action.BLOCK)
        data = RuleOperationResult(success=True, rule=rule).to_dict()

        assert data == {
            "success": True,
            "rule": {
                "id": "r",
                "description": "",
                "judge_prompt": "x",
                "on_fail": "block",
                "weight": 1.0,
            },
        }


class TestPolicyParser:
    def test_parse_string(self):
        policy = PolicyParser.parse_string(POLICY_YAML)

        assert policy.name == "tone"
        assert policy.version == "2.1"
        assert policy.default_action == Action.WARN
        assert policy.threshold == 0.5
        assert policy.rule_ids == ["polite", "on_topic"]
        assert policy.get_rule("polite").weight == 0.4
        assert policy.get_rule("on_topic").on_fail == Action.WARN
        assert policy.get_rule("missing") is None

    def test_parse_json(self):
        text = json.dumps({"name": "j", "rules": [{"id": "a", "judge_prompt": "A?"}]})
        assert PolicyParser.parse_string(text, format="json").rule_ids == ["a"]

    def test_nested_policy_key(self):
        policy = PolicyParser.parse_dict({"model": "x", "policy": {"name": "nested"}})
        assert policy.name == "nested"

    def test_unsupported_format(self):
        with pytest.raises(ValueError, match="Unsupported format"):
            PolicyParser.parse_string("name: x", format="toml")

    def test_empty_document(self):
        with pytest.raises(ValueError, match="Empty policy definition"):
            PolicyParser.parse_string("")

    def test_non_mapping_document(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            PolicyParser.parse_string("- a\n- b\n")

    def test_invalid_action(self):
        with pytest.raises(ValidationError):
            PolicyParser.parse_dict(
                {"name": "p", "rules": [{"id": "a", "judge_prompt": "A?", "on_fail": "explode"}]}
            )

    def test_parse_file(self, content_safety_path):
        policy = PolicyParser.parse_file(content_safety_path)

        assert policy.name == "content_safety"
        assert [r.on_fail for r in policy.rules] == [Action.BLOCK, Action.REDACT, Action.WARN]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PolicyParser.parse_file(tmp_path / "missing.yaml")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "policy.txt"
        path.write_text("name: x")
        with pytest.raises(ValueError, match="Unsupported file format"):
            PolicyParser.parse_file(path)

    @pytest.mark.parametrize("suffix", [".yaml", ".json"])
    def test_dump_and_reload(self, tmp_path, three_rule_policy, suffix):
        path = tmp_path / "nested" / f"policy{suffix}"
        PolicyParser.dump(three_rule_policy, path)

        assert PolicyParser.parse_file(path) == three_rule_policy

    def test_validate_file(self, tmp_path, content_safety_path):
        ok, message = PolicyParser.validate_file(content_safety_path)
        assert ok
        assert message == "Valid policy: content_safety v1.0 (3 rules)"

        bad = tmp_path / "bad.yaml"
        bad.write_text("rules: []\n")
        ok, message = PolicyParser.validate_file(bad)
        assert not ok

        ok, message = PolicyParser.validate_file(tmp_path / "missing.yaml")
        assert message.startswith("File not found")
