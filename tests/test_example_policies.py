"""Smoke tests for the bundled example policies and scripts."""

import asyncio
import importlib.util

import pytest
import yaml

from policyjudge.config.settings import PolicyJudgeSettings
from policyjudge.engine.orchestrator import PolicyOrchestrator
from policyjudge.engine.validation import validate_policy
from policyjudge.policy.models import FinalVerdict
from policyjudge.policy.parser import PolicyParser

POLICY_FILES = ["content_safety/policy.yaml", "content_safety/weighted_policy.yaml"]


@pytest.mark.parametrize("relative_path", POLICY_FILES)
def test_example_policy_is_valid(examples_dir, relative_path):
    path = examples_dir / relative_path
    data = yaml.safe_load(path.read_text())

    result = validate_policy(data)
    assert result.valid, result.errors
    assert result.warnings == []
    assert PolicyParser.parse_file(path).name == data["name"]


def test_mock_responses_cover_policy_rules(examples_dir):
    policy = PolicyParser.parse_file(examples_dir / "content_safety" / "policy.yaml")
    responses = yaml.safe_load((examples_dir / "content_safety" / "mock_responses.yaml").read_text())

    assert set(responses) <= set(policy.rule_ids)


def test_example_config_loads(examples_dir, monkeypatch):
    monkeypatch.chdir(examples_dir.parent)
    settings = PolicyJudgeSettings(
        _config_path=str(examples_dir / "content_safety" / "policyjudge.yaml")
    )

    assert settings.judge.timeout_ms == 20000
    assert settings.settings.evaluation_timeout_seconds == 45
    assert settings.load_policy().name == "content_safety"


@pytest.mark.asyncio
async def test_weighted_example_with_one_failure(examples_dir, tmp_path):
    policy = PolicyParser.parse_file(examples_dir / "content_safety" / "weighted_policy.yaml")
    orchestrator = PolicyOrchestrator(
        settings=PolicyJudgeSettings(_config_path=str(tmp_path / "absent.yaml")),
        policy=policy,
        mock_mode=True,
        mock_responses={"cites_sources": {"verdict": "FAIL", "confidence": 0.8}},
    )

    verdict = await orchestrator.evaluate("The moon is made of rock.")

    # 1.5 / 2.3 passes the 0.6 threshold
    assert verdict.final_verdict == FinalVerdict.ALLOW
    assert verdict.summary.score == 0.652


def test_quickstart_runs_offline(examples_dir, tmp_path, monkeypatch, capsys):
    for var in ("OPENAI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY", "ANTHROPIC_API_KEY", "PJUDGE_CONFIG"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)

    path = examples_dir / "quickstart" / "quickstart.py"
    spec = importlib.util.spec_from_file_location("quickstart", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    asyncio.run(module.main())

    out = capsys.readouterr().out
    assert "Judging with mock judge" in out
    assert "Verdict: REDACT (passed=False)" in out
    assert "Recorded as eval_" in out
