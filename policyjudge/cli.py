"""
policyjudge CLI entry point.

Commands:
- pjudge evaluate: Evaluate content against a policy
- pjudge validate: Validate a policy file
- pjudge info: Show policy rules
- pjudge strategies: List aggregation strategies
- pjudge health: Check judge reachability
- pjudge version: Show version information
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Dict, Any

import click
import yaml

from policyjudge import __version__
from policyjudge.cli_ui import (
    config_panel,
    console,
    dim,
    error,
    key_value,
    make_table,
    spinner,
    styled,
    success,
    title,
    warning,
    yaml_preview,
)

# Exit codes for `evaluate`
EXIT_PASSED = 0
EXIT_ERROR = 1
EXIT_NOT_PASSED = 2


def setup_logging(debug: bool = False, quiet: bool = False) -> None:
    """Configure logging.

    ``quiet`` raises the level to WARNING for commands whose stdout is
    the result itself.
    """
    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _load_mock_responses(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Mock responses must map rule ids to responses: {path}")
    return data


def _build_orchestrator(
    config: Optional[Path],
    policy_path: Optional[Path],
    mock: bool,
    mock_responses: Optional[Path],
    sequential: bool = False,
):
    from policyjudge.config.settings import PolicyJudgeSettings
    from policyjudge.engine.orchestrator import PolicyOrchestrator
    from policyjudge.policy.parser import PolicyParser

    settings = PolicyJudgeSettings(_config_path=str(config) if config else None)
    if sequential:
        settings.settings.parallel_evaluation = False

    policy = PolicyParser.parse_file(policy_path) if policy_path else None
    responses = _load_mock_responses(mock_responses)

    return PolicyOrchestrator(
        settings=settings,
        policy=policy,
        mock_mode=mock or bool(responses),
        mock_responses=responses,
        config_path=str(config) if config else None,
    )


@click.group()
@click.version_option(version=__version__, prog_name="pjudge")
def main() -> None:
    """policyjudge - LLM-as-judge policy enforcement.

    Judge content against declarative rules and aggregate the verdicts.
    """
    pass


@main.command()
@click.argument("content", type=str)
@click.option(
    "--policy",
    "-p",
    "policy_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Policy file (default: the policy in policyjudge.yaml)",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to policyjudge.yaml config file",
)
@click.option("--mock", is_flag=True, help="Use the mock judge (every rule passes)")
@click.option(
    "--mock-responses",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML mapping rule ids to mock responses (implies --mock)",
)
@click.option("--sequential", is_flag=True, help="Evaluate rules one at a time")
@click.option(
    "--timeout",
    "-t",
    type=float,
    default=None,
    help="Deadline in seconds for the whole evaluation",
)
@click.option("--json", "as_json", is_flag=True, help="Print the verdict as JSON")
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def evaluate(
    content: str,
    policy_path: Optional[Path],
    config: Optional[Path],
    mock: bool,
    mock_responses: Optional[Path],
    sequential: bool,
    timeout: Optional[float],
    as_json: bool,
    debug: bool,
) -> None:
    """Evaluate CONTENT against a policy.

    Pass "-" as CONTENT to read it from stdin.

    Exit code is 0 when the content passes, 2 when it does not, and 1
    on errors.

    Examples:

        pjudge evaluate "Thanks for reaching out!" -p policy.yaml

        cat reply.txt | pjudge evaluate - -p policy.yaml --json
    """
    setup_logging(debug, quiet=True)

    if content == "-":
        content = sys.stdin.read()

    try:
        orchestrator = _build_orchestrator(
            config, policy_path, mock, mock_responses, sequential
        )
    except Exception as e:
        error(str(e), hint="Check the policy file and policyjudge.yaml")
        raise SystemExit(EXIT_ERROR)

    from policyjudge.tracing.otel_tracer import PolicyTracer

    tracer = PolicyTracer(orchestrator.settings.otel)
    tracer.attach(orchestrator.events)
    try:
        if as_json:
            verdict = asyncio.run(orchestrator.evaluate(content, timeout=timeout))
        else:
            with spinner("Evaluating..."):
                verdict = asyncio.run(orchestrator.evaluate(content, timeout=timeout))
    finally:
        tracer.shutdown()

    if as_json:
        click.echo(json.dumps(verdict.to_dict(), indent=2))
    else:
        _print_verdict(verdict)

    if verdict.is_error:
        raise SystemExit(EXIT_ERROR)
    if not verdict.passed:
        raise SystemExit(EXIT_NOT_PASSED)


def _print_verdict(verdict) -> None:
    items = {
        "Policy": verdict.policy_name
        + (f" v{verdict.policy_version}" if verdict.policy_version else ""),
        "Verdict": styled(verdict.final_verdict.value),
        "Passed": str(verdict.passed),
        "Latency": f"{verdict.total_latency_ms:.0f}ms",
    }
    if verdict.summary is not None:
        items["Strategy"] = verdict.summary.strategy
        items["Reason"] = verdict.summary.reason
    if verdict.error:
        items["Error"] = verdict.error
    config_panel("Policy Verdict", items)

    if verdict.rule_results:
        rows = [
            [
                r.rule_id,
                styled(r.verdict.value),
                f"{r.confidence:.2f}",
                r.action.value if r.action else "-",
                r.reasoning,
            ]
            for r in verdict.rule_results
        ]
        make_table("Rules", ["Rule", "Verdict", "Conf.", "On fail", "Reasoning"], rows)
    console.print()


@main.command()
@click.argument(
    "policy_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def validate(policy_path: Path) -> None:
    """Validate a policy file.

    Reports structural errors and warnings without calling the judge.

    Example:
        pjudge validate policy.yaml
    """
    from policyjudge.engine.validation import validate_policy

    try:
        text = policy_path.read_text(encoding="utf-8")
        data = json.loads(text) if policy_path.suffix == ".json" else yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        error(f"Could not read {policy_path}: {e}")
        raise SystemExit(1)

    if isinstance(data, dict) and "policy" in data and "name" not in data:
        data = data["policy"]
    if not isinstance(data, dict):
        error("Policy definition must be a mapping")
        raise SystemExit(1)

    result = validate_policy(data)
    for w in result.warnings:
        warning(w)

    if not result.valid:
        error(f"Invalid policy: {policy_path}")
        for err in result.errors:
            console.print(f"    [dim]{err}[/]")
        raise SystemExit(1)

    config_panel(
        "✓ Valid Policy",
        {
            "Name": str(data.get("name")),
            "Version": str(data.get("version", "-")),
            "Strategy": str(data.get("evaluation_strategy", "all")),
            "Rules": str(len(data.get("rules") or [])),
        },
    )


@main.command()
@click.argument(
    "policy_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--verbose", "-v", is_flag=True, help="Show judge prompts")
def info(policy_path: Path, verbose: bool) -> None:
    """Show policy rules and aggregation settings.

    Example:
        pjudge info policy.yaml --verbose
    """
    from policyjudge.policy.models import DEFAULT_THRESHOLD
    from policyjudge.policy.parser import PolicyParser

    try:
        policy = PolicyParser.parse_file(policy_path)
    except Exception as e:
        error(str(e))
        raise SystemExit(1)

    title(policy.name, policy.version)
    key_value("Strategy", policy.evaluation_strategy)
    key_value("Default action", policy.default_action.value)
    if policy.evaluation_strategy == "weighted_threshold":
        threshold = DEFAULT_THRESHOLD if policy.threshold is None else policy.threshold
        key_value("Threshold", f"{threshold}")

    rows = []
    for rule in policy.rules:
        row = [rule.id, rule.on_fail.value, f"{rule.weight}", rule.description or "-"]
        if verbose:
            row.append(rule.judge_prompt)
        rows.append(row)
    columns = ["Rule", "On fail", "Weight", "Description"]
    if verbose:
        columns.append("Judge prompt")
    make_table("Rules", columns, rows)

    if verbose:
        yaml_preview(
            yaml.safe_dump(policy.to_dict(), sort_keys=False, allow_unicode=True),
            title=str(policy_path),
        )
    console.print()


@main.command()
def strategies() -> None:
    """List available aggregation strategies."""
    from policyjudge.aggregation.strategies import STRATEGIES

    rows = []
    for member, strategy_class in STRATEGIES.items():
        doc = (strategy_class.__doc__ or "").strip().splitlines()
        rows.append([member.value, doc[0] if doc else ""])
    make_table("Strategies", ["Name", "Description"], rows)
    console.print()


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to policyjudge.yaml config file",
)
@click.option("--mock", is_flag=True, help="Check the mock judge instead of the live one")
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def health(config: Optional[Path], mock: bool, debug: bool) -> None:
    """Check that the judge is reachable."""
    setup_logging(debug, quiet=True)

    try:
        orchestrator = _build_orchestrator(config, None, mock, None)
        with spinner("Checking judge..."):
            report = asyncio.run(orchestrator.health_check())
    except Exception as e:
        error(str(e))
        raise SystemExit(1)

    judge = report["judge"]
    items = {
        "Mode": judge["mode"],
        "Circuit": judge["circuit_state"],
        "Policy": report["engine"]["policy_name"],
        "Rules": str(report["engine"]["rules_count"]),
    }
    if judge.get("model"):
        items["Model"] = judge["model"]
    config_panel("Judge Health", items)

    if report["healthy"]:
        success("Judge is healthy")
    else:
        error("Judge is unhealthy", hint=judge.get("error"))
        raise SystemExit(1)


@main.command()
def version() -> None:
    """Show version information."""
    title("policyjudge", __version__)
    dim("LLM-as-judge policy enforcement")


if __name__ == "__main__":
    main()
