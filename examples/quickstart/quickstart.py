"""
policyjudge - Quickstart

Judges one reply against the content_safety policy.

Without an API key the example runs the mock judge with canned replies,
so it works offline. With a key for any provider it calls the real judge:
    export OPENAI_API_KEY=...      -> uses gpt-4o-mini
    export GEMINI_API_KEY=...      -> uses gemini/gemini-2.5-flash
    export ANTHROPIC_API_KEY=...   -> uses anthropic/claude-sonnet-4-5

Run:
  python examples/quickstart/quickstart.py
"""

import asyncio
import os
from pathlib import Path

from policyjudge import EventType, PolicyOrchestrator, PolicyParser
from policyjudge.config import PolicyJudgeSettings

HERE = Path(__file__).resolve().parent
POLICY = HERE.parent / "content_safety" / "policy.yaml"

REPLY = "Thanks for getting in touch! You can reach our team at help@example.com."


def has_api_key() -> bool:
    return any(
        os.getenv(var)
        for var in ("OPENAI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY", "ANTHROPIC_API_KEY")
    )


async def main() -> None:
    policy = PolicyParser.parse_file(POLICY)
    orchestrator = PolicyOrchestrator(
        settings=PolicyJudgeSettings(),
        policy=policy,
        mock_mode=not has_api_key(),
        mock_responses={
            "no_pii": {"verdict": "FAIL", "confidence": 0.92, "reasoning": "Contains an email."},
        },
    )

    orchestrator.events.subscribe(
        lambda event: print(f"  [{event.type.value}] {event.payload.get('rule_id', '')}"),
        types={EventType.JUDGE_EVALUATION_COMPLETE, EventType.JUDGE_EVALUATION_ERROR},
    )

    print(f"Judging with {orchestrator.judge.mode} judge...")
    verdict = await orchestrator.evaluate_and_record(REPLY)

    print(f"\nVerdict: {verdict.final_verdict.value} (passed={verdict.passed})")
    print(f"Reason:  {verdict.summary.reason if verdict.summary else verdict.error}")
    for result in verdict.rule_results:
        print(f"  {result.rule_id:<18} {result.verdict.value:<9} {result.reasoning}")
    print(f"\nRecorded as {verdict.evaluation_id}")


if __name__ == "__main__":
    asyncio.run(main())
