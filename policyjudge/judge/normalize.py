"""
Normalization of raw judge replies into JudgeResult values.

Handles common reply shapes:
- Plain JSON object
- JSON wrapped in ```json ... ``` or ``` ... ``` fences
- Free text mentioning PASS or FAIL (fallback)
"""

import json
import logging
import re
from typing import Any, Optional

from policyjudge.policy.models import Verdict
from policyjudge.judge.models import JudgeResult

logger = logging.getLogger(__name__)

PASS_SYNONYMS = frozenset({"PASS", "PASSED", "OK", "CLEAN", "SAFE"})
FAIL_SYNONYMS = frozenset({"FAIL", "FAILED", "VIOLATION", "UNSAFE", "BLOCKED"})

DEFAULT_CONFIDENCE = 0.5
MAX_FALLBACK_REASONING = 200


def normalize_verdict(verdict: Any) -> Verdict:
    """Map a verdict token (or synonym) onto PASS/FAIL/UNCERTAIN."""
    if verdict is None:
        return Verdict.UNCERTAIN
    if isinstance(verdict, Verdict):
        return verdict

    token = str(verdict).strip().upper()
    if token in PASS_SYNONYMS:
        return Verdict.PASS
    if token in FAIL_SYNONYMS:
        return Verdict.FAIL
    return Verdict.UNCERTAIN


def normalize_confidence(confidence: Any) -> float:
    """Coerce a confidence value into [0, 1].

    Values above 1 are read as a 0-100 percentage. Missing or
    unparsable values default to 0.5.
    """
    if confidence is None or isinstance(confidence, bool):
        return DEFAULT_CONFIDENCE
    try:
        value = float(str(confidence).strip().rstrip("%"))
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if value != value:  # NaN
        return DEFAULT_CONFIDENCE

    if value > 1:
        value = value / 100
    return max(0.0, min(1.0, value))


def extract_verdict_from_text(text: str) -> JudgeResult:
    """Best-effort verdict from a reply that is not structured JSON."""
    upper = text.upper()
    if "PASS" in upper:
        verdict = Verdict.PASS
    elif "FAIL" in upper:
        verdict = Verdict.FAIL
    else:
        verdict = Verdict.UNCERTAIN

    return JudgeResult(
        verdict=verdict,
        confidence=DEFAULT_CONFIDENCE,
        reasoning=text[:MAX_FALLBACK_REASONING],
    )


def _strip_fences(content: str) -> str:
    content = content.strip()
    if content.startswith("```"):
        content = re.sub(r"^```(?:json)?\s*", "", content)
        content = re.sub(r"\s*```$", "", content)
        content = content.strip()
    return content


def _load_object(content: str) -> Optional[dict]:
    try:
        parsed = json.loads(_strip_fences(content))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_judge_response(content: str) -> JudgeResult:
    """Turn a raw provider reply into a JudgeResult (latency unset)."""
    parsed = _load_object(content)
    if parsed is None:
        logger.warning(f"Judge reply is not a JSON object, scanning text: {content[:200]!r}")
        return extract_verdict_from_text(content)

    reasoning = parsed.get("reasoning") or "No reasoning provided"
    return JudgeResult(
        verdict=normalize_verdict(parsed.get("verdict")),
        confidence=normalize_confidence(parsed.get("confidence")),
        reasoning=str(reasoning),
    )
