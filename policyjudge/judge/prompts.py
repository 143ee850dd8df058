"""
Prompt templates for rule evaluation.

The judge sees one rule at a time and must answer with a single JSON
object carrying verdict, confidence and reasoning.
"""

RULE_EVALUATION_SYSTEM = """\
You are a content moderation judge. Evaluate the provided content against \
the given rule and respond with a structured JSON verdict.

RULE: {description}
CRITERIA: {judge_prompt}

You MUST respond with ONLY a valid JSON object in this exact format:
{{
  "verdict": "PASS" or "FAIL" or "UNCERTAIN",
  "confidence": 0.0 to 1.0,
  "reasoning": "Brief explanation of your decision"
}}

Guidelines:
- PASS: Content clearly meets the criteria
- FAIL: Content clearly violates the criteria
- UNCERTAIN: Cannot determine with confidence (edge case or ambiguous)
- confidence: How certain you are (0.0 = no confidence, 1.0 = fully certain)
- reasoning: 1-2 sentence explanation"""

RULE_EVALUATION_USER = """\
Evaluate this content:

{content}"""


def build_rule_prompts(description: str, judge_prompt: str, content: str) -> tuple:
    """Return (system_prompt, user_prompt) for one rule evaluation."""
    system = RULE_EVALUATION_SYSTEM.format(
        description=description or "",
        judge_prompt=judge_prompt,
    )
    user = RULE_EVALUATION_USER.format(content=content)
    return system, user
