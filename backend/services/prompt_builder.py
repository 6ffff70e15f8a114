"""
Prompt template and reply parsing for the bias/sentiment relay.
"""

import json
import math
from typing import Any

from models.models import AnalyzeResponse

PROMPT_HEADER = [
    "You are a concise medical scribe and fairness reviewer.",
    "Summarize the visit in 2–3 sentences, then rate potential provider bias (0–10).",
    'Return ONLY JSON: {"score": number, "review": string}.',
]


def format_rating(value: Any) -> str:
    """Render a user rating for the prompt; empty values become ``-``."""
    if value is None or value == "":
        return "-"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_prompt(
    transcript: str,
    cause: str | None = "",
    doctor_name: str | None = "",
    user_rating: Any = "",
) -> str:
    """
    Build the single user message sent to the model.

    The transcript is trimmed; missing metadata is rendered with fixed
    placeholders so the template never changes shape.
    """
    lines = [
        *PROMPT_HEADER,
        "",
        f"Doctor: {doctor_name or 'Unknown'}",
        f"Visit title/reason: {cause or '(none)'}",
        f"User rating (0–10): {format_rating(user_rating)}",
        "",
        "--- Transcript ---",
        transcript.strip(),
    ]
    return "\n".join(lines)


def _as_score(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def parse_analysis(text: str) -> AnalyzeResponse:
    """
    Parse the model's reply into a score and review.

    Anything that is not a JSON object falls back to ``score=None`` with the
    raw text as the review. A non-numeric ``score`` becomes None.
    """
    try:
        parsed = json.loads(text)
    except (ValueError, TypeError):
        return AnalyzeResponse(score=None, review=text or "")

    if not isinstance(parsed, dict):
        return AnalyzeResponse(score=None, review=text)

    review = parsed.get("review")
    return AnalyzeResponse(
        score=_as_score(parsed.get("score")),
        review="" if review is None else str(review),
    )


def first_text_block(data: Any) -> str:
    """Return the text of the first content block of a Messages API reply."""
    if not isinstance(data, dict):
        return ""
    content = data.get("content")
    if not isinstance(content, list) or not content:
        return ""
    block = content[0]
    if not isinstance(block, dict):
        return ""
    text = block.get("text")
    return text if isinstance(text, str) else ""
