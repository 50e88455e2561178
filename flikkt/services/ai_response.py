"""
AI Response handling - parse model output and build normalized results.

Every path out of this module yields an AnalysisResult; the canned results
(fallback, no medications, demo) never carry an Identified tag.
"""

import json
import math
import re
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from flikkt.exceptions import AIResponseError
from flikkt.models.api import InteractionLevel
from flikkt.models.domain import (
    UNAVAILABLE_PRODUCT_NAME,
    AnalysisResult,
    Identified,
    Unidentified,
    UnidentifiedReason,
    identify,
)
from flikkt.services.prompts import ALTERNATIVES_THRESHOLD

DEFAULT_IDENTIFIED_SCORE = 75
NO_MEDICATIONS_SCORE = 85
GENERIC_ALTERNATIVE = "Ask your pharmacist for a safer alternative that fits your medications"

_OPENING_FENCE = re.compile(r"^```[A-Za-z]*\s*")


def strip_code_fence(content: str) -> str:
    """Remove a ```json ... ``` (or bare ```) wrapper if present."""
    stripped = content.strip()
    if not stripped.startswith("```"):
        return stripped
    body = _OPENING_FENCE.sub("", stripped, count=1)
    if body.rstrip().endswith("```"):
        body = body.rstrip()[:-3]
    return body.strip()


def parse_ai_response(content: str) -> dict[str, Any]:
    """
    Decode model output into a JSON object.

    Raises:
        AIResponseError: Not JSON, not an object, or missing required fields
    """
    body = strip_code_fence(content)
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        raise AIResponseError("Response is not valid JSON", body[:200]) from exc

    if not isinstance(parsed, dict):
        raise AIResponseError("Response is not a JSON object", body[:200])

    if not parsed.get("productName") or not parsed.get("interactionLevel"):
        raise AIResponseError("Missing required fields in AI response", body[:200])

    return parsed


def _as_list(value: Any) -> list[str]:
    """Lists pass through, a bare value becomes a single-element list, empties become []."""
    if isinstance(value, list):
        return [str(item) for item in value if item]
    if value:
        return [str(value)]
    return []


def _as_score(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return max(0, min(100, round(value)))


def _as_level(value: Any) -> InteractionLevel:
    try:
        return InteractionLevel(str(value).strip().lower())
    except ValueError as exc:
        raise AIResponseError(f"Unknown interactionLevel: {value!r}") from exc


def normalize_analysis(
    raw: dict[str, Any], user_medications: Sequence[str], timestamp: datetime
) -> AnalysisResult:
    """
    Turn parsed model JSON into an AnalysisResult.

    - pros/cons/alternatives are always lists
    - identified products without a numeric score get DEFAULT_IDENTIFIED_SCORE
    - unidentified products never carry a score
    - identified products scored below the threshold always list an alternative
    """
    product_name = str(raw["productName"]).strip()
    identification = identify(product_name)
    level = _as_level(raw["interactionLevel"])
    alternatives = _as_list(raw.get("alternatives"))

    if isinstance(identification, Identified):
        score = _as_score(raw.get("compatibilityScore"))
        if score is None:
            score = DEFAULT_IDENTIFIED_SCORE
        if score < ALTERNATIVES_THRESHOLD and not alternatives:
            alternatives = [GENERIC_ALTERNATIVE]
    else:
        score = None

    return AnalysisResult(
        product_name=product_name,
        compatibility_score=score,
        interaction_level=level,
        identification=identification,
        timestamp=timestamp,
        pros=_as_list(raw.get("pros")),
        cons=_as_list(raw.get("cons")),
        alternatives=alternatives,
        user_medications=list(user_medications),
    )


def fallback_result(
    product_name: str | None, user_medications: Sequence[str], timestamp: datetime
) -> AnalysisResult:
    """Result returned when the model call or its output failed."""
    return AnalysisResult(
        product_name=product_name or UNAVAILABLE_PRODUCT_NAME,
        compatibility_score=None,
        interaction_level=InteractionLevel.NEUTRAL,
        identification=Unidentified(UnidentifiedReason.ANALYSIS_UNAVAILABLE),
        timestamp=timestamp,
        pros=[],
        cons=[
            "Analysis temporarily unavailable - please try again later",
            "Consult with a pharmacist about food-drug interactions",
        ],
        alternatives=[],
        user_medications=list(user_medications),
        note="Analysis temporarily unavailable due to service error",
    )


def no_medications_result(product_name: str | None, timestamp: datetime) -> AnalysisResult:
    """Neutral result for users without a medication profile."""
    return AnalysisResult(
        product_name=product_name or "Product from image",
        compatibility_score=NO_MEDICATIONS_SCORE,
        interaction_level=InteractionLevel.NEUTRAL,
        identification=Unidentified(UnidentifiedReason.NOT_ANALYZED),
        timestamp=timestamp,
        pros=["No current medications to check interactions with"],
        cons=["Add your medications to get personalized food-medication interaction analysis"],
        alternatives=[],
        user_medications=[],
        note="No medications to analyze interactions with",
    )


def demo_result(
    product_name: str | None, user_medications: Sequence[str], timestamp: datetime
) -> AnalysisResult:
    """Placeholder result served when no LLM key is configured."""
    return AnalysisResult(
        product_name=product_name or "Demo Product",
        compatibility_score=DEFAULT_IDENTIFIED_SCORE,
        interaction_level=InteractionLevel.NEUTRAL,
        identification=Unidentified(UnidentifiedReason.NOT_ANALYZED),
        timestamp=timestamp,
        pros=["Demo analysis - configure OpenAI API key for detailed results"],
        cons=[
            f"Limited analysis available for your {len(user_medications)} "
            "medication(s) without API access"
        ],
        alternatives=[],
        user_medications=list(user_medications),
        note="Demo response - configure OpenAI API key for real analysis",
    )
