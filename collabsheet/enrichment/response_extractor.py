"""
Pull structured fields out of free-text model output.

Two conventions are supported: a JSON object (clean, fenced in markdown,
or buried in prose) and ``Score:`` / ``Reasoning:`` labeled lines.
"""

import json
import logging
import re
from typing import Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from collabsheet.enrichment.entities import AnalysisResult, score_from_number
from collabsheet.enrichment.exceptions import ExtractionError
from collabsheet.enrichment.schemas import DiscoveredProfile, ProbabilityAssessment

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
BRACE_SPAN_RE = re.compile(r"\{[\s\S]*\}")
SCORE_RE = re.compile(r"Score:\s*\**\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE)
REASONING_RE = re.compile(r"Reasoning:\s*\**\s*([^\n]+)", re.IGNORECASE)
PROFILES_BLOCK_RE = re.compile(r"PROFILES_START([\s\S]*?)PROFILES_END")
PROFILE_NAME_RE = re.compile(r"name:\s*([^\n]+)", re.IGNORECASE)
PROFILE_LINK_RE = re.compile(r"linkedin:\s*([^\n]+)", re.IGNORECASE)


def _loads_object(candidate: str) -> Optional[Dict]:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def extract_json(text: str, required_fields: Optional[Iterable[str]] = None) -> Dict:
    """
    Parse a JSON object out of model text.

    Tries, in order: the whole text, the first markdown fence, and the
    span from the first ``{`` to the last ``}``.

    Raises:
        ExtractionError: no object found, or a required field is blank.
    """
    if not text or not text.strip():
        raise ExtractionError("Empty response")

    stripped = text.strip()
    data = _loads_object(stripped)

    if data is None:
        fence = FENCE_RE.search(stripped)
        if fence:
            data = _loads_object(fence.group(1).strip())

    if data is None:
        match = BRACE_SPAN_RE.search(stripped)
        if match:
            data = _loads_object(match.group(0))
            if data is not None:
                logger.debug("Recovered JSON object from surrounding prose")

    if data is None:
        raise ExtractionError(f"No JSON object found in response: {stripped[:120]!r}")

    if required_fields:
        missing = [f for f in required_fields if not str(data.get(f) or "").strip()]
        if missing:
            raise ExtractionError(f"Missing required fields: {', '.join(missing)}")

    return data


def extract_model(text: str, model_cls: Type[ModelT]) -> ModelT:
    """Parse a JSON object and validate it against ``model_cls``."""
    data = extract_json(text)
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ExtractionError(f"Missing required fields: {', '.join(fields)}") from e


def extract_score_and_reasoning(text: str) -> AnalysisResult:
    """
    Read ``Score: N`` and ``Reasoning: ...`` lines.

    The score is clamped to [0, 100]; a missing label is an error.
    """
    text = text or ""
    score_match = SCORE_RE.search(text)
    reasoning_match = REASONING_RE.search(text)
    if not score_match or not reasoning_match:
        raise ExtractionError("Could not extract score or reasoning from response")

    score = score_from_number(score_match.group(1))
    reasoning = reasoning_match.group(1).strip().strip("*").strip()
    return AnalysisResult(score=score, reasoning=reasoning)


def extract_probability(text: str) -> AnalysisResult:
    """Labeled lines first, then a ``{"score", "reasoning"}`` JSON object."""
    try:
        return extract_score_and_reasoning(text)
    except ExtractionError as labeled_error:
        try:
            assessment = extract_model(text, ProbabilityAssessment)
        except ExtractionError:
            raise labeled_error
        return AnalysisResult(score=assessment.score, reasoning=assessment.reasoning)


def extract_profiles(text: str) -> List[DiscoveredProfile]:
    """Parse a ``PROFILES_START ... PROFILES_END`` block of name/linkedin entries."""
    block = PROFILES_BLOCK_RE.search(text or "")
    if not block:
        return []

    profiles = []
    for entry in re.split(r"(?=name:)", block.group(1), flags=re.IGNORECASE):
        name_match = PROFILE_NAME_RE.search(entry)
        link_match = PROFILE_LINK_RE.search(entry)
        if not name_match or not link_match:
            continue
        try:
            profiles.append(DiscoveredProfile(
                name=name_match.group(1).strip(),
                linkedin=link_match.group(1).strip(),
            ))
        except PydanticValidationError:
            continue
    return profiles
