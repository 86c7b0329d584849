"""
Pydantic output schemas for LLM JSON payloads.

Each model declares the fields a call site requires; a payload that is
missing one (or leaves it blank) fails validation and is reported as an
ExtractionError by the response extractor.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from collabsheet.enrichment.entities import score_from_number


class _LenientModel(BaseModel):
    """Ignore extra keys, coerce numbers to strings for text fields."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _require_text(v):
    if v is None:
        raise ValueError("field is required")
    if isinstance(v, (list, tuple)):
        v = ", ".join(str(item) for item in v)
    text = str(v).strip()
    if not text:
        raise ValueError("field must not be blank")
    return text


# ────────────────────────────────────────────────────────────────
# Company profile (company list population)
# ────────────────────────────────────────────────────────────────

class CompanyProfile(_LenientModel):
    """Four profile fields researched for one company."""
    business_overview: str = Field(alias="businessOverview")
    target_audience: str = Field(alias="targetAudience")
    products: str
    pricing: str

    @field_validator("business_overview", "target_audience", "products", "pricing", mode="before")
    @classmethod
    def require_text(cls, v):
        return _require_text(v)


# ────────────────────────────────────────────────────────────────
# LinkedIn profile outreach (profile batch)
# ────────────────────────────────────────────────────────────────

class ProfileOutreach(_LenientModel):
    """Profile summary plus a personalized outreach email."""
    title: str
    about_profile: str = Field(alias="aboutProfile")
    email_subject: str = Field(alias="emailSubject")
    email_content: str = Field(alias="emailContent")

    @field_validator("title", "about_profile", "email_subject", "email_content", mode="before")
    @classmethod
    def require_text(cls, v):
        return _require_text(v)


class DiscoveredProfile(_LenientModel):
    """A candidate profile returned by the discovery prompt."""
    name: str
    linkedin: str

    @field_validator("name", "linkedin", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _require_text(v)


# ────────────────────────────────────────────────────────────────
# Collaboration probability
# ────────────────────────────────────────────────────────────────

class ProbabilityAssessment(_LenientModel):
    """Score (clamped to 0-100) and one-line reasoning."""
    score: int
    reasoning: str

    @field_validator("score", mode="before")
    @classmethod
    def clamp(cls, v):
        if isinstance(v, bool):
            raise ValueError("score must be numeric")
        try:
            return score_from_number(v)
        except (TypeError, ValueError):
            raise ValueError(f"score must be numeric, got {v!r}")

    @field_validator("reasoning", mode="before")
    @classmethod
    def require_reasoning(cls, v):
        return _require_text(v)
