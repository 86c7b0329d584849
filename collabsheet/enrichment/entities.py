"""
Core records shared by both engines: entities, pairs, analysis results,
processing states and the score tiers that drive cell styling.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional


# Background used for any failed unit of work on the matrix and company sheets
ERROR_BACKGROUND = "#ffcdd2"


def clamp_score(value: int) -> int:
    """Clamp a probability score into [0, 100]."""
    return max(0, min(100, int(value)))


def score_from_number(value) -> int:
    """Round a model-supplied number to a clamped score.

    Infinities clamp to the nearest bound; NaN and non-numbers raise ValueError.
    """
    number = float(value)
    if math.isnan(number):
        raise ValueError("score is not a number")
    if math.isinf(number):
        return 100 if number > 0 else 0
    return clamp_score(round(number))


@dataclass
class Entity:
    """A named row subject (company, contact or profile).

    ``fields`` keeps the sheet's column order; values are always strings.
    """
    key: str
    fields: Dict[str, str] = field(default_factory=dict)
    row: Optional[int] = None

    def get(self, name: str, default: str = "") -> str:
        value = self.fields.get(name)
        return value if value else default

    def missing(self, required: Iterable[str]) -> List[str]:
        """Names from ``required`` that are blank on this entity."""
        return [name for name in required if not str(self.fields.get(name) or "").strip()]


@dataclass(frozen=True)
class PairKey:
    """Unordered pair of entity keys. ``PairKey.of('B', 'A') == PairKey.of('A', 'B')``."""
    first: str
    second: str

    @classmethod
    def of(cls, a: str, b: str) -> "PairKey":
        if a == b:
            raise ValueError(f"A pair needs two distinct entities, got {a!r} twice")
        low, high = sorted((a, b))
        return cls(low, high)

    def __str__(self) -> str:
        return f"{self.first} & {self.second}"


@dataclass
class AnalysisResult:
    """Outcome of one pair analysis: narrative text, a score, or both."""
    text: Optional[str] = None
    score: Optional[int] = None
    reasoning: str = ""

    def __post_init__(self):
        if self.score is not None:
            self.score = clamp_score(self.score)

    @property
    def is_scored(self) -> bool:
        return self.score is not None

    @property
    def tier(self) -> Optional["Tier"]:
        return Tier.from_score(self.score) if self.is_scored else None

    def note(self) -> str:
        """Cell annotation for a scored result."""
        return f"Probability Score: {self.score}%\n\nReasoning: {self.reasoning}"


class ProcessingState(str, enum.Enum):
    EMPTY = "empty"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"


class Tier(str, enum.Enum):
    FAVORABLE = "favorable"
    NEUTRAL = "neutral"
    UNFAVORABLE = "unfavorable"

    @classmethod
    def from_score(cls, score: int) -> "Tier":
        if score >= 70:
            return cls.FAVORABLE
        if score >= 40:
            return cls.NEUTRAL
        return cls.UNFAVORABLE

    @property
    def background(self) -> str:
        return TIER_BACKGROUNDS[self]


TIER_BACKGROUNDS = {
    Tier.FAVORABLE: "#b7e1cd",
    Tier.NEUTRAL: "#fff2cc",
    Tier.UNFAVORABLE: "#f4c7c3",
}


@dataclass
class CellStyle:
    """Display style of a single cell. ``None`` means unset."""
    background: Optional[str] = None
    note: Optional[str] = None
