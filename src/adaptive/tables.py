"""
Static lookup tables for session planning.

Loaded once at import and immutable afterwards. Keys are enums so a typo
fails loudly instead of silently falling back to a default.

Tables:
- TIME_OF_DAY: circadian retention profile per part of day
- COGNITIVE_LOAD_CAPS: item budgets per cognitive-load bucket
- AGE_FACTORS: neuroplasticity per age group (paces new items)
- DIFFICULTY_PEAKS: top of the difficulty curve per cognitive-load bucket
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType


class TimeOfDay(str, Enum):
    """Part of the learner's local day."""

    MORNING = "morning"  # [5, 12)
    AFTERNOON = "afternoon"  # [12, 18)
    EVENING = "evening"  # everything else


class Level(str, Enum):
    """Shared low/medium/high bucket for brain-state scores."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class RetentionProfile:
    """
    Circadian retention entry.

    Attributes:
        retention: Expected retention for material learned in this window
        new_item_weight: Multiplier applied to the new-item cap
        review_emphasis: Weight of reviews in the plan content mix
        best_for: What this window is best used for
    """

    retention: float
    new_item_weight: float
    review_emphasis: float
    best_for: tuple[str, ...]


@dataclass(frozen=True)
class LoadBudget:
    """Maximum items per session for a cognitive-load bucket."""

    new_items: int
    review_items: int


TIME_OF_DAY = MappingProxyType({
    TimeOfDay.MORNING: RetentionProfile(
        retention=0.90,
        new_item_weight=1.0,
        review_emphasis=0.8,
        best_for=("new_concepts", "complex_grammar"),
    ),
    TimeOfDay.AFTERNOON: RetentionProfile(
        retention=0.75,
        new_item_weight=0.8,
        review_emphasis=0.9,
        best_for=("practice", "conversation"),
    ),
    TimeOfDay.EVENING: RetentionProfile(
        retention=0.85,
        new_item_weight=0.6,
        review_emphasis=1.0,
        best_for=("review", "consolidation"),
    ),
})

COGNITIVE_LOAD_CAPS = MappingProxyType({
    Level.LOW: LoadBudget(new_items=15, review_items=50),
    Level.MEDIUM: LoadBudget(new_items=10, review_items=30),
    Level.HIGH: LoadBudget(new_items=5, review_items=20),
})


def time_of_day_for(local_hour: int) -> TimeOfDay:
    """Map a 0-23 local hour onto its retention bucket."""
    hour = int(local_hour) % 24
    if 5 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 18:
        return TimeOfDay.AFTERNOON
    return TimeOfDay.EVENING


class AgeGroup(str, Enum):
    CHILD = "child"
    ADOLESCENT = "adolescent"
    ADULT = "adult"
    SENIOR = "senior"


@dataclass(frozen=True)
class AgeFactor:
    """
    Neuroplasticity entry for an age group.

    Attributes:
        plasticity: Relative ease of forming new memories (adult = 0.70)
        optimal_methods: Teaching methods that suit the group
    """

    plasticity: float
    optimal_methods: tuple[str, ...]


AGE_FACTORS = MappingProxyType({
    AgeGroup.CHILD: AgeFactor(0.95, ("immersion", "play_based")),
    AgeGroup.ADOLESCENT: AgeFactor(0.85, ("social_interaction", "music")),
    AgeGroup.ADULT: AgeFactor(0.70, ("analytical", "spaced_repetition")),
    AgeGroup.SENIOR: AgeFactor(0.60, ("slower_pace", "visual_aids")),
})

# New-item pacing is scaled by ADULT plasticity / group plasticity
REFERENCE_PLASTICITY = AGE_FACTORS[AgeGroup.ADULT].plasticity

# Highest target difficulty (0-1) of a plan, by cognitive-load bucket
DIFFICULTY_PEAKS = MappingProxyType({
    Level.LOW: 1.0,
    Level.MEDIUM: 0.8,
    Level.HIGH: 0.6,
})


def age_factor_for(age_group: str | None) -> AgeFactor:
    """Unknown or missing age groups plan like adults."""
    try:
        return AGE_FACTORS[AgeGroup(age_group)]
    except ValueError:
        return AGE_FACTORS[AgeGroup.ADULT]
