"""
Achievement Engine.

Derives newly unlocked milestones from a before/after pair of profile
snapshots. Definitions are immutable threshold predicates over monotonic
profile metrics, so an achievement can only ever be unlocked once.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from src.delivery.profile_store import UserProfile

METRICS = ("words_learned", "total_study_time_seconds", "mature_items")


@dataclass(frozen=True)
class Achievement:
    """A milestone reached when ``metric`` is at least ``threshold``."""

    achievement_id: str
    title: str
    metric: str
    threshold: int

    def __post_init__(self):
        if self.metric not in METRICS:
            raise ValueError(f"Unknown achievement metric: {self.metric}")

    def is_met(self, profile: UserProfile) -> bool:
        return getattr(profile, self.metric) >= self.threshold


DEFAULT_ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first_word", "First Word", "words_learned", 1),
    Achievement("words_10", "Ten Words", "words_learned", 10),
    Achievement("words_100", "Century", "words_learned", 100),
    Achievement("words_500", "Conversationalist", "words_learned", 500),
    Achievement("words_1000", "Wordsmith", "words_learned", 1000),
    Achievement("study_1h", "First Hour", "total_study_time_seconds", 60 * 60),
    Achievement("study_10h", "Dedicated", "total_study_time_seconds", 10 * 60 * 60),
    Achievement("study_50h", "Immersed", "total_study_time_seconds", 50 * 60 * 60),
    Achievement("mature_10", "Long-term Memory", "mature_items", 10),
)


class AchievementEngine:
    """
    Evaluates achievement thresholds against profile deltas.

    ``evaluate`` is pure and idempotent: it reports an achievement only when
    the threshold was crossed between ``before`` and ``after`` and neither
    snapshot already lists it as unlocked.
    """

    def __init__(self, achievements: Iterable[Achievement] | None = None):
        self.achievements = tuple(achievements or DEFAULT_ACHIEVEMENTS)
        ids = [a.achievement_id for a in self.achievements]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate achievement ids")

    def evaluate(self, before: UserProfile, after: UserProfile) -> frozenset[str]:
        already = before.unlocked_achievements | after.unlocked_achievements
        return frozenset(
            a.achievement_id
            for a in self.achievements
            if a.achievement_id not in already and a.is_met(after) and not a.is_met(before)
        )

    def get(self, achievement_id: str) -> Achievement | None:
        return next((a for a in self.achievements if a.achievement_id == achievement_id), None)
