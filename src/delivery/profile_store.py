"""
In-memory Profile Store.

Owns per-learner aggregate state:
- SM-2 memory items keyed by content id
- Study time (total and per ISO week)
- Words learned and proficiency level
- Unlocked achievements

Single-writer discipline: every mutation of a learner's profile happens
while holding that learner's ``asyncio.Lock``. Readers take a deep
snapshot, so a plan built concurrently with a review sees either the
state before or after it, never a partial update.

Storage is out of scope; ``export_items``/``import_items`` expose the
persisted MemoryItem layout for an external repository.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from loguru import logger

from src.core.exceptions import NotFound
from src.delivery.scheduler import MemoryItem, MemoryItemScheduler, validate_performance

# =============================================================================
# Proficiency
# =============================================================================

# (level, words learned needed to enter it), ascending
PROFICIENCY_LEVELS: tuple[tuple[str, int], ...] = (
    ("beginner", 0),
    ("elementary", 100),
    ("intermediate", 500),
    ("upper_intermediate", 1500),
    ("advanced", 3000),
)


def proficiency_for(words_learned: int) -> str:
    level = PROFICIENCY_LEVELS[0][0]
    for name, threshold in PROFICIENCY_LEVELS:
        if words_learned >= threshold:
            level = name
    return level


def progress_percentage(words_learned: int) -> float:
    """Progress through the current proficiency band, 0-100."""
    for (_, low), (_, high) in zip(PROFICIENCY_LEVELS, PROFICIENCY_LEVELS[1:]):
        if words_learned < high:
            return round(100.0 * (words_learned - low) / (high - low), 1)
    return 100.0


def iso_week(moment: datetime) -> str:
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class UserProfile:
    """Aggregate learner state. Only ProfileStore hands out writable instances."""

    user_id: str
    created_at: datetime | None = None
    total_study_time_seconds: int = 0
    words_learned: int = 0
    proficiency_level: str = "beginner"
    age_group: str | None = None
    memory_items: dict[str, MemoryItem] = field(default_factory=dict)
    unlocked_achievements: set[str] = field(default_factory=set)
    weekly_study_seconds: dict[str, int] = field(default_factory=dict)

    def copy(self) -> UserProfile:
        """Deep enough copy: MemoryItem values are immutable."""
        return replace(
            self,
            memory_items=dict(self.memory_items),
            unlocked_achievements=set(self.unlocked_achievements),
            weekly_study_seconds=dict(self.weekly_study_seconds),
        )

    @property
    def mature_items(self) -> int:
        return sum(1 for item in self.memory_items.values() if item.is_mature)

    def due_items(self, now: datetime) -> list[MemoryItem]:
        return [item for item in self.memory_items.values() if item.is_due(now)]

    def study_seconds_for_week(self, now: datetime) -> int:
        return self.weekly_study_seconds.get(iso_week(now), 0)


@dataclass(frozen=True)
class ProfileChange:
    """Before/after snapshots of one serialized profile mutation."""

    before: UserProfile
    after: UserProfile
    item: MemoryItem | None = None
    new_achievements: frozenset[str] = frozenset()


@dataclass(frozen=True)
class ProgressSummary:
    """What a caller learns after recording a review."""

    user_id: str
    item: MemoryItem
    proficiency_level: str
    progress_percentage: float
    weekly_goal_progress: float
    words_learned: int
    due_count: int
    new_achievements: frozenset[str] = frozenset()
    recommendations: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "item": self.item.to_record(),
            "proficiency_level": self.proficiency_level,
            "progress_percentage": self.progress_percentage,
            "weekly_goal_progress": self.weekly_goal_progress,
            "words_learned": self.words_learned,
            "due_count": self.due_count,
            "new_achievements": sorted(self.new_achievements),
            "recommendations": list(self.recommendations),
        }


# Called with (before, after) inside the writer lock; returns ids to unlock
ProfileObserver = Callable[[UserProfile, UserProfile], Iterable[str]]


# =============================================================================
# Profile Store
# =============================================================================


class ProfileStore:
    """
    Arena of learner profiles keyed by user id.

    Handles:
    - Lazy profile creation
    - Serialized review recording through MemoryItemScheduler
    - Study-time accrual from closed sessions
    - Notifying an observer (the achievement engine) of each change
    """

    def __init__(
        self,
        scheduler: MemoryItemScheduler | None = None,
        observer: ProfileObserver | None = None,
    ):
        """
        Initialize the store.

        Args:
            scheduler: The only component allowed to transition memory items
            observer: Receives (before, after) for every committed change
        """
        self.scheduler = scheduler or MemoryItemScheduler()
        self.observer = observer
        self._profiles: dict[str, UserProfile] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        return self._locks.setdefault(user_id, asyncio.Lock())

    # =========================================================================
    # Profile lifecycle
    # =========================================================================

    async def get_or_create(self, user_id: str, now: datetime, age_group: str | None = None) -> UserProfile:
        """
        Return a snapshot, creating an empty profile on first contact.

        A given ``age_group`` is stored on new and existing profiles alike.
        """
        async with self._lock_for(user_id):
            if user_id not in self._profiles:
                self._profiles[user_id] = UserProfile(user_id=user_id, created_at=now)
                logger.info(f"Created profile for learner {user_id}")
            if age_group is not None:
                self._profiles[user_id].age_group = age_group
            return self._profiles[user_id].copy()

    def snapshot(self, user_id: str) -> UserProfile:
        """
        Consistent read-only copy of a learner's profile.

        Raises:
            NotFound: if the learner has no profile
        """
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFound(user_id)
        return profile.copy()

    @asynccontextmanager
    async def writer(self, user_id: str) -> AsyncIterator[UserProfile]:
        """
        Exclusive write access to one learner's live profile.

        Raises:
            NotFound: if the learner has no profile
        """
        if user_id not in self._profiles:
            raise NotFound(user_id)
        async with self._lock_for(user_id):
            yield self._profiles[user_id]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def record_review(
        self,
        user_id: str,
        content_id: str,
        performance_score: float,
        now: datetime,
    ) -> ProfileChange:
        """
        Apply one review to a learner's memory item.

        A content unit seen for the first time gets a fresh MemoryItem and
        counts towards words learned.

        Raises:
            NotFound: unknown learner
            InvalidInput: score outside 0-5
        """
        async with self.writer(user_id) as profile:
            validate_performance(performance_score)
            before = profile.copy()

            item = profile.memory_items.get(content_id)
            if item is None:
                item = self.scheduler.new_item(content_id, now)
                profile.words_learned += 1

            updated = self.scheduler.record_review(item, performance_score, now)
            profile.memory_items[content_id] = updated
            profile.proficiency_level = proficiency_for(profile.words_learned)

            return self._commit(profile, before, updated)

    async def add_study_time(self, user_id: str, seconds: int, now: datetime) -> ProfileChange:
        """Accrue active study time from a finished session."""
        seconds = max(0, int(seconds))
        async with self.writer(user_id) as profile:
            before = profile.copy()
            profile.total_study_time_seconds += seconds
            week = iso_week(now)
            profile.weekly_study_seconds[week] = profile.weekly_study_seconds.get(week, 0) + seconds
            logger.debug(f"Learner {user_id} studied {seconds}s (total {profile.total_study_time_seconds}s)")
            return self._commit(profile, before)

    def _commit(
        self,
        profile: UserProfile,
        before: UserProfile,
        item: MemoryItem | None = None,
    ) -> ProfileChange:
        unlocked: frozenset[str] = frozenset()
        if self.observer is not None:
            unlocked = frozenset(self.observer(before, profile.copy())) - profile.unlocked_achievements
            if unlocked:
                profile.unlocked_achievements |= unlocked
                logger.info(f"Learner {profile.user_id} unlocked {sorted(unlocked)}")
        return ProfileChange(before=before, after=profile.copy(), item=item, new_achievements=unlocked)

    # =========================================================================
    # Persistence boundary
    # =========================================================================

    def export_items(self, user_id: str) -> list[dict[str, Any]]:
        """Persisted layout of every memory item for a learner."""
        profile = self.snapshot(user_id)
        return [item.to_record() for item in profile.memory_items.values()]

    async def import_items(self, user_id: str, records: Iterable[dict[str, Any]], now: datetime) -> int:
        """Load memory items previously produced by ``export_items``."""
        await self.get_or_create(user_id, now)
        count = 0
        async with self.writer(user_id) as profile:
            for record in records:
                item = MemoryItem.from_record(record)
                if item.item_id not in profile.memory_items:
                    profile.words_learned += 1
                profile.memory_items[item.item_id] = item
                count += 1
            profile.proficiency_level = proficiency_for(profile.words_learned)
        return count
