"""
Session Planner.

Composes an immutable SessionPlan from:
- a profile snapshot (what is due, what is already known)
- the learner's BrainState (cognitive-load budget)
- the local hour (circadian retention weights)
- the content catalog (due and new content)

Plan Structure:
1. Due reviews, oldest first, hardest first on ties
2. New items in curriculum order, paced by the learner's age group
3. A 5 min break after every 25 min of active time
4. A consolidation pass over the new items when the plan exceeds 20 min
5. A warm-up / peak / cool-down difficulty curve over the items
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from loguru import logger

from src.adaptive.brain_state import BrainState, classify_cognitive_load
from src.adaptive.content_catalog import ContentCatalog
from src.adaptive.tables import (
    COGNITIVE_LOAD_CAPS,
    DIFFICULTY_PEAKS,
    REFERENCE_PLASTICITY,
    TIME_OF_DAY,
    Level,
    TimeOfDay,
    age_factor_for,
    time_of_day_for,
)
from src.core.exceptions import NotFound
from src.delivery.profile_store import UserProfile
from src.delivery.scheduler import round_half_up

REVIEW = "review"
NEW = "new"


@dataclass(frozen=True)
class PlannedItem:
    """One content unit scheduled in a plan."""

    content_id: str
    kind: str  # "review" or "new"
    estimated_seconds: int
    next_review_at: datetime | None = None
    easiness_factor: float | None = None


@dataclass(frozen=True)
class BreakInterval:
    """A baseline break; offset is measured from session start including earlier breaks."""

    offset_seconds: int
    duration_seconds: int


@dataclass(frozen=True)
class ConsolidationActivity:
    """End-of-session review pass over content introduced in the session."""

    content_ids: tuple[str, ...]
    estimated_seconds: int
    activity: str = "review_pass"


@dataclass(frozen=True)
class SessionPlan:
    """Immutable blueprint of a study session."""

    user_id: str
    created_at: datetime
    duration_seconds: int
    review_items: tuple[PlannedItem, ...] = ()
    new_items: tuple[PlannedItem, ...] = ()
    break_intervals: tuple[BreakInterval, ...] = ()
    consolidation_activities: tuple[ConsolidationActivity, ...] = ()
    time_of_day: TimeOfDay = TimeOfDay.MORNING
    cognitive_load_level: Level = Level.MEDIUM
    focus: tuple[str, ...] = ()
    brain_state: BrainState = field(default_factory=BrainState)
    difficulty_progression: tuple[float, ...] = ()
    methods: tuple[str, ...] = ()
    content_mix: tuple[tuple[str, float], ...] = ()
    plan_id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def items(self) -> tuple[PlannedItem, ...]:
        """Reviews first, then new items."""
        return self.review_items + self.new_items

    @property
    def estimated_minutes(self) -> int:
        return max(1, math.ceil(self.duration_seconds / 60))

    def to_dict(self) -> dict:
        return {
            "plan_id": self.plan_id,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "review_items": [i.content_id for i in self.review_items],
            "new_items": [i.content_id for i in self.new_items],
            "break_intervals": [
                {"offset_seconds": b.offset_seconds, "duration_seconds": b.duration_seconds}
                for b in self.break_intervals
            ],
            "consolidation_activities": [
                {"activity": c.activity, "content_ids": list(c.content_ids)}
                for c in self.consolidation_activities
            ],
            "time_of_day": self.time_of_day.value,
            "cognitive_load_level": self.cognitive_load_level.value,
            "focus": list(self.focus),
            "brain_state": self.brain_state.to_dict(),
            "difficulty_progression": list(self.difficulty_progression),
            "methods": list(self.methods),
            "content_mix": dict(self.content_mix),
        }


@dataclass(frozen=True)
class PlannerConfig:
    """Timing constants for plan construction."""

    review_item_seconds: int = 30
    new_item_seconds: int = 60
    break_every_seconds: int = 25 * 60
    break_seconds: int = 5 * 60
    consolidation_threshold_seconds: int = 20 * 60

    @classmethod
    def from_settings(cls, settings) -> PlannerConfig:
        return cls(
            review_item_seconds=settings.review_item_seconds,
            new_item_seconds=settings.new_item_seconds,
            break_every_seconds=settings.break_every_seconds,
            break_seconds=settings.break_seconds,
            consolidation_threshold_seconds=settings.consolidation_threshold_seconds,
        )


WARM_UP_SHARE = 0.2
COOL_DOWN_FACTOR = 0.7


def difficulty_progression(count: int, peak: float) -> tuple[float, ...]:
    """
    Target difficulty per plan item: ramp up, hold the peak, ease off.

    Plans shorter than three items stay at the peak. Otherwise the first
    and last fifth (at least one item each) are the warm-up and cool-down.
    """
    if count <= 0:
        return ()
    if count < 3:
        return tuple(round(peak, 2) for _ in range(count))
    edge = max(1, round_half_up(count * WARM_UP_SHARE))
    curve = []
    for i in range(count):
        if i < edge:
            value = peak * (0.5 + 0.5 * (i + 1) / (edge + 1))
        elif i >= count - edge:
            value = peak * COOL_DOWN_FACTOR
        else:
            value = peak
        curve.append(round(value, 2))
    return tuple(curve)


class SessionPlanner:
    """
    Builds session plans; never mutates the profile or brain state it reads.

    Args:
        catalog: Content collaborator for due and new content
        config: Timing constants
    """

    def __init__(self, catalog: ContentCatalog, config: PlannerConfig | None = None):
        self.catalog = catalog
        self.config = config or PlannerConfig()

    async def build_plan(
        self,
        profile: UserProfile | None,
        brain_state: BrainState,
        local_hour: int,
        now: datetime,
    ) -> SessionPlan:
        """
        Build a plan for one learner.

        Args:
            profile: Snapshot taken once at request time
            brain_state: Current assessment
            local_hour: Learner-local hour (0-23)
            now: Reference time for due checks

        Raises:
            NotFound: if the learner has no profile
        """
        if profile is None:
            raise NotFound("<unknown>")

        # 1. Circadian bucket
        time_of_day = time_of_day_for(local_hour)
        retention = TIME_OF_DAY[time_of_day]

        # 2. Cognitive-load budget
        load_level = classify_cognitive_load(brain_state.cognitive_load)
        budget = COGNITIVE_LOAD_CAPS[load_level]
        review_limit = budget.review_items
        new_limit = min(budget.new_items, math.floor(budget.new_items * retention.new_item_weight + 1e-9))

        # 3. Due reviews
        review_items = await self._select_reviews(profile, now, review_limit)

        # 4. New items
        scheduled = {item.content_id for item in review_items}
        age = age_factor_for(profile.age_group)
        new_seconds = round_half_up(self.config.new_item_seconds * REFERENCE_PLASTICITY / age.plasticity)
        new_items = await self._select_new(profile, new_limit, scheduled, new_seconds)

        # 5. Duration and baseline breaks
        active_seconds = sum(item.estimated_seconds for item in review_items + new_items)
        breaks = self._baseline_breaks(active_seconds)
        duration = active_seconds + sum(b.duration_seconds for b in breaks)

        # 6. Consolidation
        consolidation: tuple[ConsolidationActivity, ...] = ()
        if duration > self.config.consolidation_threshold_seconds and new_items:
            consolidation = (
                ConsolidationActivity(
                    content_ids=tuple(item.content_id for item in new_items),
                    estimated_seconds=len(new_items) * self.config.review_item_seconds,
                ),
            )

        plan = SessionPlan(
            user_id=profile.user_id,
            created_at=now,
            duration_seconds=duration,
            review_items=review_items,
            new_items=new_items,
            break_intervals=breaks,
            consolidation_activities=consolidation,
            time_of_day=time_of_day,
            cognitive_load_level=load_level,
            focus=retention.best_for,
            brain_state=brain_state,
            difficulty_progression=difficulty_progression(
                len(review_items) + len(new_items), DIFFICULTY_PEAKS[load_level]
            ),
            methods=age.optimal_methods,
            content_mix=((REVIEW, retention.review_emphasis), (NEW, retention.new_item_weight)),
        )

        logger.info(
            f"Plan built for {profile.user_id}: {len(review_items)} review + "
            f"{len(new_items)} new, {len(breaks)} breaks, ~{plan.estimated_minutes} min "
            f"({time_of_day.value}, load={load_level.value})"
        )
        return plan

    async def _select_reviews(
        self,
        profile: UserProfile,
        now: datetime,
        limit: int,
    ) -> tuple[PlannedItem, ...]:
        if limit <= 0:
            return ()
        candidates = []
        for content_id in dict.fromkeys(await self.catalog.due_items(profile.user_id, now)):
            item = profile.memory_items.get(content_id)
            if item is None or not item.is_due(now):
                continue
            candidates.append(item)

        # Oldest due first; lower easiness (harder) first on ties
        candidates.sort(key=lambda i: (i.next_review_at or now, i.easiness_factor, i.item_id))
        logger.debug(f"{len(candidates)} due items for {profile.user_id}, keeping {limit}")

        return tuple(
            PlannedItem(
                content_id=item.item_id,
                kind=REVIEW,
                estimated_seconds=self.config.review_item_seconds,
                next_review_at=item.next_review_at,
                easiness_factor=item.easiness_factor,
            )
            for item in candidates[:limit]
        )

    async def _select_new(
        self,
        profile: UserProfile,
        limit: int,
        scheduled: set[str],
        seconds: int,
    ) -> tuple[PlannedItem, ...]:
        if limit <= 0:
            return ()
        candidates = await self.catalog.new_item_candidates(profile.user_id, limit)
        fresh = [
            content_id
            for content_id in dict.fromkeys(candidates)
            if content_id not in profile.memory_items and content_id not in scheduled
        ]
        return tuple(
            PlannedItem(content_id=content_id, kind=NEW, estimated_seconds=seconds)
            for content_id in fresh[:limit]
        )

    def _baseline_breaks(self, active_seconds: int) -> tuple[BreakInterval, ...]:
        """One break after every full work block, none after the final stretch."""
        every = self.config.break_every_seconds
        if every <= 0 or active_seconds <= every:
            return ()
        count = math.ceil(active_seconds / every) - 1
        return tuple(
            BreakInterval(
                offset_seconds=k * every + (k - 1) * self.config.break_seconds,
                duration_seconds=self.config.break_seconds,
            )
            for k in range(1, count + 1)
        )
