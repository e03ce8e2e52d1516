"""
Unit tests for SessionPlanner.

Tests:
- Cognitive-load caps and circadian weights
- Review ordering (oldest due first, harder first on ties)
- New-item selection
- Baseline breaks and consolidation
- Age-group pacing and the difficulty curve
- Plans never mutate their inputs
"""

import dataclasses
from datetime import timedelta

import pytest

from src.adaptive.brain_state import BrainState
from src.adaptive.session_planner import (
    NEW,
    REVIEW,
    PlannerConfig,
    SessionPlanner,
    difficulty_progression,
)
from src.adaptive.tables import Level, TimeOfDay, time_of_day_for
from src.core.exceptions import NotFound
from src.delivery.profile_store import UserProfile
from src.delivery.scheduler import MemoryItem

MORNING, AFTERNOON, EVENING = 9, 14, 20


class StubCatalog:
    """Catalog returning fixed answers."""

    def __init__(self, due=None, new=None):
        self.due = list(due or [])
        self.new = list(new or [])
        self.calls = []

    async def due_items(self, user_id, now):
        self.calls.append(("due_items", user_id))
        return list(self.due)

    async def new_item_candidates(self, user_id, limit):
        self.calls.append(("new_item_candidates", limit))
        return self.new[:limit]


def make_profile(clock, due_count=0, easiness=2.5):
    """Profile whose items became due one minute apart, oldest first."""
    now = clock.now()
    items = {}
    for i in range(due_count):
        item_id = f"due-{i:03d}"
        items[item_id] = MemoryItem(
            item_id=item_id,
            interval_days=1,
            repetition_count=1,
            easiness_factor=easiness,
            next_review_at=now - timedelta(hours=1) + timedelta(minutes=i),
        )
    return UserProfile(user_id="learner", created_at=now, memory_items=items)


def new_ids(n):
    return [f"new-{i:03d}" for i in range(n)]


@pytest.fixture
def neutral():
    return BrainState()


class TestBudgets:
    @pytest.mark.asyncio
    async def test_neutral_evening(self, clock, neutral):
        profile = make_profile(clock, due_count=40)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(20)))

        plan = await planner.build_plan(profile, neutral, EVENING, clock.now())

        assert plan.time_of_day is TimeOfDay.EVENING
        assert plan.cognitive_load_level is Level.MEDIUM
        assert len(plan.review_items) == 30
        # floor(10 * 0.6)
        assert len(plan.new_items) == 6
        assert plan.focus == ("review", "consolidation")

    @pytest.mark.asyncio
    async def test_high_load_morning(self, clock):
        profile = make_profile(clock, due_count=40)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(20)))

        plan = await planner.build_plan(profile, BrainState(cognitive_load=0.9), MORNING, clock.now())

        assert plan.cognitive_load_level is Level.HIGH
        assert len(plan.review_items) == 20
        assert len(plan.new_items) == 5

    @pytest.mark.asyncio
    async def test_low_load_afternoon(self, clock):
        profile = make_profile(clock, due_count=60)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(20)))

        plan = await planner.build_plan(profile, BrainState(cognitive_load=0.1), AFTERNOON, clock.now())

        assert plan.cognitive_load_level is Level.LOW
        assert len(plan.review_items) == 50
        assert len(plan.new_items) == 12  # floor(15 * 0.8)

    @pytest.mark.asyncio
    async def test_caps_never_exceeded(self, clock):
        profile = make_profile(clock, due_count=200)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(200)))

        for load, cap in ((0.1, (15, 50)), (0.5, (10, 30)), (0.9, (5, 20))):
            for hour in range(24):
                plan = await planner.build_plan(profile, BrainState(cognitive_load=load), hour, clock.now())
                assert len(plan.new_items) <= cap[0]
                assert len(plan.review_items) <= cap[1]

    @pytest.mark.asyncio
    async def test_review_cap_ignores_time_of_day(self, clock, neutral):
        profile = make_profile(clock, due_count=40)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items))

        for hour in (MORNING, AFTERNOON, EVENING):
            plan = await planner.build_plan(profile, neutral, hour, clock.now())
            assert len(plan.review_items) == 30


class TestSelection:
    @pytest.mark.asyncio
    async def test_reviews_oldest_first(self, clock, neutral):
        profile = make_profile(clock, due_count=40)
        due = list(reversed(profile.memory_items))
        planner = SessionPlanner(StubCatalog(due=due))

        plan = await planner.build_plan(profile, neutral, EVENING, clock.now())

        times = [item.next_review_at for item in plan.review_items]
        assert times == sorted(times)
        assert plan.review_items[0].content_id == "due-000"
        assert all(item.kind == REVIEW for item in plan.review_items)

    @pytest.mark.asyncio
    async def test_harder_first_on_ties(self, clock, neutral):
        when = clock.now() - timedelta(hours=1)
        profile = UserProfile(
            user_id="learner",
            memory_items={
                "easy": MemoryItem("easy", easiness_factor=2.8, next_review_at=when),
                "hard": MemoryItem("hard", easiness_factor=1.4, next_review_at=when),
                "mid": MemoryItem("mid", easiness_factor=2.1, next_review_at=when),
            },
        )
        planner = SessionPlanner(StubCatalog(due=["easy", "hard", "mid"]))

        plan = await planner.build_plan(profile, neutral, EVENING, clock.now())

        assert [item.content_id for item in plan.review_items] == ["hard", "mid", "easy"]

    @pytest.mark.asyncio
    async def test_items_not_due_are_skipped(self, clock, neutral):
        profile = make_profile(clock, due_count=2)
        profile.memory_items["later"] = MemoryItem("later", next_review_at=clock.now() + timedelta(days=3))
        planner = SessionPlanner(StubCatalog(due=["due-000", "later", "due-001", "unknown"]))

        plan = await planner.build_plan(profile, neutral, EVENING, clock.now())

        assert [item.content_id for item in plan.review_items] == ["due-000", "due-001"]

    @pytest.mark.asyncio
    async def test_new_items_exclude_known_content(self, clock, neutral):
        profile = make_profile(clock, due_count=1)
        planner = SessionPlanner(StubCatalog(due=["due-000"], new=["due-000", "new-000", "new-000", "new-001"]))

        plan = await planner.build_plan(profile, neutral, EVENING, clock.now())

        assert [item.content_id for item in plan.new_items] == ["new-000", "new-001"]
        assert all(item.kind == NEW for item in plan.new_items)

    @pytest.mark.asyncio
    async def test_missing_profile(self, clock, neutral):
        planner = SessionPlanner(StubCatalog())
        with pytest.raises(NotFound):
            await planner.build_plan(None, neutral, EVENING, clock.now())


class TestTiming:
    @pytest.mark.asyncio
    async def test_short_plan_has_no_breaks_or_consolidation(self, clock, neutral):
        profile = make_profile(clock, due_count=2)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(2)))

        plan = await planner.build_plan(profile, neutral, EVENING, clock.now())

        assert plan.duration_seconds == 2 * 30 + 2 * 60
        assert plan.break_intervals == ()
        assert plan.consolidation_activities == ()

    @pytest.mark.asyncio
    async def test_consolidation_over_new_items(self, clock, neutral):
        profile = make_profile(clock, due_count=40)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(20)))

        plan = await planner.build_plan(profile, neutral, EVENING, clock.now())

        # 30 * 30s + 6 * 60s = 21 min, under the first break
        assert plan.duration_seconds == 1260
        assert plan.break_intervals == ()
        (activity,) = plan.consolidation_activities
        assert activity.content_ids == tuple(new_ids(6))

    @pytest.mark.asyncio
    async def test_break_after_each_full_block(self, clock):
        profile = make_profile(clock, due_count=60)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(20)))

        plan = await planner.build_plan(profile, BrainState(cognitive_load=0.1), AFTERNOON, clock.now())

        # 50 * 30s + 12 * 60s = 2220s active
        assert len(plan.break_intervals) == 1
        assert plan.break_intervals[0].offset_seconds == 1500
        assert plan.break_intervals[0].duration_seconds == 300
        assert plan.duration_seconds == 2220 + 300

    @pytest.mark.asyncio
    async def test_no_break_after_final_block(self, clock, neutral):
        profile = make_profile(clock, due_count=30)
        config = PlannerConfig(review_item_seconds=100)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items), config)

        plan = await planner.build_plan(profile, neutral, EVENING, clock.now())

        # exactly two 25 min blocks
        assert len(plan.break_intervals) == 1
        assert plan.duration_seconds == 3000 + 300
        assert plan.consolidation_activities == ()

    @pytest.mark.asyncio
    async def test_second_break_offset_includes_first_break(self, clock):
        profile = make_profile(clock, due_count=60)
        config = PlannerConfig(review_item_seconds=120)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items), config)

        plan = await planner.build_plan(profile, BrainState(cognitive_load=0.1), EVENING, clock.now())

        # 50 reviews * 120s = 6000s active -> 3 breaks
        offsets = [b.offset_seconds for b in plan.break_intervals]
        assert offsets == [1500, 3300, 5100]


class TestImmutability:
    @pytest.mark.asyncio
    async def test_plan_is_frozen(self, clock, neutral):
        profile = make_profile(clock, due_count=3)
        plan = await SessionPlanner(StubCatalog(due=profile.memory_items)).build_plan(
            profile, neutral, EVENING, clock.now()
        )
        with pytest.raises(dataclasses.FrozenInstanceError):
            plan.duration_seconds = 0

    @pytest.mark.asyncio
    async def test_inputs_untouched(self, clock, neutral):
        profile = make_profile(clock, due_count=5)
        before = profile.copy()
        await SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(5))).build_plan(
            profile, neutral, EVENING, clock.now()
        )
        assert profile == before
        assert neutral == BrainState()


@pytest.mark.parametrize(
    "hour, bucket",
    [
        (4, TimeOfDay.EVENING),
        (5, TimeOfDay.MORNING),
        (11, TimeOfDay.MORNING),
        (12, TimeOfDay.AFTERNOON),
        (17, TimeOfDay.AFTERNOON),
        (18, TimeOfDay.EVENING),
        (23, TimeOfDay.EVENING),
    ],
)
def test_time_of_day_buckets(hour, bucket):
    assert time_of_day_for(hour) is bucket


class TestAgePacing:
    @pytest.mark.asyncio
    async def test_adult_is_the_baseline(self, clock, neutral):
        profile = make_profile(clock)
        plan = await SessionPlanner(StubCatalog(new=new_ids(2))).build_plan(profile, neutral, EVENING, clock.now())

        assert [item.estimated_seconds for item in plan.new_items] == [60, 60]
        assert plan.methods == ("analytical", "spaced_repetition")

    @pytest.mark.asyncio
    async def test_senior_gets_more_time_per_new_item(self, clock, neutral):
        profile = make_profile(clock)
        profile.age_group = "senior"

        plan = await SessionPlanner(StubCatalog(new=new_ids(2))).build_plan(profile, neutral, EVENING, clock.now())

        # 60s * 0.70 / 0.60
        assert [item.estimated_seconds for item in plan.new_items] == [70, 70]
        assert plan.duration_seconds == 140
        assert plan.methods == ("slower_pace", "visual_aids")

    @pytest.mark.asyncio
    async def test_child_moves_faster(self, clock, neutral):
        profile = make_profile(clock)
        profile.age_group = "child"

        plan = await SessionPlanner(StubCatalog(new=new_ids(1))).build_plan(profile, neutral, EVENING, clock.now())

        assert plan.new_items[0].estimated_seconds == 44
        assert "play_based" in plan.methods

    @pytest.mark.asyncio
    async def test_unknown_age_group_plans_like_adult(self, clock, neutral):
        profile = make_profile(clock)
        profile.age_group = "toddler"

        plan = await SessionPlanner(StubCatalog(new=new_ids(1))).build_plan(profile, neutral, EVENING, clock.now())

        assert plan.new_items[0].estimated_seconds == 60


class TestDifficultyCurve:
    def test_short_plans_stay_at_peak(self):
        assert difficulty_progression(0, 0.8) == ()
        assert difficulty_progression(2, 0.8) == (0.8, 0.8)

    def test_warm_up_peak_cool_down(self):
        assert difficulty_progression(5, 1.0) == (0.75, 1.0, 1.0, 1.0, 0.7)
        assert difficulty_progression(10, 0.8) == (0.53, 0.67, 0.8, 0.8, 0.8, 0.8, 0.8, 0.8, 0.56, 0.56)

    @pytest.mark.asyncio
    async def test_plan_curve_follows_load(self, clock):
        profile = make_profile(clock, due_count=4)
        planner = SessionPlanner(StubCatalog(due=profile.memory_items, new=new_ids(20)))

        calm = await planner.build_plan(profile, BrainState(cognitive_load=0.1), EVENING, clock.now())
        loaded = await planner.build_plan(profile, BrainState(cognitive_load=0.9), EVENING, clock.now())

        assert len(calm.difficulty_progression) == len(calm.items)
        assert max(calm.difficulty_progression) == 1.0
        assert max(loaded.difficulty_progression) == 0.6

    @pytest.mark.asyncio
    async def test_to_dict_carries_curve_and_mix(self, clock, neutral):
        profile = make_profile(clock, due_count=3)
        plan = await SessionPlanner(StubCatalog(due=profile.memory_items)).build_plan(
            profile, neutral, MORNING, clock.now()
        )

        payload = plan.to_dict()

        assert payload["difficulty_progression"] == [0.6, 0.8, 0.56]
        assert payload["content_mix"] == {"review": 0.8, "new": 1.0}
        assert payload["methods"] == ["analytical", "spaced_repetition"]
