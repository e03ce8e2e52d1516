"""
Unit tests for MemoryItemScheduler.

Tests:
- SM-2 interval sequence (1, 6, interval x easiness)
- Easiness factor update and 1.3 floor
- Failure resets
- Score validation
- Purity of the transition
"""

import math
import random
from datetime import timedelta

import pytest

from src.core.exceptions import InvalidInput
from src.delivery.scheduler import (
    MAX_INTERVAL_DAYS,
    MemoryItem,
    MemoryItemScheduler,
    SM2Config,
    round_half_up,
    validate_performance,
)


@pytest.fixture
def fresh(scheduler, clock):
    return scheduler.new_item("hola", clock.now())


class TestNewItem:
    def test_initial_state(self, fresh, clock):
        assert fresh.interval_days == 1
        assert fresh.repetition_count == 0
        assert fresh.easiness_factor == 2.5
        assert fresh.is_due(clock.now())

    def test_unscheduled_item_is_due(self, clock):
        assert MemoryItem("adios").is_due(clock.now())

    def test_custom_initial_easiness(self, clock):
        scheduler = MemoryItemScheduler(SM2Config(initial_easiness=2.0))
        assert scheduler.new_item("x", clock.now()).easiness_factor == 2.0


class TestIntervals:
    def test_grades_4_4_2(self, scheduler, fresh, clock):
        """Two passes then a failure: 1 day, 6 days, back to 1 day."""
        now = clock.now()

        first = scheduler.record_review(fresh, 4, now)
        assert (first.interval_days, first.repetition_count) == (1, 1)
        assert first.easiness_factor == pytest.approx(2.5)

        second = scheduler.record_review(first, 4, now)
        assert (second.interval_days, second.repetition_count) == (6, 2)

        third = scheduler.record_review(second, 2, now)
        assert (third.interval_days, third.repetition_count) == (1, 0)
        assert third.easiness_factor == pytest.approx(2.18)

    def test_third_interval_uses_previous_easiness(self, scheduler, fresh, clock):
        now = clock.now()
        item = fresh
        for _ in range(2):
            item = scheduler.record_review(item, 5, now)
        assert item.easiness_factor == pytest.approx(2.7)

        item = scheduler.record_review(item, 5, now)
        # round(6 * 2.7) = 16, not 6 * 2.8
        assert item.interval_days == 16
        assert item.easiness_factor == pytest.approx(2.8)

    def test_grade_three_lowers_easiness(self, scheduler, fresh, clock):
        now = clock.now()
        item = fresh
        for _ in range(3):
            item = scheduler.record_review(item, 3, now)
        # 2.5 -> 2.36 -> 2.22 -> 2.08; the third interval uses 2.22
        assert item.easiness_factor == pytest.approx(2.08)
        assert item.interval_days == 13

    def test_next_review_follows_interval(self, scheduler, fresh, clock):
        now = clock.now()
        item = scheduler.record_review(scheduler.record_review(fresh, 4, now), 4, now)
        assert item.last_reviewed_at == now
        assert item.next_review_at == now + timedelta(days=6)
        assert not item.is_due(now + timedelta(days=5))
        assert item.is_due(now + timedelta(days=6))

    def test_interval_is_capped(self, scheduler, fresh, clock):
        item = fresh
        for _ in range(30):
            item = scheduler.record_review(item, 5, clock.now())
        assert item.interval_days == MAX_INTERVAL_DAYS


class TestEasiness:
    def test_floor(self, scheduler, fresh, clock):
        item = fresh
        for _ in range(20):
            item = scheduler.record_review(item, 0, clock.now())
        assert item.easiness_factor == 1.3
        assert item.repetition_count == 0
        assert item.interval_days == 1

    def test_fractional_score(self, scheduler, fresh, clock):
        item = scheduler.record_review(fresh, 3.5, clock.now())
        assert item.repetition_count == 1
        assert item.easiness_factor == pytest.approx(2.5 - 0.065)
        assert item.last_performance == 4

    def test_random_histories_respect_invariants(self, scheduler, fresh, clock):
        rng = random.Random(11)
        item = fresh
        for _ in range(200):
            grade = rng.randint(0, 5)
            previous = item
            item = scheduler.record_review(item, grade, clock.now())
            assert item.easiness_factor >= 1.3
            assert item.interval_days >= 1
            if grade < 3:
                assert item.repetition_count == 0
                assert item.interval_days == 1
            else:
                assert item.repetition_count == previous.repetition_count + 1


class TestPurity:
    def test_same_inputs_same_output(self, scheduler, fresh, clock):
        now = clock.now()
        assert scheduler.record_review(fresh, 4, now) == scheduler.record_review(fresh, 4, now)

    def test_input_unchanged(self, scheduler, fresh, clock):
        snapshot = fresh.to_record()
        scheduler.record_review(fresh, 1, clock.now())
        assert fresh.to_record() == snapshot


class TestValidation:
    @pytest.mark.parametrize("score", [-1, 5.5, float("nan"), "4", None, True])
    def test_rejects_invalid(self, scheduler, fresh, clock, score):
        with pytest.raises(InvalidInput):
            scheduler.record_review(fresh, score, clock.now())

    @pytest.mark.parametrize("score", [0, 5, 2.5])
    def test_accepts_bounds(self, score):
        assert validate_performance(score) == float(score)


class TestHelpers:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(15.5) == 16
        assert round_half_up(13.32) == 13

    def test_grade_from_response(self, scheduler):
        assert scheduler.grade_from_response(True, 2000) == 5
        assert scheduler.grade_from_response(True, 8000) == 4
        assert scheduler.grade_from_response(True, 12000) == 3
        assert scheduler.grade_from_response(False, 2000) == 2
        assert scheduler.grade_from_response(False, 12000) == 0
        assert scheduler.grade_from_response(False, 4000, expected_ms=4000) == 0

    @pytest.mark.parametrize("response_ms", [-1, float("nan"), "fast", True, None])
    def test_grade_from_response_rejects_bad_times(self, scheduler, response_ms):
        with pytest.raises(InvalidInput):
            scheduler.grade_from_response(True, response_ms)

    def test_record_layout(self, scheduler, fresh, clock):
        item = scheduler.record_review(fresh, 4, clock.now())
        record = item.to_record()
        assert set(record) == {
            "item_id", "interval_days", "repetition_count",
            "easiness_factor", "next_review_at", "last_performance",
        }
        restored = MemoryItem.from_record(record)
        assert restored.next_review_at == item.next_review_at
        assert math.isclose(restored.easiness_factor, item.easiness_factor)
