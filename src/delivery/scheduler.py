"""
SM-2 Spaced Repetition Scheduler.

Implements the per-item decay/strengthening state machine:
- SM-2 interval growth (1 day, 6 days, then interval x easiness)
- Easiness factor update with a 1.3 floor
- Conversion of timed answers into SM-2 grades

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from numbers import Real
from typing import Any

from loguru import logger

from src.core.exceptions import InvalidInput

PASSING_GRADE = 3
MAX_GRADE = 5
MAX_INTERVAL_DAYS = 36500  # datetime arithmetic overflows long before SM-2 would stop growing


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


# =============================================================================
# Memory Item
# =============================================================================


@dataclass(frozen=True)
class MemoryItem:
    """SM-2 state for one content unit of one learner."""

    item_id: str
    interval_days: int = 1
    repetition_count: int = 0
    easiness_factor: float = 2.5
    next_review_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    last_performance: int | None = None

    def is_due(self, now: datetime) -> bool:
        """Never-reviewed items are due immediately."""
        if self.next_review_at is None:
            return True
        return self.next_review_at <= now

    @property
    def is_mature(self) -> bool:
        return self.interval_days >= 21

    def to_record(self) -> dict[str, Any]:
        """Persisted layout of a memory item."""
        return {
            "item_id": self.item_id,
            "interval_days": int(self.interval_days),
            "repetition_count": int(self.repetition_count),
            "easiness_factor": float(self.easiness_factor),
            "next_review_at": self.next_review_at.isoformat() if self.next_review_at else None,
            "last_performance": self.last_performance,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> MemoryItem:
        next_review = record.get("next_review_at")
        if isinstance(next_review, str):
            next_review = datetime.fromisoformat(next_review)
        last_reviewed = None
        if next_review is not None:
            last_reviewed = next_review - timedelta(days=int(record["interval_days"]))
        return cls(
            item_id=record["item_id"],
            interval_days=int(record["interval_days"]),
            repetition_count=int(record["repetition_count"]),
            easiness_factor=float(record["easiness_factor"]),
            next_review_at=next_review,
            last_reviewed_at=last_reviewed,
            last_performance=record.get("last_performance"),
        )


# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass(frozen=True)
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review

    @classmethod
    def from_settings(cls, settings) -> SM2Config:
        return cls(**settings.get_scheduler_config())


def validate_performance(score: Any) -> float:
    """
    Check that a performance score is a real number in [0, 5].

    Raises:
        InvalidInput: for non-numbers, booleans, NaN or out-of-range values
    """
    if isinstance(score, bool) or not isinstance(score, Real):
        raise InvalidInput(f"Performance score must be a number, got {score!r}")
    value = float(score)
    if math.isnan(value) or not 0 <= value <= MAX_GRADE:
        raise InvalidInput(f"Performance score must be within 0-5, got {score!r}")
    return value


class MemoryItemScheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    The SuperMemo 2 algorithm calculates optimal review intervals
    based on performance history. Each item has:
    - Easiness Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive correct recalls

    ``record_review`` is a pure transition: it never mutates its input and
    the same (item, score, now) always yields the same result.
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def new_item(self, content_id: str, now: datetime) -> MemoryItem:
        """State for a content unit on first exposure (due right away)."""
        return MemoryItem(
            item_id=content_id,
            interval_days=self.config.first_interval,
            repetition_count=0,
            easiness_factor=self.config.initial_easiness,
            next_review_at=now,
            last_reviewed_at=None,
        )

    def record_review(
        self,
        item: MemoryItem,
        performance_score: float,
        now: datetime,
    ) -> MemoryItem:
        """
        Calculate the next review state based on grade.

        Args:
            item: Current state for the item
            performance_score: Grade in [0, 5] (int or float)
            now: Review timestamp

        Returns:
            New MemoryItem with updated interval, repetitions and easiness
        """
        q = validate_performance(performance_score)

        if q >= PASSING_GRADE:
            if item.repetition_count == 0:
                new_interval = self.config.first_interval
            elif item.repetition_count == 1:
                new_interval = self.config.second_interval
            else:
                # Growth uses the easiness factor from before this review
                new_interval = round_half_up(item.interval_days * item.easiness_factor)
            new_repetitions = item.repetition_count + 1
        else:
            new_repetitions = 0
            new_interval = self.config.first_interval

        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (MAX_GRADE - q) * (0.08 + (MAX_GRADE - q) * 0.02)
        new_ef = max(self.config.minimum_easiness, item.easiness_factor + ef_delta)

        new_interval = min(MAX_INTERVAL_DAYS, max(1, new_interval))
        updated = replace(
            item,
            interval_days=new_interval,
            repetition_count=new_repetitions,
            easiness_factor=new_ef,
            last_reviewed_at=now,
            next_review_at=now + timedelta(days=new_interval),
            last_performance=round_half_up(q),
        )

        logger.debug(
            f"Reviewed {item.item_id}: grade={q:g}, "
            f"interval={item.interval_days}d->{updated.interval_days}d, "
            f"reps={updated.repetition_count}, ef={updated.easiness_factor:.2f}"
        )
        return updated

    def grade_from_response(
        self,
        is_correct: bool,
        response_ms: float,
        expected_ms: float = 10000,
    ) -> int:
        """
        Grade a timed answer.

        Correctness picks the half of the scale (3-5 or 0-2); speed picks
        the step within it: under half the expected time is the top step,
        under the expected time the middle one.

        Raises:
            InvalidInput: for a negative response time or a non-positive expectation
        """
        if isinstance(response_ms, bool) or not isinstance(response_ms, Real) or math.isnan(response_ms):
            raise InvalidInput(f"Response time must be a number, got {response_ms!r}")
        if response_ms < 0 or expected_ms <= 0:
            raise InvalidInput(f"Response time must be >= 0 ms, got {response_ms!r}")
        base = PASSING_GRADE if is_correct else 0
        if response_ms < expected_ms / 2:
            return base + 2
        if response_ms < expected_ms:
            return base + 1
        return base
