"""
Live Session Controller.

Holds the mutable runtime copy of a SessionPlan and is its only mutator.
The FeedbackLoop posts Adjustments to ``inbox``; the controller's own task
drains the inbox and applies them:

- STRESS_BREAK: queue a break for the next item boundary (never mid-item)
- REDUCE_COGNITIVE_LOAD: lower difficulty, halve the remaining new items
- ENGAGEMENT_BOOST: insert a gamified element right after the current step

The step at the head of the queue is the one the learner is working on.
"""
from __future__ import annotations

import asyncio
import math
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from loguru import logger

from src.adaptive.adjustments import Adjustment, AdjustmentKind
from src.adaptive.brain_state import BrainStateAssessor
from src.adaptive.feedback_loop import FeedbackConfig, FeedbackLoop
from src.adaptive.session_planner import NEW, SessionPlan
from src.core.clock import Clock, SystemClock
from src.core.exceptions import InvalidState

MIN_DIFFICULTY_OFFSET = -1.0


class StepKind(str, Enum):
    REVIEW = "review"
    NEW = "new"
    CONSOLIDATION = "consolidation"
    GAMIFIED = "gamified"
    BREAK = "break"


@dataclass
class LiveStep:
    """One entry of the live queue."""

    kind: StepKind
    seconds: int
    content_id: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def is_content(self) -> bool:
        return self.kind in (StepKind.REVIEW, StepKind.NEW)


@dataclass(frozen=True)
class SessionSummary:
    """Outcome of a closed session."""

    session_id: str
    user_id: str
    reason: str  # "closed" or "inactive"
    items_completed: int
    study_seconds: int
    breaks_taken: int
    adjustments: tuple[Adjustment, ...] = ()
    new_achievements: frozenset[str] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "reason": self.reason,
            "items_completed": self.items_completed,
            "study_seconds": self.study_seconds,
            "breaks_taken": self.breaks_taken,
            "adjustments": [a.to_dict() for a in self.adjustments],
            "new_achievements": sorted(self.new_achievements),
        }


def build_steps(plan: SessionPlan, break_every_seconds: int) -> list[LiveStep]:
    """
    Expand a plan into a step queue.

    Baseline breaks are placed at the first item boundary at or after each
    break's active-time threshold so that a break never splits an item.
    """
    steps: list[LiveStep] = []
    breaks = list(plan.break_intervals)
    active = 0
    curve = plan.difficulty_progression
    for index, item in enumerate(plan.items):
        kind = StepKind.NEW if item.kind == NEW else StepKind.REVIEW
        detail = {"difficulty": curve[index]} if index < len(curve) else {}
        steps.append(LiveStep(kind=kind, seconds=item.estimated_seconds, content_id=item.content_id, detail=detail))
        active += item.estimated_seconds
        taken = len(plan.break_intervals) - len(breaks)
        if breaks and active >= (taken + 1) * break_every_seconds:
            pause = breaks.pop(0)
            steps.append(LiveStep(kind=StepKind.BREAK, seconds=pause.duration_seconds, detail={"reason": "baseline"}))
    for activity in plan.consolidation_activities:
        steps.append(
            LiveStep(
                kind=StepKind.CONSOLIDATION,
                seconds=activity.estimated_seconds,
                detail={"activity": activity.activity, "content_ids": list(activity.content_ids)},
            )
        )
    return steps


class LiveSession:
    """
    Runtime state of one open session.

    Args:
        plan: Immutable plan the session starts from
        clock: Time source for activity tracking
        assessor: Passed to the feedback loop
        feedback_config: Passed to the feedback loop
        rng: Seedable randomness for the feedback loop
        break_every_seconds: Baseline break cadence used to place plan breaks
    """

    def __init__(
        self,
        plan: SessionPlan,
        clock: Clock | None = None,
        assessor: BrainStateAssessor | None = None,
        feedback_config: FeedbackConfig | None = None,
        rng: random.Random | None = None,
        break_every_seconds: int = 25 * 60,
        session_id: str | None = None,
    ):
        self.session_id = session_id or str(uuid4())
        self.plan = plan
        self.user_id = plan.user_id
        self.clock = clock or SystemClock()

        self.steps = build_steps(plan, break_every_seconds)
        self.difficulty_offset = 0.0
        self.new_item_factor = 1.0
        self.pending_break_seconds = 0
        self.completed: list[LiveStep] = []
        self.applied: list[Adjustment] = []
        self.breaks_taken = 0

        self.started_at: datetime = self.clock.now()
        self.last_activity_at: datetime = self.started_at
        self.closed = False

        self.inbox: asyncio.Queue = asyncio.Queue()
        self.feedback = FeedbackLoop(
            session_id=self.session_id,
            inbox=self.inbox,
            assessor=assessor,
            clock=self.clock,
            config=feedback_config,
            rng=rng,
        )
        self._applier: asyncio.Task | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Attach the feedback loop and start draining adjustments."""
        self.feedback.start()
        if self._applier is None:
            self._applier = asyncio.create_task(self._drain_inbox(), name=f"controller-{self.session_id}")
        logger.info(f"Session {self.session_id} opened for {self.user_id} ({len(self.steps)} steps)")

    async def stop(self) -> None:
        """Stop the loop, apply anything already issued, stop draining. Idempotent."""
        if self.closed:
            return
        self.closed = True
        await self.feedback.stop()
        if self._applier is not None and not self._applier.done():
            await self.inbox.put(None)
            await self._applier

    def touch(self) -> None:
        self.last_activity_at = self.clock.now()

    def idle_seconds(self, now: datetime) -> float:
        return (now - self.last_activity_at).total_seconds()

    def _ensure_open(self) -> None:
        if self.closed:
            raise InvalidState(self.session_id, "session closed")

    # =========================================================================
    # Samples and adjustments
    # =========================================================================

    async def submit_sample(self, raw: Any) -> list[Adjustment]:
        """Forward a sample to the loop and wait until its adjustments are applied."""
        self._ensure_open()
        self.touch()
        adjustments = await self.feedback.submit(raw)
        await self.inbox.join()
        return adjustments

    async def _drain_inbox(self) -> None:
        while True:
            adjustment = await self.inbox.get()
            try:
                if adjustment is None:
                    return
                self.apply(adjustment)
                self.feedback.acknowledge(adjustment.kind)
            finally:
                self.inbox.task_done()

    def apply(self, adjustment: Adjustment) -> None:
        """Mutate the live queue for one adjustment."""
        params = adjustment.parameters
        if adjustment.kind is AdjustmentKind.STRESS_BREAK:
            self.pending_break_seconds = max(self.pending_break_seconds, int(params.get("break_seconds", 300)))
        elif adjustment.kind is AdjustmentKind.REDUCE_COGNITIVE_LOAD:
            self.difficulty_offset = max(
                MIN_DIFFICULTY_OFFSET,
                round(self.difficulty_offset + float(params.get("difficulty_delta", -0.2)), 4),
            )
            factor = float(params.get("new_item_factor", 0.5))
            self.new_item_factor *= factor
            self._shrink_new_items(factor)
        elif adjustment.kind is AdjustmentKind.ENGAGEMENT_BOOST:
            element = LiveStep(
                kind=StepKind.GAMIFIED,
                seconds=60,
                detail={"element": params.get("element")},
            )
            self.steps.insert(min(1, len(self.steps)), element)
        self.applied.append(adjustment)
        logger.debug(f"Session {self.session_id}: applied {adjustment.kind.value}")

    def _shrink_new_items(self, factor: float) -> None:
        """Keep only ``factor`` of the new items after the current step."""
        head, rest = self.steps[:1], self.steps[1:]
        new_steps = [s for s in rest if s.kind is StepKind.NEW]
        keep = math.floor(len(new_steps) * factor)
        dropped = {s.content_id for s in new_steps[keep:]}
        if not dropped:
            return

        remaining = []
        for step in rest:
            if step.kind is StepKind.NEW and step.content_id in dropped:
                continue
            if step.kind is StepKind.CONSOLIDATION:
                ids = [c for c in step.detail.get("content_ids", []) if c not in dropped]
                if not ids:
                    continue
                step.detail["content_ids"] = ids
            remaining.append(step)
        self.steps = head + remaining
        logger.debug(f"Session {self.session_id}: dropped {len(dropped)} new items")

    # =========================================================================
    # Progress
    # =========================================================================

    def current_step(self) -> LiveStep | None:
        self._ensure_open()
        return self.steps[0] if self.steps else None

    def current_difficulty(self) -> float | None:
        """Planned difficulty of the current step after load adjustments, or None off-content."""
        step = self.current_step()
        if step is None or "difficulty" not in step.detail:
            return None
        return max(0.0, round(step.detail["difficulty"] + self.difficulty_offset, 4))

    def advance(self) -> LiveStep | None:
        """
        Finish the current step (an item boundary) and return the next one.

        A pending stress break is inserted here, never in the middle of an item.
        """
        self._ensure_open()
        self.touch()
        if self.steps:
            finished = self.steps.pop(0)
            self.completed.append(finished)
            if finished.kind is StepKind.BREAK:
                self.breaks_taken += 1
        if self.pending_break_seconds:
            self.steps.insert(
                0,
                LiveStep(kind=StepKind.BREAK, seconds=self.pending_break_seconds, detail={"reason": "stress"}),
            )
            self.pending_break_seconds = 0
        return self.steps[0] if self.steps else None

    @property
    def items_completed(self) -> int:
        return sum(1 for step in self.completed if step.is_content)

    def study_seconds(self, end: datetime) -> int:
        return max(0, int((end - self.started_at).total_seconds()))
