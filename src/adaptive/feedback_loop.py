"""
Real-time Feedback Loop.

One loop per live session. It subscribes to the session's sample stream,
reassesses the learner's BrainState on every sample and emits
Adjustments to the session controller's inbox:

- stress > 0.7          -> STRESS_BREAK (5 min, at the next item boundary)
- cognitive_load > 0.8  -> REDUCE_COGNITIVE_LOAD (difficulty -0.2, half the new items)
- engagement < 0.4      -> ENGAGEMENT_BOOST (one gamified element)

The loop never touches the live plan; the controller owns it. Malformed
samples are logged and skipped so sensor noise cannot end a session.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from loguru import logger

from src.adaptive.adjustments import Adjustment, AdjustmentKind, CooldownTracker
from src.adaptive.brain_state import BiometricSample, BrainState, BrainStateAssessor, missing_signals
from src.core.clock import Clock, SystemClock
from src.core.exceptions import InvalidState

GAMIFIED_ELEMENTS = ("achievement_unlock", "social_challenge", "streak_bonus", "timed_challenge")

_STOP = object()


@dataclass(frozen=True)
class FeedbackConfig:
    """Trigger thresholds and adjustment parameters."""

    stress_trigger: float = 0.7
    cognitive_load_trigger: float = 0.8
    engagement_trigger: float = 0.4
    cooldown_seconds: int = 10 * 60
    stress_break_seconds: int = 5 * 60
    difficulty_step: float = -0.2
    new_item_reduction: float = 0.5
    gamified_elements: tuple[str, ...] = GAMIFIED_ELEMENTS

    @classmethod
    def from_settings(cls, settings) -> FeedbackConfig:
        return cls(
            stress_trigger=settings.stress_trigger,
            cognitive_load_trigger=settings.cognitive_load_trigger,
            engagement_trigger=settings.engagement_trigger,
            cooldown_seconds=settings.adjustment_cooldown_seconds,
            stress_break_seconds=settings.stress_break_seconds,
            difficulty_step=settings.difficulty_step,
            new_item_reduction=settings.new_item_reduction,
        )


class FeedbackLoop:
    """
    Long-lived consumer of one session's biometric stream.

    Args:
        session_id: Session this loop is attached to
        inbox: The controller's adjustment channel
        assessor: Signal -> BrainState mapping
        clock: Arrival time source for cooldowns (``captured_at`` is never trusted for timing)
        config: Thresholds and parameters
        rng: Seedable source for gamified element selection
    """

    def __init__(
        self,
        session_id: str,
        inbox: asyncio.Queue,
        assessor: BrainStateAssessor | None = None,
        clock: Clock | None = None,
        config: FeedbackConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.session_id = session_id
        self.inbox = inbox
        self.assessor = assessor or BrainStateAssessor()
        self.clock = clock or SystemClock()
        self.config = config or FeedbackConfig()
        self.rng = rng or random.Random()

        self.stream: asyncio.Queue = asyncio.Queue()
        self.cooldowns = CooldownTracker(timedelta(seconds=self.config.cooldown_seconds))
        self.last_state: BrainState | None = None
        self.samples_processed = 0
        self.samples_skipped = 0

        self._task: asyncio.Task | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        if self._task is None and not self._stopped:
            self._task = asyncio.create_task(self.run(), name=f"feedback-{self.session_id}")

    # =========================================================================
    # Stream
    # =========================================================================

    async def submit(self, raw: Any) -> list[Adjustment]:
        """
        Push one sample onto the stream and wait for its adjustments.

        Raises:
            InvalidState: if the loop has been stopped
        """
        if self._stopped or (self._task is not None and self._task.done()):
            raise InvalidState(self.session_id, "feedback loop stopped")
        self.start()
        reply = asyncio.get_running_loop().create_future()
        await self.stream.put((raw, reply))
        return await reply

    async def run(self) -> None:
        """Consume samples until stopped."""
        logger.debug(f"Feedback loop attached to session {self.session_id}")
        while True:
            envelope = await self.stream.get()
            if envelope is _STOP:
                break
            raw, reply = envelope
            try:
                adjustments = self.process(raw)
            except Exception as e:
                # One bad sample must not end the stream
                self.samples_skipped += 1
                logger.warning(f"Session {self.session_id}: skipping malformed sample ({e.__class__.__name__}: {e})")
                adjustments = []

            for adjustment in adjustments:
                await self.inbox.put(adjustment)
            if not reply.done():
                reply.set_result(adjustments)
        logger.debug(f"Feedback loop detached from session {self.session_id}")

    # =========================================================================
    # Rules
    # =========================================================================

    def process(self, raw: Any) -> list[Adjustment]:
        """Assess one sample and return the adjustments it fires."""
        sample = BiometricSample.parse(raw)
        # Cooldowns run on arrival time; client timestamps may be skewed
        now = self.clock.now()
        state = self.assessor.assess(sample)
        self.last_state = state
        self.samples_processed += 1

        missing = missing_signals(sample)
        if missing:
            logger.debug(f"Session {self.session_id}: neutral defaults for {', '.join(missing)}")

        cfg = self.config
        candidates: list[tuple[AdjustmentKind, dict[str, Any]]] = []
        if state.stress > cfg.stress_trigger:
            candidates.append((
                AdjustmentKind.STRESS_BREAK,
                {
                    "action": "introduce_relaxation_break",
                    "break_seconds": cfg.stress_break_seconds,
                    "preemptive": False,
                    "stress": state.stress,
                },
            ))
        if state.cognitive_load > cfg.cognitive_load_trigger:
            candidates.append((
                AdjustmentKind.REDUCE_COGNITIVE_LOAD,
                {
                    "action": "simplify_content",
                    "difficulty_delta": cfg.difficulty_step,
                    "new_item_factor": cfg.new_item_reduction,
                    "cognitive_load": state.cognitive_load,
                },
            ))
        if state.engagement < cfg.engagement_trigger:
            candidates.append((
                AdjustmentKind.ENGAGEMENT_BOOST,
                {
                    "action": "introduce_gamification",
                    "element": self.rng.choice(cfg.gamified_elements),
                    "engagement": state.engagement,
                },
            ))

        emitted = []
        for kind, parameters in candidates:
            if not self.cooldowns.can_fire(kind, now):
                logger.debug(f"Session {self.session_id}: {kind.value} suppressed (cooldown)")
                continue
            until = self.cooldowns.trigger(kind, now)
            emitted.append(
                Adjustment(
                    kind=kind,
                    session_id=self.session_id,
                    issued_at=now,
                    cooldown_until=until,
                    parameters=parameters,
                )
            )
            logger.info(f"Session {self.session_id}: {kind.value} issued")
        return emitted

    def acknowledge(self, kind: AdjustmentKind) -> None:
        """Controller confirmation that an adjustment was applied."""
        self.cooldowns.acknowledge(kind)

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def stop(self) -> None:
        """Detach from the stream and cancel cooldowns. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True
        if self._task is not None and not self._task.done():
            await self.stream.put(_STOP)
            await self._task
        self.cooldowns.reset()
