"""
Learning Engine.

Main orchestration layer and the surface consumed by the CLI (or any
other thin API/UI layer):

- record_review            -> ProgressSummary
- request_session_plan     -> SessionPlan
- open_session             -> session id
- submit_biometric_sample  -> list[Adjustment]
- complete_item            -> next LiveStep
- close_session            -> SessionSummary

Review flow: MemoryItemScheduler -> ProfileStore (serialized per learner)
-> AchievementEngine (observer).
"""
from __future__ import annotations

import asyncio
import random
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from loguru import logger

from config import Settings, get_settings
from src.adaptive.adjustments import Adjustment
from src.adaptive.brain_state import BiometricSample, BrainState, BrainStateAssessor, missing_signals
from src.adaptive.content_catalog import ContentCatalog, InMemoryContentCatalog
from src.adaptive.feedback_loop import FeedbackConfig
from src.adaptive.live_session import LiveSession, LiveStep, SessionSummary, StepKind
from src.adaptive.recommendations import recommendations_for
from src.adaptive.session_planner import PlannerConfig, SessionPlan, SessionPlanner
from src.adaptive.tables import AgeGroup
from src.core.clock import Clock, SystemClock
from src.core.exceptions import InvalidInput, InvalidState
from src.delivery.profile_store import (
    ProfileStore,
    ProgressSummary,
    UserProfile,
    progress_percentage,
)
from src.delivery.scheduler import MemoryItemScheduler, SM2Config
from src.learning.achievements import AchievementEngine


class LearningEngine:
    """
    Adaptive review-scheduling engine.

    Args:
        catalog: Content collaborator (defaults to an empty in-memory curriculum)
        settings: Configuration (defaults to cached environment settings)
        clock: Time source
        rng: Seedable randomness shared by the feedback loops
        achievements: Achievement definitions
        curriculum: Content ids for the default in-memory catalog
    """

    def __init__(
        self,
        catalog: ContentCatalog | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        achievements: AchievementEngine | None = None,
        curriculum: Iterable[str] | None = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random(self.settings.random_seed)

        self.scheduler = MemoryItemScheduler(SM2Config.from_settings(self.settings))
        self.achievements = achievements or AchievementEngine()
        self.profiles = ProfileStore(self.scheduler, observer=self.achievements.evaluate)
        self.catalog = catalog or InMemoryContentCatalog(curriculum or [], self.profiles)
        self.assessor = BrainStateAssessor()
        self.planner = SessionPlanner(self.catalog, PlannerConfig.from_settings(self.settings))
        self.feedback_config = FeedbackConfig.from_settings(self.settings)

        self._sessions: dict[str, LiveSession] = {}
        self._closed: dict[str, SessionSummary] = {}
        self._closing: dict[str, asyncio.Future] = {}
        self._last_states: dict[str, BrainState] = {}
        self._watchdog: asyncio.Task | None = None

    # =========================================================================
    # Profiles and reviews
    # =========================================================================

    async def create_profile(self, user_id: str, age_group: str | None = None) -> UserProfile:
        """
        Create (or fetch) a learner profile.

        Raises:
            InvalidInput: unknown age group
        """
        if age_group is not None and age_group not in {g.value for g in AgeGroup}:
            raise InvalidInput(f"Unknown age group {age_group!r}")
        return await self.profiles.get_or_create(user_id, self.clock.now(), age_group=age_group)

    async def record_review(
        self,
        user_id: str,
        content_id: str,
        performance_score: float,
    ) -> ProgressSummary:
        """
        Record one review for a learner.

        Raises:
            NotFound: no profile for ``user_id``
            InvalidInput: score outside 0-5
        """
        now = self.clock.now()
        change = await self.profiles.record_review(user_id, content_id, performance_score, now)
        return self._summarize(change.after, change.item, now, change.new_achievements)

    def get_progress(self, user_id: str) -> dict[str, Any]:
        """Aggregate progress for a learner (raises NotFound)."""
        now = self.clock.now()
        profile = self.profiles.snapshot(user_id)
        due_count = len(profile.due_items(now))
        weekly = self._weekly_progress(profile, now)
        return {
            "user_id": user_id,
            "proficiency_level": profile.proficiency_level,
            "progress_percentage": progress_percentage(profile.words_learned),
            "weekly_goal_progress": weekly,
            "words_learned": profile.words_learned,
            "total_study_time_seconds": profile.total_study_time_seconds,
            "due_count": due_count,
            "achievements": sorted(profile.unlocked_achievements),
            "recommendations": list(self._recommendations(user_id, due_count, weekly)),
        }

    def _weekly_progress(self, profile: UserProfile, now: datetime) -> float:
        goal = self.settings.weekly_goal_seconds
        if goal <= 0:
            return 1.0
        return round(min(1.0, profile.study_seconds_for_week(now) / goal), 3)

    def _recommendations(self, user_id: str, due_count: int, weekly: float) -> tuple[str, ...]:
        return recommendations_for(due_count, weekly, self._last_states.get(user_id))

    def _summarize(self, profile, item, now, new_achievements) -> ProgressSummary:
        due_count = len(profile.due_items(now))
        weekly = self._weekly_progress(profile, now)
        return ProgressSummary(
            user_id=profile.user_id,
            item=item,
            proficiency_level=profile.proficiency_level,
            progress_percentage=progress_percentage(profile.words_learned),
            weekly_goal_progress=weekly,
            words_learned=profile.words_learned,
            due_count=due_count,
            new_achievements=new_achievements,
            recommendations=self._recommendations(profile.user_id, due_count, weekly),
        )

    # =========================================================================
    # Planning
    # =========================================================================

    def assess(self, context_signals: Any) -> BrainState:
        """BrainState from context signals; anything unusable degrades to neutral."""
        try:
            sample = BiometricSample.parse(context_signals)
        except (ValueError, TypeError):
            logger.warning("Context signals unreadable, assuming neutral brain state")
            return BrainState()
        missing = missing_signals(sample)
        if missing:
            logger.warning(f"Data quality: missing {', '.join(missing)}; using neutral defaults")
        return self.assessor.assess(sample)

    async def request_session_plan(
        self,
        user_id: str,
        current_time: datetime | None = None,
        context_signals: Any = None,
        local_hour: int | None = None,
    ) -> SessionPlan:
        """
        Build a plan, creating the learner's profile on first contact.

        ``local_hour`` defaults to the hour of ``current_time``, which should
        be expressed in the learner's timezone.
        """
        now = current_time or self.clock.now()
        await self.profiles.get_or_create(user_id, now)
        snapshot = self.profiles.snapshot(user_id)
        brain_state = self.assess(context_signals)
        self._last_states[user_id] = brain_state
        hour = now.hour if local_hour is None else local_hour
        return await self.planner.build_plan(snapshot, brain_state, hour, now)

    # =========================================================================
    # Live sessions
    # =========================================================================

    async def open_session(self, plan: SessionPlan) -> str:
        await self.profiles.get_or_create(plan.user_id, self.clock.now())
        session = LiveSession(
            plan,
            clock=self.clock,
            assessor=self.assessor,
            feedback_config=self.feedback_config,
            rng=self.rng,
            break_every_seconds=self.settings.break_every_seconds,
        )
        self._sessions[session.session_id] = session
        session.start()
        return session.session_id

    def _live(self, session_id: str) -> LiveSession:
        session = self._sessions.get(session_id)
        if session is None:
            if session_id in self._closed:
                raise InvalidState(session_id, "session closed")
            raise InvalidState(session_id)
        return session

    def get_session(self, session_id: str) -> LiveSession:
        """The live controller (raises InvalidState when closed or unknown)."""
        return self._live(session_id)

    async def submit_biometric_sample(self, session_id: str, sample: Any) -> list[Adjustment]:
        session = self._live(session_id)
        adjustments = await session.submit_sample(sample)
        if session.feedback.last_state is not None:
            self._last_states[session.user_id] = session.feedback.last_state
        return adjustments

    def current_step(self, session_id: str) -> LiveStep | None:
        return self._live(session_id).current_step()

    async def complete_item(
        self,
        session_id: str,
        performance_score: float | None = None,
        is_correct: bool | None = None,
        response_ms: float | None = None,
    ) -> LiveStep | None:
        """
        Finish the current step and return the next one.

        Content steps need a performance score, which is recorded through
        the scheduler before the session advances. A timed answer
        (``is_correct`` plus ``response_ms``) is graded into a score when
        none is given.
        """
        session = self._live(session_id)
        step = session.current_step()
        if performance_score is None and is_correct is not None:
            if response_ms is None:
                raise InvalidInput("A timed answer needs response_ms")
            performance_score = self.scheduler.grade_from_response(
                is_correct, response_ms, self.settings.expected_response_ms
            )
        if step is not None and step.is_content:
            if performance_score is None:
                raise InvalidInput(f"Step {step.content_id} needs a performance score")
            await self.profiles.record_review(
                session.user_id, step.content_id, performance_score, self.clock.now()
            )
        elif step is not None and step.kind is StepKind.CONSOLIDATION and performance_score is not None:
            for content_id in step.detail.get("content_ids", []):
                await self.profiles.record_review(
                    session.user_id, content_id, performance_score, self.clock.now()
                )
        return session.advance()

    async def close_session(self, session_id: str, reason: str = "closed") -> SessionSummary:
        """
        Close a session and credit its study time. Closing twice is a no-op.

        Raises:
            InvalidState: unknown session id
        """
        if session_id in self._closed:
            return self._closed[session_id]
        if session_id in self._closing:
            return await self._closing[session_id]
        session = self._live(session_id)
        closing = asyncio.get_running_loop().create_future()
        self._closing[session_id] = closing
        try:
            summary = await self._finish(session, reason)
        except asyncio.CancelledError:
            closing.cancel()
            raise
        except Exception as e:
            # Concurrent closers see the real failure
            closing.set_exception(e)
            raise
        finally:
            del self._closing[session_id]
        closing.set_result(summary)
        return summary

    async def _finish(self, session: LiveSession, reason: str) -> SessionSummary:
        session_id = session.session_id
        del self._sessions[session_id]
        await session.stop()

        end = self.clock.now() if reason == "closed" else session.last_activity_at
        seconds = session.study_seconds(end)
        change = await self.profiles.add_study_time(session.user_id, seconds, end)

        summary = SessionSummary(
            session_id=session_id,
            user_id=session.user_id,
            reason=reason,
            items_completed=session.items_completed,
            study_seconds=seconds,
            breaks_taken=session.breaks_taken,
            adjustments=tuple(session.applied),
            new_achievements=change.new_achievements,
        )
        self._closed[session_id] = summary
        logger.info(
            f"Session {session_id} {reason}: {summary.items_completed} items, "
            f"{seconds}s, {len(summary.adjustments)} adjustments"
        )
        return summary

    async def expire_idle_sessions(self) -> list[SessionSummary]:
        """Close every session idle longer than the inactivity window."""
        now = self.clock.now()
        window = self.settings.session_inactivity_seconds
        idle = [sid for sid, s in self._sessions.items() if s.idle_seconds(now) >= window]
        return [await self.close_session(sid, reason="inactive") for sid in idle]

    @property
    def open_sessions(self) -> list[str]:
        return list(self._sessions)

    # =========================================================================
    # Watchdog
    # =========================================================================

    def start_watchdog(self) -> None:
        """Periodically close idle sessions."""
        if self._watchdog is None or self._watchdog.done():
            self._watchdog = asyncio.create_task(self._watch(), name="session-watchdog")

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self.settings.inactivity_check_seconds)
            expired = await self.expire_idle_sessions()
            if expired:
                logger.info(f"Watchdog closed {len(expired)} idle sessions")

    async def shutdown(self) -> None:
        """Stop the watchdog and close all open sessions."""
        if self._watchdog is not None:
            self._watchdog.cancel()
            try:
                await self._watchdog
            except asyncio.CancelledError:
                pass
            self._watchdog = None
        for session_id in list(self._sessions):
            await self.close_session(session_id)
