"""
Personalized Recommendations.

Short, stable recommendation ids a frontend can render however it likes.
Derived from the review backlog, weekly goal progress and the learner's
most recent BrainState:

- review_backlog / review_due: due items are waiting
- learn_new_words: nothing is due and the learner has headroom
- take_break: stress is high
- lighter_session: cognitive load is high
- try_gamified_practice: engagement is low
- reach_weekly_goal: the weekly study goal is not met yet
"""
from __future__ import annotations

from src.adaptive.brain_state import BrainState
from src.adaptive.tables import Level

BACKLOG_THRESHOLD = 20


def recommendations_for(
    due_count: int,
    weekly_goal_progress: float,
    brain_state: BrainState | None = None,
) -> tuple[str, ...]:
    """Recommendation ids in priority order; wellbeing before workload."""
    state = brain_state or BrainState()
    recommendations = []

    if state.stress_level is Level.HIGH:
        recommendations.append("take_break")
    if state.cognitive_load_level is Level.HIGH:
        recommendations.append("lighter_session")
    if state.engagement_level is Level.LOW:
        recommendations.append("try_gamified_practice")

    if due_count >= BACKLOG_THRESHOLD:
        recommendations.append("review_backlog")
    elif due_count > 0:
        recommendations.append("review_due")
    elif state.cognitive_load_level is not Level.HIGH:
        recommendations.append("learn_new_words")

    if weekly_goal_progress < 1.0:
        recommendations.append("reach_weekly_goal")
    return tuple(recommendations)
