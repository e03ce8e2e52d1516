"""
Adaptive Learning Engine.

Turns learner history and live signals into scheduling and adjustment decisions.

Components:
- BrainStateAssessor: Normalizes biometric/contextual signals
- SessionPlanner: Builds immutable session plans
- FeedbackLoop: Emits session adjustments under cooldown control
- LiveSession: Owns and mutates the running plan
- LearningEngine: Main orchestration layer
"""
from src.adaptive.adjustments import Adjustment, AdjustmentKind, CooldownPhase, CooldownTracker
from src.adaptive.brain_state import (
    BiometricSample,
    BrainState,
    BrainStateAssessor,
    classify_cognitive_load,
    classify_engagement,
    classify_stress,
)
from src.adaptive.content_catalog import ContentCatalog, InMemoryContentCatalog
from src.adaptive.feedback_loop import FeedbackConfig, FeedbackLoop
from src.adaptive.learning_engine import LearningEngine
from src.adaptive.live_session import LiveSession, LiveStep, SessionSummary, StepKind
from src.adaptive.session_planner import (
    BreakInterval,
    ConsolidationActivity,
    PlannedItem,
    PlannerConfig,
    SessionPlan,
    SessionPlanner,
)
from src.adaptive.recommendations import recommendations_for
from src.adaptive.tables import AGE_FACTORS, COGNITIVE_LOAD_CAPS, TIME_OF_DAY, AgeGroup, Level, TimeOfDay

__all__ = [
    # Main engine
    "LearningEngine",
    # Component classes
    "BrainStateAssessor",
    "SessionPlanner",
    "FeedbackLoop",
    "LiveSession",
    "CooldownTracker",
    "InMemoryContentCatalog",
    "ContentCatalog",
    # Data models
    "Adjustment",
    "BiometricSample",
    "BrainState",
    "BreakInterval",
    "ConsolidationActivity",
    "FeedbackConfig",
    "LiveStep",
    "PlannedItem",
    "PlannerConfig",
    "SessionPlan",
    "SessionSummary",
    # Enums and tables
    "AdjustmentKind",
    "AgeGroup",
    "CooldownPhase",
    "Level",
    "StepKind",
    "TimeOfDay",
    "AGE_FACTORS",
    "COGNITIVE_LOAD_CAPS",
    "TIME_OF_DAY",
    # Classifiers
    "classify_cognitive_load",
    "classify_engagement",
    "classify_stress",
    "recommendations_for",
]
