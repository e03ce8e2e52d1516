"""
Configuration settings for the Cadence scheduling engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every field can be overridden with a ``CADENCE_`` prefixed environment variable.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CADENCE_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum loguru level for the CLI sink",
    )

    # ========================================
    # SM-2 Scheduling
    # ========================================
    sm2_initial_easiness: float = Field(
        default=2.5,
        description="Easiness factor assigned on first exposure",
    )
    sm2_minimum_easiness: float = Field(
        default=1.3,
        description="Floor for the easiness factor",
    )
    sm2_first_interval_days: int = Field(
        default=1,
        description="Interval after the first successful recall",
    )
    sm2_second_interval_days: int = Field(
        default=6,
        description="Interval after the second successful recall",
    )

    # ========================================
    # Session Planning
    # ========================================
    review_item_seconds: int = Field(
        default=30,
        description="Estimated time spent on one review item",
    )
    new_item_seconds: int = Field(
        default=60,
        description="Estimated time spent introducing one new item",
    )
    break_every_seconds: int = Field(
        default=25 * 60,
        description="Active time between baseline breaks (pomodoro cadence)",
    )
    break_seconds: int = Field(
        default=5 * 60,
        description="Length of a baseline break",
    )
    consolidation_threshold_seconds: int = Field(
        default=20 * 60,
        description="Plans longer than this get a consolidation pass",
    )

    # ========================================
    # Feedback Loop
    # ========================================
    stress_trigger: float = Field(
        default=0.7,
        description="Stress above this fires a StressBreak",
    )
    cognitive_load_trigger: float = Field(
        default=0.8,
        description="Cognitive load above this fires ReduceCognitiveLoad",
    )
    engagement_trigger: float = Field(
        default=0.4,
        description="Engagement below this fires EngagementBoost",
    )
    adjustment_cooldown_seconds: int = Field(
        default=10 * 60,
        description="Per-kind cooldown before an adjustment may fire again",
    )
    stress_break_seconds: int = Field(
        default=5 * 60,
        description="Length of a stress-triggered break",
    )
    difficulty_step: float = Field(
        default=-0.2,
        description="Difficulty delta applied by ReduceCognitiveLoad",
    )
    new_item_reduction: float = Field(
        default=0.5,
        description="Fraction of remaining new items kept after ReduceCognitiveLoad",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for gamified element selection (None = nondeterministic)",
    )

    # ========================================
    # Live Sessions
    # ========================================
    session_inactivity_seconds: int = Field(
        default=30 * 60,
        description="Sessions idle longer than this are closed automatically",
    )
    inactivity_check_seconds: float = Field(
        default=60.0,
        description="How often the watchdog looks for idle sessions",
    )

    expected_response_ms: int = Field(
        default=10_000,
        description="Expected answer time when grading timed responses",
    )

    # ========================================
    # Progress
    # ========================================
    weekly_goal_seconds: int = Field(
        default=3 * 60 * 60,
        description="Weekly study-time goal used for weekly progress",
    )

    def get_scheduler_config(self) -> dict[str, float | int]:
        """Get SM-2 configuration as a dictionary."""
        return {
            "initial_easiness": self.sm2_initial_easiness,
            "minimum_easiness": self.sm2_minimum_easiness,
            "first_interval": self.sm2_first_interval_days,
            "second_interval": self.sm2_second_interval_days,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
