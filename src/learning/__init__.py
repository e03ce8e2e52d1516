"""
Learning: milestone tracking.

- AchievementEngine: unlocks milestones from profile deltas
"""

from src.learning.achievements import DEFAULT_ACHIEVEMENTS, Achievement, AchievementEngine

__all__ = [
    "Achievement",
    "AchievementEngine",
    "DEFAULT_ACHIEVEMENTS",
]
