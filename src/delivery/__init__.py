"""
Delivery: per-learner review state.

Components:
- MemoryItemScheduler: SM-2 spaced repetition transitions
- ProfileStore: Single-writer store of learner profiles
"""

from .profile_store import (
    ProfileChange,
    ProfileStore,
    ProgressSummary,
    UserProfile,
    proficiency_for,
    progress_percentage,
)
from .scheduler import MemoryItem, MemoryItemScheduler, SM2Config

__all__ = [
    # Scheduling
    "MemoryItem",
    "MemoryItemScheduler",
    "SM2Config",
    # Persistence
    "ProfileStore",
    "ProfileChange",
    "ProgressSummary",
    "UserProfile",
    "proficiency_for",
    "progress_percentage",
]
