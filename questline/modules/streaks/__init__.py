"""
Streaks Module
==============

Consecutive-day activity counter with one-time milestone rewards.
"""

from .models import LearningStreak, StreakReward
from .service import LearningStreakRepository, StreakTracker, streak_idempotency_key

__all__ = [
    "StreakTracker",
    "LearningStreakRepository",
    "LearningStreak",
    "StreakReward",
    "streak_idempotency_key",
]
