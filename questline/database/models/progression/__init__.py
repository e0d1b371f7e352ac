"""
Progression domain ORM models.

Exports:
- LearningStreak
- Quest
- UserQuest
"""

from .learning_streak import LearningStreak
from .quest import Quest
from .user_quest import UserQuest

__all__ = [
    "LearningStreak",
    "Quest",
    "UserQuest",
]
