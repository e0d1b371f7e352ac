"""
Database Model Enums
====================

Categorical values persisted by the quest engine. Service layers import
these rather than repeating the string literals.
"""

from __future__ import annotations

import enum


class Cadence(str, enum.Enum):
    """Refresh period of a quest."""

    DAILY = "daily"
    WEEKLY = "weekly"


class QuestCategory(str, enum.Enum):
    """Thematic category; learning quests double as streak checkpoints."""

    LEARNING = "learning"
    SOCIAL = "social"
    ACHIEVEMENT = "achievement"


class ObjectiveType(str, enum.Enum):
    ANSWER_QUESTIONS = "answer_questions"
    COMPLETE_LESSONS = "complete_lessons"
    EARN_XP = "earn_xp"
    ACHIEVE_ACCURACY = "achieve_accuracy"
    MAINTAIN_STREAK = "maintain_streak"


class RewardType(str, enum.Enum):
    XP = "xp"
    STAT_POINTS = "stat_points"
    ITEM = "item"
    ACHIEVEMENT = "achievement"
