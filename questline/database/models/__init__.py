"""
Database Models Package
=======================

SQLAlchemy ORM models for the quest engine.

- Schema only, no business logic
- ``Mapped[]`` syntax with ``mapped_column()``
- Optimistic locking via ``version`` columns on mutable rows
- JSON documents (JSONB on PostgreSQL) for objective and reward state
"""

from questline.core.database.base import Base

from .progression import LearningStreak, Quest, UserQuest
from . import enums

__all__ = [
    "Base",
    "LearningStreak",
    "Quest",
    "UserQuest",
    "enums",
]
