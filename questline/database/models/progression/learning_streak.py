"""
LearningStreak: consecutive-day activity counter per learner.
Schema only.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, JSONDocument, TimestampMixin


class LearningStreak(Base, TimestampMixin):
    """
    ``streak_rewards`` is an ordered list of
    ``{"streak_length", "reward_type", "reward_value", "bonus_multiplier", "claimed"}``
    records; a milestone appears at most once.
    """

    __tablename__ = "learning_streaks"

    learner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    streak_rewards: Mapped[List[Dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic locking version",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<LearningStreak(learner={self.learner_id!r}, current={self.current_streak}, "
            f"longest={self.longest_streak})>"
        )
