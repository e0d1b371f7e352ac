"""
UserQuest: assignment of a quest to a learner with objective state.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from questline.core.database.base import Base, IdMixin, JSONDocument, UTCDateTime, utc_now
from questline.database.models.progression.quest import Quest


class UserQuest(Base, IdMixin):
    """
    One row per learner per template per cadence period.

    - ``period_key`` is the ISO date (daily) or ISO week (weekly) the quest
      was issued in; the unique constraint makes generation idempotent.
    - ``objectives`` is the serialized objective state list.
    - ``expires_at`` mirrors ``Quest.expires_at`` for active-quest scans.
    - ``version`` is the optimistic lock checked on every update.
    """

    __tablename__ = "user_quests"
    __table_args__ = (
        UniqueConstraint("learner_id", "template_id", "period_key", name="uq_user_quests_learner_template_period"),
        Index("ix_user_quests_learner_active", "learner_id", "completed", "expires_at"),
    )

    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    quest_id: Mapped[str] = mapped_column(
        String(200),
        ForeignKey("quests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    cadence: Mapped[str] = mapped_column(String(16), nullable=False)
    period_key: Mapped[str] = mapped_column(String(16), nullable=False)

    objectives: Mapped[List[Dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    rewards_distributed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic locking version",
    )

    quest: Mapped[Quest] = relationship(Quest, lazy="joined", innerjoin=True)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<UserQuest(learner={self.learner_id!r}, quest={self.quest_id!r}, "
            f"completed={self.completed}, version={self.version})>"
        )
