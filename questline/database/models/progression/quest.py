"""
Quest: one materialized quest instance.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, JSONDocument, UTCDateTime, utc_now


class Quest(Base):
    """
    Immutable snapshot of a template at generation time.

    ``objectives`` holds the objective definitions (id, type, subject filter,
    target) and ``rewards`` the reward list; per-learner progress lives on
    ``UserQuest``.
    """

    __tablename__ = "quests"
    __table_args__ = (
        Index("ix_quests_template_created", "template_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    template_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    cadence: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    world_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    subject_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    estimated_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    objectives: Mapped[List[Dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    rewards: Mapped[List[Dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Quest(id={self.id!r}, template={self.template_id!r}, cadence={self.cadence!r})>"
