"""
Quest Lifecycle Store
=====================

Owns the persisted quest instances (``quests``) and per-learner assignments
(``user_quests``).

States
------
generated -> active -> completed (terminal)
                    -> expired   (terminal; ``expires_at < now`` and not
                                  completed, enforced by the active filter)

All methods take the caller's session; transactions belong to the
services.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Sequence, Set

from sqlalchemy import select

from questline.database.models.enums import Cadence
from questline.database.models.progression.quest import Quest as QuestRow
from questline.database.models.progression.user_quest import UserQuest
from questline.modules.quests.models import Quest, QuestObjective
from questline.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession


class QuestRepository(BaseRepository[QuestRow]):
    """Repository for the quests table."""

    pass


class UserQuestRepository(BaseRepository[UserQuest]):
    async def find_active(
        self,
        session: AsyncSession,
        learner_id: str,
        now: datetime,
        cadence: Optional[Cadence] = None,
        *,
        for_update: bool = False,
    ) -> List[UserQuest]:
        conditions = [
            UserQuest.learner_id == learner_id,
            UserQuest.completed.is_(False),
            UserQuest.expires_at >= now,
        ]
        if cadence is not None:
            conditions.append(UserQuest.cadence == cadence.value)
        return await self.find_many_where(
            session,
            *conditions,
            for_update=for_update,
            order_by=[UserQuest.started_at, UserQuest.id],
        )

    async def find_for_learner(
        self,
        session: AsyncSession,
        learner_id: str,
        quest_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[UserQuest]:
        return await self.find_one_where(
            session,
            UserQuest.learner_id == learner_id,
            UserQuest.quest_id == quest_id,
            for_update=for_update,
        )


class QuestLifecycleStore:
    """Active-quest lookup, objective persistence and completion marking."""

    def __init__(self, logger: Logger) -> None:
        self.log = logger
        self.quests = QuestRepository(QuestRow, logger)
        self.user_quests = UserQuestRepository(UserQuest, logger)

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_active(
        self,
        session: AsyncSession,
        learner_id: str,
        now: datetime,
        cadence: Optional[Cadence] = None,
        *,
        for_update: bool = False,
    ) -> List[UserQuest]:
        return await self.user_quests.find_active(session, learner_id, now, cadence, for_update=for_update)

    async def get_assignment(
        self,
        session: AsyncSession,
        learner_id: str,
        quest_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[UserQuest]:
        return await self.user_quests.find_for_learner(session, learner_id, quest_id, for_update=for_update)

    async def assigned_template_ids(
        self,
        session: AsyncSession,
        learner_id: str,
        cadence: Cadence,
        period_key: str,
    ) -> Set[str]:
        """Templates already issued to the learner in this period, in any state."""
        result = await session.execute(
            select(UserQuest.template_id).where(
                UserQuest.learner_id == learner_id,
                UserQuest.cadence == cadence.value,
                UserQuest.period_key == period_key,
            )
        )
        return set(result.scalars().all())

    async def completed_template_ids(self, session: AsyncSession, learner_id: str) -> Set[str]:
        result = await session.execute(
            select(UserQuest.template_id)
            .where(UserQuest.learner_id == learner_id, UserQuest.completed.is_(True))
            .distinct()
        )
        return set(result.scalars().all())

    # ========================================================================
    # Writes
    # ========================================================================

    async def persist_new(
        self,
        session: AsyncSession,
        learner_id: str,
        quests: Sequence[Quest],
        period_key: str,
    ) -> List[UserQuest]:
        """
        Insert quest rows and their assignments.

        Flushes, so a concurrent duplicate assignment surfaces here as
        ``IntegrityError``.
        """
        quest_rows = [
            QuestRow(
                id=q.id,
                template_id=q.template_id,
                title=q.title,
                description=q.description,
                cadence=q.cadence.value,
                category=q.category.value,
                world_id=q.world_id,
                subject_id=q.subject_id,
                difficulty=q.difficulty,
                estimated_minutes=q.estimated_minutes,
                objectives=[o.definition() for o in q.objectives],
                rewards=[r.to_dict() for r in q.rewards],
                created_at=q.created_at,
                expires_at=q.expires_at,
            )
            for q in quests
        ]
        await self.quests.add_all(session, quest_rows)

        assignments = [
            UserQuest(
                learner_id=learner_id,
                quest=row,
                template_id=q.template_id,
                cadence=q.cadence.value,
                period_key=period_key,
                objectives=[o.to_state() for o in q.objectives],
                completed=False,
                started_at=q.created_at,
                expires_at=q.expires_at,
            )
            for q, row in zip(quests, quest_rows)
        ]
        await self.user_quests.add_all(session, assignments)
        return assignments

    @staticmethod
    def save_objectives(assignment: UserQuest, objectives: Sequence[QuestObjective]) -> None:
        # new list object so the JSON column is flagged dirty
        assignment.objectives = [o.to_state() for o in objectives]

    @staticmethod
    def mark_completed(assignment: UserQuest, now: datetime) -> None:
        assignment.completed = True
        assignment.completed_at = now

    @staticmethod
    def mark_rewards_distributed(assignment: UserQuest, now: datetime) -> None:
        assignment.rewards_distributed_at = now

    # ========================================================================
    # Mapping
    # ========================================================================

    @staticmethod
    def to_domain(assignment: UserQuest) -> Quest:
        return Quest.from_rows(assignment.quest, assignment)

    @staticmethod
    def objectives_of(assignment: UserQuest) -> List[QuestObjective]:
        return [QuestObjective.from_state(o) for o in (assignment.objectives or [])]
