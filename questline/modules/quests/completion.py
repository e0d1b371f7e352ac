"""
Quest Lifecycle Manager
=======================

Purpose
-------
Completes quests and delivers their rewards.

Completion contract
-------------------
1. The completion mark is committed first (version-checked).
2. Rewards are sent through the RewardDistributor with the keys
   ``"{learner_id}:{quest_id}:{index}"``.
3. On full success ``rewards_distributed_at`` is recorded.
4. Learning quests re-evaluate streak milestones.

A failed grant raises ``PartialRewardFailureError`` without un-completing
the quest; ``retry_quest_rewards`` re-sends the whole list with the same
keys while ``rewards_distributed_at`` is unset.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from questline.core.database.base import utc_now
from questline.core.database.service import DatabaseService
from questline.database.models.enums import QuestCategory
from questline.modules.quests.models import Quest
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import InvalidStateError, NotFoundError, PartialRewardFailureError

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.config.manager import ConfigManager
    from questline.core.database.retry_policy import DatabaseRetryPolicy
    from questline.core.event.bus import EventBus
    from questline.modules.quests.lifecycle import QuestLifecycleStore
    from questline.modules.rewards.distributor import RewardDistributor
    from questline.modules.shared.collaborators import Clock
    from questline.modules.streaks.service import StreakTracker


class QuestLifecycleManager(BaseService):
    """
    Public Methods
    --------------
    - complete_quest() -> Mark a quest completed and distribute its rewards
    - finalize_completion() -> Rewards and streak checkpoint for a committed completion
    - retry_quest_rewards() -> Re-send rewards that failed to distribute
    """

    def __init__(
        self,
        store: QuestLifecycleStore,
        reward_distributor: RewardDistributor,
        streak_tracker: StreakTracker,
        retry_policy: DatabaseRetryPolicy,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._rewards = reward_distributor
        self._streaks = streak_tracker
        self._retry = retry_policy
        self._clock = clock

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def complete_quest(self, learner_id: str, quest_id: str) -> Quest:
        """
        Complete a quest directly.

        Objectives not yet at target are filled to target so a completed
        quest always has every objective completed.

        Raises:
            NotFoundError: No such quest assigned to the learner
            InvalidStateError: Already completed or expired
            PartialRewardFailureError: Completion committed, some grants failed
        """
        self.validate_learner_id(learner_id)

        async def operation() -> Quest:
            now = self._clock()
            async with DatabaseService.get_transaction() as session:
                assignment = await self._store.get_assignment(session, learner_id, quest_id, for_update=True)
                if assignment is None:
                    raise NotFoundError("Quest", quest_id)
                if assignment.completed:
                    raise InvalidStateError("complete_quest", "quest is already completed", quest_id=quest_id)
                if assignment.expires_at < now:
                    raise InvalidStateError(
                        "complete_quest",
                        "quest has expired",
                        quest_id=quest_id,
                        expires_at=assignment.expires_at.isoformat(),
                    )

                objectives = self._store.objectives_of(assignment)
                for objective in objectives:
                    objective.current_value = max(objective.current_value, objective.target_value)
                    objective.completed = True
                self._store.save_objectives(assignment, objectives)
                self._store.mark_completed(assignment, now)
                await session.flush()
                return self._store.to_domain(assignment)

        quest = await self._retry.execute(
            operation,
            operation_name="quest.complete",
            context={"learner_id": learner_id, "quest_id": quest_id},
        )
        await self.finalize_completion(learner_id, quest)
        return quest

    async def finalize_completion(self, learner_id: str, quest: Quest) -> None:
        """
        Run the post-commit half of a completion.

        Raises:
            PartialRewardFailureError: Some reward or milestone grants failed
        """
        self.log_operation(
            "quest.complete",
            learner_id=learner_id,
            quest_id=quest.id,
            template_id=quest.template_id,
            category=quest.category.value,
        )
        await self.emit_event(
            "quest.completed",
            {
                "learner_id": learner_id,
                "quest_id": quest.id,
                "template_id": quest.template_id,
                "cadence": quest.cadence.value,
                "category": quest.category.value,
            },
        )

        failure: Optional[PartialRewardFailureError] = None
        try:
            await self._distribute(learner_id, quest)
        except PartialRewardFailureError as exc:
            failure = exc

        if quest.category is QuestCategory.LEARNING:
            try:
                await self._streaks.resolve_milestones(learner_id)
            except PartialRewardFailureError as exc:
                failure = exc if failure is None else failure.merge(exc)

        if failure is not None:
            raise failure

    async def retry_quest_rewards(self, learner_id: str, quest_id: str) -> bool:
        """
        Re-send the rewards of a completed quest that did not finish
        distributing.

        Returns False when there was nothing left to send.

        Raises:
            NotFoundError: No such quest assigned to the learner
            InvalidStateError: The quest is not completed
            PartialRewardFailureError: Some grants failed again
        """
        self.validate_learner_id(learner_id)

        async with DatabaseService.get_session() as session:
            assignment = await self._store.get_assignment(session, learner_id, quest_id)
            if assignment is None:
                raise NotFoundError("Quest", quest_id)
            if not assignment.completed:
                raise InvalidStateError("retry_quest_rewards", "quest is not completed", quest_id=quest_id)
            if assignment.rewards_distributed_at is not None:
                return False
            quest = self._store.to_domain(assignment)

        self.log_operation("quest.retry_rewards", learner_id=learner_id, quest_id=quest_id)
        await self._distribute(learner_id, quest)
        return True

    # ========================================================================
    # Internals
    # ========================================================================

    async def _distribute(self, learner_id: str, quest: Quest) -> None:
        result = await self._rewards.distribute(learner_id, quest.rewards, source=quest.id)

        async def operation() -> None:
            async with DatabaseService.get_transaction() as session:
                assignment = await self._store.get_assignment(session, learner_id, quest.id, for_update=True)
                if assignment is not None and assignment.rewards_distributed_at is None:
                    self._store.mark_rewards_distributed(assignment, self._clock())

        await self._retry.execute(
            operation,
            operation_name="quest.mark_rewards_distributed",
            context={"learner_id": learner_id, "quest_id": quest.id},
        )

        await self.emit_event(
            "quest.rewards_distributed",
            {
                "learner_id": learner_id,
                "quest_id": quest.id,
                "granted": result.granted,
                "skipped": list(result.skipped),
            },
        )
