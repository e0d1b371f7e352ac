"""
Objective Progress Tracker
==========================

Applies one activity event to every active quest of a learner.

The whole read-modify-write runs in one transaction over rows read
``FOR UPDATE``; quests whose objectives all complete are marked completed in
the same transaction. A lost race on the ``version`` column re-runs the
transaction against fresh state, so concurrent increments are capped
against the committed value rather than lost or double-counted.

Reward distribution for the newly completed quests happens after commit
(see ``QuestLifecycleManager.finalize_completion``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List

from questline.core.database.base import utc_now
from questline.core.database.service import DatabaseService
from questline.modules.quests import objective_logic
from questline.modules.quests.models import ActivityPayload, ActivityType, Quest
from questline.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.config.manager import ConfigManager
    from questline.core.database.retry_policy import DatabaseRetryPolicy
    from questline.core.event.bus import EventBus
    from questline.modules.quests.lifecycle import QuestLifecycleStore
    from questline.modules.quests.objective_logic import ObjectiveUpdate
    from questline.modules.shared.collaborators import Clock


@dataclass
class ProgressOutcome:
    progressed: List[Quest] = field(default_factory=list)
    completed: List[Quest] = field(default_factory=list)
    updates: Dict[str, List[ObjectiveUpdate]] = field(default_factory=dict)


class ObjectiveProgressTracker(BaseService):
    def __init__(
        self,
        store: QuestLifecycleStore,
        retry_policy: DatabaseRetryPolicy,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._retry = retry_policy
        self._clock = clock

    async def apply(
        self,
        learner_id: str,
        activity_type: ActivityType,
        payload: ActivityPayload,
    ) -> ProgressOutcome:
        """
        Advance matching objectives on the learner's active quests.

        Returns the quests that progressed and the subset that completed in
        this call.

        Raises:
            ConcurrencyConflictError: Version conflicts outlasted the retry budget
            StoreUnavailableError: Persistence failure
        """

        async def operation() -> ProgressOutcome:
            outcome = ProgressOutcome()
            now = self._clock()

            async with DatabaseService.get_transaction() as session:
                assignments = await self._store.get_active(session, learner_id, now, for_update=True)

                for assignment in assignments:
                    objectives = self._store.objectives_of(assignment)
                    updates = objective_logic.apply_to_objectives(objectives, activity_type, payload)
                    if not updates:
                        continue

                    self._store.save_objectives(assignment, objectives)
                    quest = self._store.to_domain(assignment)

                    if quest.all_objectives_completed:
                        self._store.mark_completed(assignment, now)
                        quest.completed = True
                        quest.completed_at = now
                        outcome.completed.append(quest)

                    outcome.progressed.append(quest)
                    outcome.updates[quest.id] = updates

                await session.flush()

            return outcome

        outcome = await self._retry.execute(
            operation,
            operation_name="quest.apply_activity",
            context={"learner_id": learner_id, "activity_type": activity_type.value},
        )

        self.log_operation(
            "quest.apply_activity",
            learner_id=learner_id,
            activity_type=activity_type.value,
            subject_id=payload.subject_id,
            progressed=len(outcome.progressed),
            completed=len(outcome.completed),
        )

        for quest in outcome.progressed:
            await self.emit_event(
                "quest.progressed",
                {
                    "learner_id": learner_id,
                    "quest_id": quest.id,
                    "template_id": quest.template_id,
                    "progress_percentage": quest.progress_percentage,
                    "objectives": [
                        {
                            "objective_id": u.objective_id,
                            "previous_value": u.previous_value,
                            "new_value": u.new_value,
                            "completed": u.completed_now,
                        }
                        for u in outcome.updates[quest.id]
                    ],
                },
            )

        return outcome
