"""
Quest Engine
============

Facade consumed by the orchestration layer. Every mutating call for a
learner runs under that learner's lock; reads do not lock.

Public Methods
--------------
- generate_daily_quests() / generate_weekly_quests() -> Idempotent per period
- refresh_quests() -> Both cadences
- get_active_quests() -> Not completed, not expired
- apply_activity() -> Objective progress, completions, streak
- complete_quest() -> Direct completion
- retry_quest_rewards() -> Re-send undistributed rewards
- get_learning_streak() -> Streak or None

Usage
-----
>>> engine = build_engine(progress_provider, reward_sink)
>>> await engine.generate_daily_quests("learner-1")
>>> await engine.apply_activity("learner-1", "answer_question", {"subject_id": "mathematics", "correct_answers": 2})
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from questline.core.config.manager import ConfigManager
from questline.core.database.base import utc_now
from questline.core.database.retry_policy import DatabaseRetryPolicy
from questline.core.database.service import DatabaseService
from questline.core.event.bus import EventBus
from questline.core.locking.learner_lock import build_learner_lock
from questline.core.logging.logger import LogContext, get_logger
from questline.database.models.enums import Cadence
from questline.modules.quests.catalog import QuestTemplateCatalog
from questline.modules.quests.completion import QuestLifecycleManager
from questline.modules.quests.generator import QuestGenerator
from questline.modules.quests.lifecycle import QuestLifecycleStore
from questline.modules.quests.models import ActivityPayload, ActivityType, Quest
from questline.modules.quests.progress import ObjectiveProgressTracker
from questline.modules.rewards.distributor import RewardDistributor
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import PartialRewardFailureError, ValidationError
from questline.modules.streaks.models import LearningStreak
from questline.modules.streaks.service import StreakTracker

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.locking.learner_lock import LearnerLock
    from questline.modules.shared.collaborators import CharacterProgressProvider, Clock, RewardSink


class QuestEngine(BaseService):
    def __init__(
        self,
        catalog: QuestTemplateCatalog,
        generator: QuestGenerator,
        progress_tracker: ObjectiveProgressTracker,
        lifecycle: QuestLifecycleManager,
        streak_tracker: StreakTracker,
        store: QuestLifecycleStore,
        learner_lock: LearnerLock,
        config_manager: Any,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.catalog = catalog
        self._generator = generator
        self._progress = progress_tracker
        self._lifecycle = lifecycle
        self._streaks = streak_tracker
        self._store = store
        self._lock = learner_lock
        self._clock = clock

    # ========================================================================
    # Generation
    # ========================================================================

    async def _generate(self, learner_id: str, cadence: Cadence) -> List[Quest]:
        self.validate_learner_id(learner_id)
        operation = f"generate_{cadence.value}_quests"
        with LogContext(learner_id=learner_id, operation=operation, component="quest_engine"):
            async with self._lock.hold(learner_id, operation=operation):
                self.catalog.reload_if_changed()
                return await self._generator.generate(learner_id, cadence)

    async def generate_daily_quests(self, learner_id: str) -> List[Quest]:
        return await self._generate(learner_id, Cadence.DAILY)

    async def generate_weekly_quests(self, learner_id: str) -> List[Quest]:
        return await self._generate(learner_id, Cadence.WEEKLY)

    async def refresh_quests(self, learner_id: str) -> Dict[str, List[Quest]]:
        """Run daily and weekly generation; each is a no-op if a set is already active."""
        return {
            Cadence.DAILY.value: await self.generate_daily_quests(learner_id),
            Cadence.WEEKLY.value: await self.generate_weekly_quests(learner_id),
        }

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_active_quests(
        self,
        learner_id: str,
        cadence: Optional[Union[Cadence, str]] = None,
    ) -> List[Quest]:
        self.validate_learner_id(learner_id)
        if cadence is not None and not isinstance(cadence, Cadence):
            try:
                cadence = Cadence(cadence)
            except ValueError:
                raise ValidationError("cadence", f"unknown cadence {cadence!r}") from None

        async with DatabaseService.get_session() as session:
            rows = await self._store.get_active(session, learner_id, self._clock(), cadence)
            return [self._store.to_domain(r) for r in rows]

    async def get_learning_streak(self, learner_id: str) -> Optional[LearningStreak]:
        return await self._streaks.get_learning_streak(learner_id)

    # ========================================================================
    # Activity & completion
    # ========================================================================

    async def apply_activity(
        self,
        learner_id: str,
        activity_type: Union[ActivityType, str],
        payload: Union[ActivityPayload, Mapping[str, Any], None] = None,
    ) -> None:
        """
        Consume one activity event.

        Progress and completion marks commit first; rewards for completed
        quests and the streak update follow. Reward failures are collected
        and raised once everything else has run.

        Raises:
            ValidationError: Unknown activity type or bad learner id
            PartialRewardFailureError: Some grants failed; all state is committed
            ConcurrencyConflictError / StoreUnavailableError: Nothing after the
                failing step ran
        """
        self.validate_learner_id(learner_id)
        activity = self._coerce_activity(activity_type)
        if payload is None:
            payload = ActivityPayload()
        elif not isinstance(payload, ActivityPayload):
            payload = ActivityPayload.from_mapping(payload)

        with LogContext(learner_id=learner_id, operation="apply_activity", component="quest_engine"):
            async with self._lock.hold(learner_id, operation="apply_activity"):
                outcome = await self._progress.apply(learner_id, activity, payload)

                failure: Optional[PartialRewardFailureError] = None
                for quest in outcome.completed:
                    try:
                        await self._lifecycle.finalize_completion(learner_id, quest)
                    except PartialRewardFailureError as exc:
                        failure = exc if failure is None else failure.merge(exc)

                await self._streaks.touch(learner_id)
                try:
                    await self._streaks.resolve_milestones(learner_id)
                except PartialRewardFailureError as exc:
                    failure = exc if failure is None else failure.merge(exc)

                if failure is not None:
                    self.log.warning(
                        "Activity applied with reward failures",
                        extra={"learner_id": learner_id, "failed": len(failure.failures)},
                    )
                    raise failure

    async def complete_quest(self, learner_id: str, quest_id: str) -> Quest:
        with LogContext(learner_id=learner_id, operation="complete_quest", component="quest_engine"):
            async with self._lock.hold(learner_id, operation="complete_quest"):
                return await self._lifecycle.complete_quest(learner_id, quest_id)

    async def retry_quest_rewards(self, learner_id: str, quest_id: str) -> bool:
        with LogContext(learner_id=learner_id, operation="retry_quest_rewards", component="quest_engine"):
            async with self._lock.hold(learner_id, operation="retry_quest_rewards"):
                return await self._lifecycle.retry_quest_rewards(learner_id, quest_id)

    @staticmethod
    def _coerce_activity(activity_type: Union[ActivityType, str]) -> ActivityType:
        if isinstance(activity_type, ActivityType):
            return activity_type
        try:
            return ActivityType(activity_type)
        except ValueError:
            raise ValidationError("activity_type", f"unknown activity type {activity_type!r}") from None


def build_engine(
    progress_provider: CharacterProgressProvider,
    reward_sink: RewardSink,
    *,
    config_manager: Any = ConfigManager,
    event_bus: Optional[EventBus] = None,
    catalog: Optional[QuestTemplateCatalog] = None,
    learner_lock: Optional[LearnerLock] = None,
    retry_policy: Optional[DatabaseRetryPolicy] = None,
    clock: Clock = utc_now,
    rng: Optional[random.Random] = None,
) -> QuestEngine:
    """
    Wire a QuestEngine with default collaborators.

    ``DatabaseService`` must be initialized before the engine is used.
    """
    if event_bus is None:
        event_bus = EventBus(
            listener_timeout_seconds=float(config_manager.get("core.event.listener_timeout_seconds", 5.0))
        )
    catalog = catalog or QuestTemplateCatalog.from_config(config_manager)
    learner_lock = learner_lock or build_learner_lock()
    retry_policy = retry_policy or DatabaseRetryPolicy.from_config()

    store = QuestLifecycleStore(get_logger("questline.modules.quests.lifecycle.QuestLifecycleStore"))
    distributor = RewardDistributor(
        reward_sink,
        config_manager,
        event_bus,
        get_logger("questline.modules.rewards.RewardDistributor"),
    )
    streaks = StreakTracker(
        distributor,
        retry_policy,
        config_manager,
        event_bus,
        get_logger("questline.modules.streaks.StreakTracker"),
        clock=clock,
    )
    generator = QuestGenerator(
        catalog,
        progress_provider,
        store,
        config_manager,
        event_bus,
        get_logger("questline.modules.quests.QuestGenerator"),
        clock=clock,
        rng=rng,
    )
    progress = ObjectiveProgressTracker(
        store,
        retry_policy,
        config_manager,
        event_bus,
        get_logger("questline.modules.quests.ObjectiveProgressTracker"),
        clock=clock,
    )
    lifecycle = QuestLifecycleManager(
        store,
        distributor,
        streaks,
        retry_policy,
        config_manager,
        event_bus,
        get_logger("questline.modules.quests.QuestLifecycleManager"),
        clock=clock,
    )
    return QuestEngine(
        catalog,
        generator,
        progress,
        lifecycle,
        streaks,
        store,
        learner_lock,
        config_manager,
        event_bus,
        get_logger("questline.modules.quests.QuestEngine"),
        clock=clock,
    )
