"""
Streak Tracker
==============

Purpose
-------
Maintains the per-learner consecutive-day activity counter, claims each
milestone once and delivers its reward at least once.

Domain
------
- ``touch``: first activity creates a streak of 1; same UTC day is a no-op;
  the next day increments; a gap resets to 1.
- ``resolve_milestones``: every milestone reached and not yet claimed is
  marked claimed on the streak row (committed, version-checked) and then
  granted through the RewardDistributor with the key
  ``"{learner_id}:streak:{milestone}"``. The record is flagged delivered
  after the grant succeeds; claimed, undelivered records are re-sent on
  every later call.
- ``get_learning_streak``: read-only view.

Concurrency
-----------
Each read-modify-write runs inside ``DatabaseRetryPolicy``: a lost race on
the ``version`` column (``StaleDataError``) or on the first insert
(``IntegrityError``) re-runs the whole transaction against fresh state.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from questline.core.database.base import utc_now
from questline.core.database.retry_policy import DatabaseRetryPolicy
from questline.core.database.service import DatabaseService
from questline.core.logging.logger import get_logger
from questline.database.models.progression.learning_streak import LearningStreak as LearningStreakRow
from questline.modules.rewards.models import XpReward
from questline.modules.shared.base_repository import BaseRepository
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import PartialRewardFailureError
from questline.modules.streaks import streak_logic
from questline.modules.streaks.models import LearningStreak, StreakReward

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus
    from questline.modules.rewards.distributor import RewardDistributor
    from questline.modules.shared.collaborators import Clock


def streak_idempotency_key(learner_id: str, milestone: int) -> str:
    return f"{learner_id}:streak:{milestone}"


# ============================================================================
# Repository
# ============================================================================


class LearningStreakRepository(BaseRepository[LearningStreakRow]):
    """Repository for the learning_streaks table."""

    pass


# ============================================================================
# StreakTracker
# ============================================================================


class StreakTracker(BaseService):
    """
    Public Methods
    --------------
    - touch() -> Record activity for today
    - resolve_milestones() -> Claim and grant reached milestones
    - get_learning_streak() -> Current streak or None
    """

    def __init__(
        self,
        reward_distributor: RewardDistributor,
        retry_policy: DatabaseRetryPolicy,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._rewards = reward_distributor
        self._clock = clock
        self._retry = DatabaseRetryPolicy(
            dataclasses.replace(
                retry_policy.config,
                retriable_exceptions=(StaleDataError, IntegrityError),
            )
        )
        self._repo = LearningStreakRepository(
            model_class=LearningStreakRow,
            logger=get_logger(f"{__name__}.LearningStreakRepository"),
        )

    # ========================================================================
    # Configuration
    # ========================================================================

    def _milestones(self) -> Sequence[int]:
        configured = self.get_config("streaks.milestones", default=None)
        return tuple(int(m) for m in configured) if configured else streak_logic.DEFAULT_MILESTONES

    def _xp_per_day(self) -> int:
        return int(self.get_config("streaks.xp_per_milestone_day", default=10))

    def _multiplier_divisor(self) -> int:
        return int(self.get_config("streaks.multiplier_divisor", default=100))

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_learning_streak(self, learner_id: str) -> Optional[LearningStreak]:
        self.validate_learner_id(learner_id)

        async with DatabaseService.get_session() as session:
            row = await self._repo.get(session, learner_id)
            return LearningStreak.from_row(row) if row is not None else None

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def touch(self, learner_id: str) -> LearningStreak:
        """
        Record one activity for the learner's current UTC day.

        Returns:
            The streak after the update

        Raises:
            ConcurrencyConflictError: Version conflicts outlasted the retry budget
            StoreUnavailableError: Persistence failure
        """
        self.validate_learner_id(learner_id)
        today = self._clock().date()
        outcome: dict = {}

        async def operation() -> LearningStreak:
            async with DatabaseService.get_transaction() as session:
                row = await self._repo.get(session, learner_id, for_update=True)

                if row is None:
                    row = LearningStreakRow(
                        learner_id=learner_id,
                        current_streak=1,
                        longest_streak=1,
                        last_activity_date=today,
                        streak_rewards=[],
                    )
                    await self._repo.add(session, row)
                    outcome.update(changed=True, reset=False, previous=0)
                    return LearningStreak.from_row(row)

                advance = streak_logic.advance_streak(
                    row.current_streak,
                    row.longest_streak,
                    row.last_activity_date,
                    today,
                )
                outcome.update(changed=advance.changed, reset=advance.reset, previous=row.current_streak)

                if advance.changed:
                    row.current_streak = advance.current_streak
                    row.longest_streak = advance.longest_streak
                    row.last_activity_date = today
                    await session.flush()

                return LearningStreak.from_row(row)

        streak = await self._retry.execute(
            operation,
            operation_name="streak.touch",
            context={"learner_id": learner_id},
        )

        if outcome.get("changed"):
            self.log_operation(
                "streak.touch",
                learner_id=learner_id,
                previous_streak=outcome.get("previous"),
                current_streak=streak.current_streak,
                longest_streak=streak.longest_streak,
                reset=outcome.get("reset"),
            )
            await self.emit_event(
                "streak.updated",
                {
                    "learner_id": learner_id,
                    "current_streak": streak.current_streak,
                    "longest_streak": streak.longest_streak,
                    "reset": outcome.get("reset", False),
                },
            )

        return streak

    async def resolve_milestones(self, learner_id: str) -> List[StreakReward]:
        """
        Claim every reached, unclaimed milestone and send every claimed
        grant that has not been delivered yet.

        Claims are committed before any grant, so re-running never claims the
        same milestone twice. A grant that fails stays undelivered and is
        re-sent with the same idempotency key on the next call. Returns the
        newly claimed rewards (empty when nothing was due or the learner has
        no streak yet).

        Raises:
            PartialRewardFailureError: One or more milestone grants failed;
                the claims stay recorded
            ConcurrencyConflictError: Version conflicts outlasted the retry budget
        """
        self.validate_learner_id(learner_id)
        milestones = self._milestones()
        xp_per_day = self._xp_per_day()
        divisor = self._multiplier_divisor()

        async def operation() -> Tuple[List[StreakReward], List[StreakReward]]:
            async with DatabaseService.get_transaction() as session:
                row = await self._repo.get(session, learner_id, for_update=True)
                if row is None:
                    return [], []

                records = [StreakReward.from_dict(r) for r in (row.streak_rewards or [])]
                due = streak_logic.pending_milestones(
                    row.current_streak,
                    milestones,
                    (r.streak_length for r in records if r.claimed),
                )
                claims = [streak_logic.milestone_reward(m, xp_per_day, divisor) for m in due]
                if claims:
                    records = streak_logic.merge_claims(records, claims)
                    row.streak_rewards = [r.to_dict() for r in records]
                    await session.flush()
                return claims, streak_logic.undelivered(records)

        claims, pending = await self._retry.execute(
            operation,
            operation_name="streak.resolve_milestones",
            context={"learner_id": learner_id},
        )
        new_lengths = {c.streak_length for c in claims}

        delivered: List[int] = []
        failure: Optional[PartialRewardFailureError] = None
        for reward in pending:
            is_new = reward.streak_length in new_lengths
            if is_new:
                self.log_operation(
                    "streak.milestone_claimed",
                    learner_id=learner_id,
                    milestone=reward.streak_length,
                    xp=reward.reward_value,
                    bonus_multiplier=reward.bonus_multiplier,
                )
            else:
                self.log.info(
                    "Re-sending undelivered streak milestone",
                    extra={"learner_id": learner_id, "milestone": reward.streak_length},
                )

            try:
                await self._rewards.distribute(
                    learner_id,
                    [XpReward(value=reward.reward_value, bonus_multiplier=reward.bonus_multiplier)],
                    source=f"streak:{reward.streak_length}",
                    keys=[streak_idempotency_key(learner_id, reward.streak_length)],
                )
            except PartialRewardFailureError as exc:
                failure = exc if failure is None else failure.merge(exc)
            else:
                delivered.append(reward.streak_length)

            if is_new:
                await self.emit_event(
                    "streak.milestone_claimed",
                    {
                        "learner_id": learner_id,
                        "milestone": reward.streak_length,
                        "xp": reward.reward_value,
                        "bonus_multiplier": reward.bonus_multiplier,
                    },
                )

        if delivered:
            await self._record_delivery(learner_id, delivered)

        if failure is not None:
            raise failure
        return claims

    async def _record_delivery(self, learner_id: str, milestones: Sequence[int]) -> None:
        async def operation() -> None:
            async with DatabaseService.get_transaction() as session:
                row = await self._repo.get(session, learner_id, for_update=True)
                if row is None:
                    return
                records = [StreakReward.from_dict(r) for r in (row.streak_rewards or [])]
                row.streak_rewards = [r.to_dict() for r in streak_logic.mark_delivered(records, milestones)]

        await self._retry.execute(
            operation,
            operation_name="streak.record_delivery",
            context={"learner_id": learner_id, "milestones": list(milestones)},
        )
