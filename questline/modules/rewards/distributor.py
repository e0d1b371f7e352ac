"""
Reward Distributor

Translates a reward list into calls against the external RewardSink.

- One handler per reward variant, looked up by type.
- ``UnknownReward`` entries are skipped (forward-compatible catalogs).
- Every grant carries an idempotency key; by default
  ``"{learner_id}:{source}:{index}"`` with ``index`` the reward's
  position in the list.
- All grants are attempted. Failures are collected and raised together as
  ``PartialRewardFailureError``; grants that succeeded are not rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, Sequence, Type

from questline.modules.rewards.models import (
    AchievementReward,
    ItemReward,
    QuestReward,
    StatPointsReward,
    UnknownReward,
    XpReward,
)
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import PartialRewardFailureError, RewardGrantFailure

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus
    from questline.modules.shared.collaborators import RewardSink


def reward_idempotency_key(learner_id: str, source: str, index: int | str) -> str:
    return f"{learner_id}:{source}:{index}"


@dataclass
class DistributionResult:
    granted: int = 0
    skipped: List[str] = field(default_factory=list)


class RewardDistributor(BaseService):
    def __init__(
        self,
        reward_sink: RewardSink,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._sink = reward_sink
        self._handlers: Dict[Type, Callable[[str, object, str], Awaitable[None]]] = {
            XpReward: self._grant_xp,
            StatPointsReward: self._grant_stat_points,
            ItemReward: self._grant_item,
            AchievementReward: self._grant_achievement,
        }

    async def _grant_xp(self, learner_id: str, reward: XpReward, key: str) -> None:
        await self._sink.grant_xp(
            learner_id,
            reward.value,
            bonus_multiplier=reward.bonus_multiplier,
            idempotency_key=key,
        )

    async def _grant_stat_points(self, learner_id: str, reward: StatPointsReward, key: str) -> None:
        await self._sink.grant_stat_points(learner_id, reward.value, idempotency_key=key)

    async def _grant_item(self, learner_id: str, reward: ItemReward, key: str) -> None:
        await self._sink.grant_item(learner_id, reward.item_id, reward.quantity, idempotency_key=key)

    async def _grant_achievement(self, learner_id: str, reward: AchievementReward, key: str) -> None:
        await self._sink.grant_achievement(learner_id, reward.achievement_id, idempotency_key=key)

    async def distribute(
        self,
        learner_id: str,
        rewards: Sequence[QuestReward],
        *,
        source: str,
        keys: Optional[Sequence[str]] = None,
    ) -> DistributionResult:
        """
        Grant every reward in ``rewards``.

        Args:
            learner_id: Recipient
            rewards: Rewards in catalog order
            source: What the rewards belong to; part of the default keys
            keys: Explicit idempotency keys, one per reward

        Raises:
            PartialRewardFailureError: One or more grants raised
        """
        if keys is not None and len(keys) != len(rewards):
            raise ValueError("keys must match rewards one-to-one")

        result = DistributionResult()
        failures: List[RewardGrantFailure] = []

        for index, reward in enumerate(rewards):
            key = keys[index] if keys is not None else reward_idempotency_key(learner_id, source, index)

            if isinstance(reward, UnknownReward):
                result.skipped.append(reward.tag)
                self.log.info(
                    "Skipping unknown reward type",
                    extra={"learner_id": learner_id, "source": source, "reward_type": reward.tag},
                )
                continue

            handler = self._handlers[type(reward)]
            try:
                await handler(learner_id, reward, key)
            except Exception as exc:
                failures.append(
                    RewardGrantFailure(
                        index=index,
                        reward_type=reward.type.value,
                        idempotency_key=key,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                )
                self.log_error(
                    "reward.grant",
                    exc,
                    learner_id=learner_id,
                    source=source,
                    reward_type=reward.type.value,
                    idempotency_key=key,
                )
                continue

            result.granted += 1

        self.log_operation(
            "reward.distribute",
            learner_id=learner_id,
            source=source,
            granted=result.granted,
            failed=len(failures),
            skipped=len(result.skipped),
        )

        if failures:
            raise PartialRewardFailureError(learner_id, source, failures, granted=result.granted)
        return result
