"""Reward types and distribution to the external reward sink."""

from .distributor import DistributionResult, RewardDistributor, reward_idempotency_key
from .models import (
    AchievementReward,
    ItemReward,
    QuestReward,
    StatPointsReward,
    UnknownReward,
    XpReward,
    parse_reward,
)

__all__ = [
    "RewardDistributor",
    "DistributionResult",
    "reward_idempotency_key",
    "QuestReward",
    "XpReward",
    "StatPointsReward",
    "ItemReward",
    "AchievementReward",
    "UnknownReward",
    "parse_reward",
]
