"""
Reward value types.

``QuestReward`` is a tagged union: one frozen dataclass per reward kind.
Rewards are stored as plain dicts (``to_dict``) and rebuilt with
``parse_reward``; tags this version does not know become ``UnknownReward``
and are skipped at distribution time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from questline.database.models.enums import RewardType


@dataclass(frozen=True)
class XpReward:
    value: int
    bonus_multiplier: Optional[float] = None
    type: RewardType = field(default=RewardType.XP, init=False)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value, "value": self.value}
        if self.bonus_multiplier is not None:
            data["bonus_multiplier"] = self.bonus_multiplier
        return data


@dataclass(frozen=True)
class StatPointsReward:
    value: int
    type: RewardType = field(default=RewardType.STAT_POINTS, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "value": self.value}


@dataclass(frozen=True)
class ItemReward:
    item_id: str
    quantity: int = 1
    type: RewardType = field(default=RewardType.ITEM, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "value": self.quantity, "item_id": self.item_id}


@dataclass(frozen=True)
class AchievementReward:
    achievement_id: str
    type: RewardType = field(default=RewardType.ACHIEVEMENT, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "value": 1, "achievement_id": self.achievement_id}


@dataclass(frozen=True)
class UnknownReward:
    """Reward with a tag this engine does not handle (e.g. ``world_unlock``)."""

    tag: str
    raw: Mapping[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)


QuestReward = Union[XpReward, StatPointsReward, ItemReward, AchievementReward, UnknownReward]


def parse_reward(data: Mapping[str, Any]) -> QuestReward:
    """
    Build a reward from its dict form.

    Raises ValueError when a known tag is missing its reference id.
    """
    tag = str(data.get("type", ""))
    value = int(data.get("value", 0) or 0)

    if tag == RewardType.XP.value:
        multiplier = data.get("bonus_multiplier")
        return XpReward(value=value, bonus_multiplier=float(multiplier) if multiplier is not None else None)
    if tag == RewardType.STAT_POINTS.value:
        return StatPointsReward(value=value)
    if tag == RewardType.ITEM.value:
        item_id = data.get("item_id")
        if not item_id:
            raise ValueError("item reward requires item_id")
        return ItemReward(item_id=str(item_id), quantity=value or 1)
    if tag == RewardType.ACHIEVEMENT.value:
        achievement_id = data.get("achievement_id")
        if not achievement_id:
            raise ValueError("achievement reward requires achievement_id")
        return AchievementReward(achievement_id=str(achievement_id))
    return UnknownReward(tag=tag, raw=dict(data))
