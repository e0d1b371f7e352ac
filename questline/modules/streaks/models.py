"""Learning streak value types returned to callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from questline.database.models.enums import RewardType


@dataclass
class StreakReward:
    """
    A milestone reward record kept on the streak row.

    ``claimed`` is set before the grant is sent; ``delivered`` once the sink
    accepted it. A claimed, undelivered record is re-sent with the same
    idempotency key.
    """

    streak_length: int
    reward_type: RewardType = RewardType.XP
    reward_value: int = 0
    bonus_multiplier: Optional[float] = None
    claimed: bool = False
    delivered: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "streak_length": self.streak_length,
            "reward_type": self.reward_type.value,
            "reward_value": self.reward_value,
            "bonus_multiplier": self.bonus_multiplier,
            "claimed": self.claimed,
            "delivered": self.delivered,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StreakReward:
        multiplier = data.get("bonus_multiplier")
        return cls(
            streak_length=int(data["streak_length"]),
            reward_type=RewardType(data.get("reward_type", RewardType.XP.value)),
            reward_value=int(data.get("reward_value", 0)),
            bonus_multiplier=float(multiplier) if multiplier is not None else None,
            claimed=bool(data.get("claimed", False)),
            delivered=bool(data.get("delivered", False)),
        )


@dataclass
class LearningStreak:
    learner_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[date] = None
    streak_rewards: List[StreakReward] = field(default_factory=list)

    @property
    def claimed_milestones(self) -> List[int]:
        return [r.streak_length for r in self.streak_rewards if r.claimed]

    @classmethod
    def from_row(cls, row: Any) -> LearningStreak:
        return cls(
            learner_id=row.learner_id,
            current_streak=row.current_streak,
            longest_streak=row.longest_streak,
            last_activity_date=row.last_activity_date,
            streak_rewards=[StreakReward.from_dict(r) for r in (row.streak_rewards or [])],
        )
