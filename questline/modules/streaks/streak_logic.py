"""
Pure streak arithmetic.

No I/O: callers pass in the stored values and today's UTC date and persist
whatever comes back.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence

from questline.modules.streaks.models import StreakReward

DEFAULT_MILESTONES: tuple[int, ...] = (3, 7, 14, 30, 60, 100)


@dataclass(frozen=True)
class StreakAdvance:
    current_streak: int
    longest_streak: int
    changed: bool
    reset: bool


def advance_streak(
    current_streak: int,
    longest_streak: int,
    last_activity_date: Optional[date],
    today: date,
) -> StreakAdvance:
    """
    Apply one day of activity.

    - same day: unchanged
    - yesterday: +1
    - anything else (gap, first activity, clock skew into the future): reset to 1
    """
    if last_activity_date == today:
        return StreakAdvance(current_streak, max(longest_streak, current_streak), changed=False, reset=False)

    if last_activity_date is not None and last_activity_date == today - timedelta(days=1):
        new_current = current_streak + 1
        return StreakAdvance(new_current, max(longest_streak, new_current), changed=True, reset=False)

    return StreakAdvance(1, max(longest_streak, 1), changed=True, reset=last_activity_date is not None)


def pending_milestones(
    current_streak: int,
    milestones: Sequence[int],
    claimed: Iterable[int],
) -> List[int]:
    """Milestones reached by ``current_streak`` that have no claimed record, ascending."""
    already = set(claimed)
    return [m for m in sorted(milestones) if current_streak >= m and m not in already]


def milestone_reward(milestone: int, xp_per_day: int = 10, multiplier_divisor: int = 100) -> StreakReward:
    return StreakReward(
        streak_length=milestone,
        reward_value=milestone * xp_per_day,
        bonus_multiplier=1 + milestone / multiplier_divisor,
        claimed=True,
    )


def merge_claims(existing: Sequence[StreakReward], claims: Sequence[StreakReward]) -> List[StreakReward]:
    """
    Fold new claim records into the stored list.

    An unclaimed record for the same milestone is replaced so a milestone
    never appears twice. Result is ordered by streak length.
    """
    merged = {r.streak_length: r for r in existing}
    for claim in claims:
        merged[claim.streak_length] = claim
    return [merged[length] for length in sorted(merged)]


def undelivered(records: Sequence[StreakReward]) -> List[StreakReward]:
    """Claimed records whose grant has not been confirmed, ascending."""
    return sorted((r for r in records if r.claimed and not r.delivered), key=lambda r: r.streak_length)


def mark_delivered(records: Sequence[StreakReward], lengths: Iterable[int]) -> List[StreakReward]:
    done = set(lengths)
    return [replace(r, delivered=True) if r.streak_length in done else r for r in records]
