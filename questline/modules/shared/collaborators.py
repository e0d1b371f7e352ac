"""
Interfaces of the external subsystems the engine calls.

The character/XP/inventory subsystem owns levels, unlocked worlds, subject
experience and the actual grants; the engine only depends on these
protocols. Grant operations receive an ``idempotency_key`` so the sink can
make at-least-once delivery safe.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Optional, Protocol, Sequence, runtime_checkable

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class SubjectProgress:
    total_xp: int = 0


@runtime_checkable
class CharacterProgressProvider(Protocol):
    async def get_level(self, learner_id: str) -> Optional[int]:
        """Current level, or None when the learner has no character."""
        ...

    async def get_unlocked_worlds(self, learner_id: str) -> Sequence[str]:
        """Unlocked world ids in unlock order (may be empty)."""
        ...

    async def get_subject_progress(self, learner_id: str) -> Mapping[str, SubjectProgress]:
        ...


@runtime_checkable
class RewardSink(Protocol):
    async def grant_xp(
        self,
        learner_id: str,
        amount: int,
        *,
        bonus_multiplier: Optional[float] = None,
        idempotency_key: str,
    ) -> None:
        ...

    async def grant_stat_points(self, learner_id: str, amount: int, *, idempotency_key: str) -> None:
        ...

    async def grant_item(self, learner_id: str, item_id: str, quantity: int, *, idempotency_key: str) -> None:
        ...

    async def grant_achievement(self, learner_id: str, achievement_id: str, *, idempotency_key: str) -> None:
        ...
