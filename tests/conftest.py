"""
Pytest Configuration and Fixtures for the Questline Test Suite
==============================================================

Purpose
-------
Reusable fixtures for configuration, database, event bus, fake external
collaborators and a controllable clock.

Architecture Notes
------------------
- The environment is forced to ``testing`` before any ``questline`` import
  so ``Config.load()`` picks it up.
- Unit tests use mocks (fast, isolated).
- Integration tests run against a fresh SQLite file per test through
  ``sqlite+aiosqlite`` and ``DatabaseService`` (NullPool).
"""

from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_JSON", "false")

import random
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Set, Tuple

import pytest
import pytest_asyncio

from questline.core.config.manager import ConfigManager
from questline.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from questline.core.database.service import DatabaseService
from questline.core.event.bus import EventBus
from questline.core.locking.learner_lock import InMemoryLearnerLock
from questline.database.models.progression.learning_streak import LearningStreak as LearningStreakRow
from questline.modules.quests.engine import QuestEngine, build_engine
from questline.modules.shared.collaborators import SubjectProgress

# ============================================================================
# FAKE COLLABORATORS
# ============================================================================


class FakeClock:
    """Callable clock returning a settable UTC instant."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class FakeProgressProvider:
    """In-memory character/progress subsystem."""

    def __init__(self) -> None:
        self.levels: Dict[str, int] = {}
        self.worlds: Dict[str, List[str]] = {}
        self.subject_xp: Dict[str, Dict[str, int]] = {}
        self.fail_with: Optional[Exception] = None

    def add_learner(
        self,
        learner_id: str,
        level: int = 1,
        worlds: Optional[List[str]] = None,
        subject_xp: Optional[Dict[str, int]] = None,
    ) -> None:
        self.levels[learner_id] = level
        self.worlds[learner_id] = list(worlds or [])
        self.subject_xp[learner_id] = dict(subject_xp or {})

    async def get_level(self, learner_id: str) -> Optional[int]:
        if self.fail_with is not None:
            raise self.fail_with
        return self.levels.get(learner_id)

    async def get_unlocked_worlds(self, learner_id: str) -> List[str]:
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.worlds.get(learner_id, []))

    async def get_subject_progress(self, learner_id: str) -> Dict[str, SubjectProgress]:
        if self.fail_with is not None:
            raise self.fail_with
        return {s: SubjectProgress(total_xp=xp) for s, xp in self.subject_xp.get(learner_id, {}).items()}


class FakeRewardSink:
    """
    Records grants and dedupes on idempotency key like a well-behaved sink.

    ``fail_kinds`` makes every grant of those kinds raise.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.applied: Dict[str, Tuple[str, str, Dict[str, Any]]] = {}
        self.fail_kinds: Set[str] = set()

    def _record(self, kind: str, learner_id: str, idempotency_key: str, **data: Any) -> None:
        entry = (kind, learner_id, {**data, "idempotency_key": idempotency_key})
        self.calls.append(entry)
        if kind in self.fail_kinds:
            raise RuntimeError(f"{kind} grant unavailable")
        self.applied.setdefault(idempotency_key, entry)

    async def grant_xp(
        self,
        learner_id: str,
        amount: int,
        *,
        bonus_multiplier: Optional[float] = None,
        idempotency_key: str,
    ) -> None:
        self._record("xp", learner_id, idempotency_key, amount=amount, bonus_multiplier=bonus_multiplier)

    async def grant_stat_points(self, learner_id: str, amount: int, *, idempotency_key: str) -> None:
        self._record("stat_points", learner_id, idempotency_key, amount=amount)

    async def grant_item(self, learner_id: str, item_id: str, quantity: int, *, idempotency_key: str) -> None:
        self._record("item", learner_id, idempotency_key, item_id=item_id, quantity=quantity)

    async def grant_achievement(self, learner_id: str, achievement_id: str, *, idempotency_key: str) -> None:
        self._record("achievement", learner_id, idempotency_key, achievement_id=achievement_id)

    def applied_of(self, kind: str) -> List[Dict[str, Any]]:
        return [data for k, _, data in self.applied.values() if k == kind]


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def config_manager():
    """Fresh YAML-backed ConfigManager per test; overrides never leak."""
    ConfigManager.reset()
    ConfigManager.initialize()
    yield ConfigManager
    ConfigManager.reset()


@pytest.fixture
def fixed_now() -> datetime:
    # Wednesday, ISO week 2026-W42
    return datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now: datetime) -> FakeClock:
    return FakeClock(fixed_now)


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def mock_logger(mocker):
    return mocker.MagicMock()


@pytest.fixture
def no_sleep_retry_policy() -> DatabaseRetryPolicy:
    async def _no_sleep(_: float) -> None:
        return None

    return DatabaseRetryPolicy(
        DatabaseRetryConfig(max_attempts=4, initial_backoff_ms=1, max_backoff_ms=5, jitter_ms=0),
        sleep=_no_sleep,
    )


# ============================================================================
# FAKE COLLABORATOR FIXTURES
# ============================================================================


@pytest.fixture
def progress_provider() -> FakeProgressProvider:
    return FakeProgressProvider()


@pytest.fixture
def reward_sink() -> FakeRewardSink:
    return FakeRewardSink()


# ============================================================================
# DATABASE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialized DatabaseService over a throwaway SQLite file.

    Scope: function (clean schema per test)
    """
    await DatabaseService.shutdown()
    await DatabaseService.initialize(f"sqlite+aiosqlite:///{tmp_path / 'questline.db'}")
    await DatabaseService.create_schema()
    yield DatabaseService
    await DatabaseService.shutdown()


@pytest.fixture
def seed_streak(database):
    """Insert a learning streak row directly; claimed milestones are delivered unless told otherwise."""

    async def _seed(
        learner_id: str,
        current: int,
        last_activity_date: date,
        claimed: Tuple[int, ...] = (),
        delivered: bool = True,
    ) -> None:
        async with DatabaseService.get_transaction() as session:
            session.add(
                LearningStreakRow(
                    learner_id=learner_id,
                    current_streak=current,
                    longest_streak=current,
                    last_activity_date=last_activity_date,
                    streak_rewards=[
                        {
                            "streak_length": m,
                            "reward_type": "xp",
                            "reward_value": m * 10,
                            "claimed": True,
                            "delivered": delivered,
                        }
                        for m in claimed
                    ],
                )
            )

    return _seed


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(listener_timeout_seconds=2.0)


@pytest.fixture
def recorded_events(event_bus: EventBus) -> List[Tuple[str, Dict[str, Any]]]:
    """Every event published on ``event_bus`` as ``(name, payload)``."""
    events: List[Tuple[str, Dict[str, Any]]] = []

    def make_recorder(name: str):
        async def _record(payload: Dict[str, Any]) -> None:
            events.append((name, dict(payload)))

        _record.__qualname__ = f"record_{name}"
        return _record

    for name in (
        "quest.generated",
        "quest.progressed",
        "quest.completed",
        "quest.rewards_distributed",
        "streak.updated",
        "streak.milestone_claimed",
    ):
        event_bus.subscribe(name, make_recorder(name))
    return events


@pytest_asyncio.fixture
async def engine(
    database,
    progress_provider: FakeProgressProvider,
    reward_sink: FakeRewardSink,
    event_bus: EventBus,
    clock: FakeClock,
    no_sleep_retry_policy: DatabaseRetryPolicy,
) -> QuestEngine:
    return build_engine(
        progress_provider,
        reward_sink,
        event_bus=event_bus,
        learner_lock=InMemoryLearnerLock(wait_timeout=5),
        retry_policy=no_sleep_retry_policy,
        clock=clock,
        rng=random.Random(7),
    )
