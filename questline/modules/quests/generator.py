"""
Quest Generator
===============

Purpose
-------
Produces the learner's quest set for one cadence period and persists it
through the lifecycle store.

Algorithm
---------
1. If the learner already has active quests of the cadence, return them.
2. Load level, unlocked worlds and subject progress from the character
   provider. Any failure aborts before anything is written.
3. Daily: for each of the first ``quests.daily.max_worlds`` unlocked worlds,
   keep the world's templates that pass the prerequisite check, prefer
   those whose ``difficulty * level_multiplier`` is within
   ``difficulty_window`` of the learner's level (random pick), otherwise
   take the first eligible one.
   Weekly: the first ``quests.weekly.max_quests`` eligible weekly templates.
4. Materialize and insert the whole set in one transaction.

Templates already issued in the same period (``period_key``) are skipped,
and the ``(learner_id, template_id, period_key)`` unique constraint rejects
a racing duplicate insert; the loser rolls back and returns the winner's
set.
"""

from __future__ import annotations

import random
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING, AbstractSet, List, Mapping, Optional, Sequence

from sqlalchemy.exc import IntegrityError

from questline.core.database.base import utc_now
from questline.core.database.service import DatabaseService
from questline.core.exceptions import StoreUnavailableError
from questline.database.models.enums import Cadence
from questline.modules.quests.catalog import QuestTemplateCatalog
from questline.modules.quests.lifecycle import QuestLifecycleStore
from questline.modules.quests.models import Quest, QuestTemplate
from questline.modules.quests.prerequisites import is_eligible
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.collaborators import SubjectProgress
from questline.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus
    from questline.modules.shared.collaborators import CharacterProgressProvider, Clock


# ============================================================================
# Period helpers
# ============================================================================


def period_key(cadence: Cadence, now: datetime) -> str:
    """ISO date for daily quests, ISO week (``2026-W42``) for weekly."""
    if cadence is Cadence.DAILY:
        return now.date().isoformat()
    iso_year, iso_week, _ = now.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def expiry_for(cadence: Cadence, now: datetime, weekly_duration: timedelta = timedelta(days=7)) -> datetime:
    """End of the current UTC day for daily quests; ``now + weekly_duration`` for weekly."""
    if cadence is Cadence.DAILY:
        return datetime.combine(now.date(), time.max, tzinfo=now.tzinfo)
    return now + weekly_duration


def make_quest_id(template_id: str, learner_id: str, now: datetime) -> str:
    return f"{template_id}-{learner_id}-{int(now.timestamp() * 1000)}"


# ============================================================================
# Selection policy
# ============================================================================


class QuestSelector:
    """Pure template selection; randomness comes from the injected ``rng``."""

    def __init__(
        self,
        catalog: QuestTemplateCatalog,
        *,
        max_daily_worlds: int = 3,
        max_weekly: int = 2,
        difficulty_window: int = 3,
        level_multiplier: int = 2,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.catalog = catalog
        self.max_daily_worlds = max_daily_worlds
        self.max_weekly = max_weekly
        self.difficulty_window = difficulty_window
        self.level_multiplier = level_multiplier
        self._rng = rng or random.Random()

    def _eligible(
        self,
        templates: Sequence[QuestTemplate],
        level: int,
        subject_progress: Mapping[str, SubjectProgress],
        completed_template_ids: Optional[AbstractSet[str]],
        exclude: AbstractSet[str],
    ) -> List[QuestTemplate]:
        return [
            t
            for t in templates
            if t.id not in exclude and is_eligible(t, level, subject_progress, completed_template_ids)
        ]

    def pick_for_level(self, eligible: Sequence[QuestTemplate], level: int) -> Optional[QuestTemplate]:
        if not eligible:
            return None
        suited = [
            t for t in eligible if abs(t.difficulty * self.level_multiplier - level) <= self.difficulty_window
        ]
        if suited:
            return self._rng.choice(suited)
        return eligible[0]

    def select_daily(
        self,
        worlds: Sequence[str],
        level: int,
        subject_progress: Mapping[str, SubjectProgress],
        completed_template_ids: Optional[AbstractSet[str]] = None,
        exclude: AbstractSet[str] = frozenset(),
    ) -> List[QuestTemplate]:
        selected: List[QuestTemplate] = []
        for world_id in list(worlds)[: self.max_daily_worlds]:
            eligible = self._eligible(
                self.catalog.daily_for_world(world_id),
                level,
                subject_progress,
                completed_template_ids,
                exclude,
            )
            pick = self.pick_for_level(eligible, level)
            if pick is not None:
                selected.append(pick)
        return selected

    def select_weekly(
        self,
        level: int,
        subject_progress: Mapping[str, SubjectProgress],
        completed_template_ids: Optional[AbstractSet[str]] = None,
        exclude: AbstractSet[str] = frozenset(),
    ) -> List[QuestTemplate]:
        eligible = self._eligible(
            self.catalog.weekly(),
            level,
            subject_progress,
            completed_template_ids,
            exclude,
        )
        return eligible[: self.max_weekly]


# ============================================================================
# QuestGenerator
# ============================================================================


class QuestGenerator(BaseService):
    """
    Public Methods
    --------------
    - generate() -> Active quest set for one cadence, creating it if needed
    """

    def __init__(
        self,
        catalog: QuestTemplateCatalog,
        progress_provider: CharacterProgressProvider,
        store: QuestLifecycleStore,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        clock: Clock = utc_now,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._catalog = catalog
        self._provider = progress_provider
        self._store = store
        self._clock = clock
        self._rng = rng or random.Random()

    def _selector(self) -> QuestSelector:
        return QuestSelector(
            self._catalog,
            max_daily_worlds=int(self.get_config("quests.daily.max_worlds", default=3)),
            max_weekly=int(self.get_config("quests.weekly.max_quests", default=2)),
            difficulty_window=int(self.get_config("quests.daily.difficulty_window", default=3)),
            level_multiplier=int(self.get_config("quests.daily.level_multiplier", default=2)),
            rng=self._rng,
        )

    def _weekly_duration(self) -> timedelta:
        return timedelta(hours=int(self.get_config("quests.weekly_duration_hours", default=168)))

    async def _load_learner(self, learner_id: str, cadence: Cadence) -> tuple[int, List[str], Mapping[str, SubjectProgress]]:
        try:
            level = await self._provider.get_level(learner_id)
            worlds = list(await self._provider.get_unlocked_worlds(learner_id)) if cadence is Cadence.DAILY else []
            subject_progress = dict(await self._provider.get_subject_progress(learner_id))
        except Exception as exc:
            self.log_error("quest.generate.load_learner", exc, learner_id=learner_id, cadence=cadence.value)
            raise StoreUnavailableError("load_learner_progress", exc) from exc

        if level is None:
            raise NotFoundError("Learner", learner_id)

        if cadence is Cadence.DAILY and not worlds:
            worlds = [str(self.get_config("quests.default_world", default="numerical-kingdom"))]

        return int(level), worlds, subject_progress

    async def _active(self, learner_id: str, cadence: Cadence, now: datetime) -> List[Quest]:
        async with DatabaseService.get_session() as session:
            rows = await self._store.get_active(session, learner_id, now, cadence)
            return [self._store.to_domain(r) for r in rows]

    async def generate(self, learner_id: str, cadence: Cadence) -> List[Quest]:
        """
        Return the learner's active quests of ``cadence``, generating a new
        set when there are none.

        Callers hold the learner lock around this call.

        Raises:
            NotFoundError: The provider has no character for the learner
            StoreUnavailableError: Provider or persistence failure; nothing persisted
        """
        self.validate_learner_id(learner_id)
        now = self._clock()

        existing = await self._active(learner_id, cadence, now)
        if existing:
            self.log.debug(
                "Active quests already present; generation skipped",
                extra={"learner_id": learner_id, "cadence": cadence.value, "count": len(existing)},
            )
            return existing

        level, worlds, subject_progress = await self._load_learner(learner_id, cadence)
        key = period_key(cadence, now)
        selector = self._selector()

        try:
            async with DatabaseService.get_transaction() as session:
                already_issued = await self._store.assigned_template_ids(session, learner_id, cadence, key)
                completed = await self._store.completed_template_ids(session, learner_id)

                if cadence is Cadence.DAILY:
                    templates = selector.select_daily(worlds, level, subject_progress, completed, already_issued)
                else:
                    templates = selector.select_weekly(level, subject_progress, completed, already_issued)

                expires_at = expiry_for(cadence, now, self._weekly_duration())
                quests = [
                    Quest.from_template(
                        t,
                        quest_id=make_quest_id(t.id, learner_id, now),
                        created_at=now,
                        expires_at=expires_at,
                    )
                    for t in templates
                ]
                if quests:
                    await self._store.persist_new(session, learner_id, quests, key)
        except IntegrityError:
            self.log.info(
                "Concurrent generation detected; returning existing quests",
                extra={"learner_id": learner_id, "cadence": cadence.value, "period_key": key},
            )
            return await self._active(learner_id, cadence, now)

        self.log_operation(
            "quest.generate",
            learner_id=learner_id,
            cadence=cadence.value,
            period_key=key,
            level=level,
            generated=len(quests),
            template_ids=[q.template_id for q in quests],
        )

        if quests:
            await self.emit_event(
                "quest.generated",
                {
                    "learner_id": learner_id,
                    "cadence": cadence.value,
                    "period_key": key,
                    "quest_ids": [q.id for q in quests],
                },
            )
        return quests
