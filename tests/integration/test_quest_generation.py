"""
Integration tests for daily and weekly quest generation against SQLite.
"""

import pytest

from questline.core.exceptions import StoreUnavailableError
from questline.database.models.enums import Cadence
from questline.modules.shared.exceptions import NotFoundError, ValidationError

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


def template_ids(quests):
    return sorted(q.template_id for q in quests)


class TestDailyGeneration:
    async def test_one_quest_per_unlocked_world(self, engine, progress_provider, recorded_events):
        progress_provider.add_learner("ada", level=1, worlds=["numerical-kingdom", "laboratory-realm"])

        quests = await engine.generate_daily_quests("ada")

        assert template_ids(quests) == ["experiment-explorer", "math-mastery-basic"]
        assert all(q.cadence is Cadence.DAILY for q in quests)
        assert [name for name, _ in recorded_events] == ["quest.generated"]
        assert recorded_events[0][1]["period_key"] == "2026-10-14"

    async def test_world_limit(self, engine, progress_provider, config_manager):
        config_manager.set("quests.daily.max_worlds", 1)
        progress_provider.add_learner("ada", worlds=["laboratory-realm", "numerical-kingdom"])

        quests = await engine.generate_daily_quests("ada")

        assert template_ids(quests) == ["experiment-explorer"]

    async def test_second_call_returns_the_active_set(self, engine, progress_provider, recorded_events):
        progress_provider.add_learner("ada", worlds=["numerical-kingdom"])

        first = await engine.generate_daily_quests("ada")
        second = await engine.generate_daily_quests("ada")

        assert [q.id for q in second] == [q.id for q in first]
        assert [name for name, _ in recorded_events].count("quest.generated") == 1

    async def test_no_unlocked_worlds_uses_default_world(self, engine, progress_provider):
        progress_provider.add_learner("ada", worlds=[])

        quests = await engine.generate_daily_quests("ada")

        assert [q.world_id for q in quests] == ["numerical-kingdom"]

    async def test_daily_quests_expire_at_end_of_day(self, engine, progress_provider, clock):
        progress_provider.add_learner("ada", worlds=["numerical-kingdom"])

        [quest] = await engine.generate_daily_quests("ada")

        assert quest.expires_at.date() == clock.now.date()
        assert quest.expires_at > clock.now

    async def test_expired_quests_are_replaced_next_day(self, engine, progress_provider, clock):
        progress_provider.add_learner("ada", worlds=["numerical-kingdom"])
        [yesterday] = await engine.generate_daily_quests("ada")

        clock.advance(days=1)

        assert await engine.get_active_quests("ada", Cadence.DAILY) == []
        [today] = await engine.generate_daily_quests("ada")
        assert today.id != yesterday.id
        assert today.template_id == "math-mastery-basic"

    async def test_regeneration_skips_templates_issued_this_period(self, engine, progress_provider):
        progress_provider.add_learner("ada", worlds=["numerical-kingdom"])
        [first] = await engine.generate_daily_quests("ada")
        await engine.complete_quest("ada", first.id)

        [second] = await engine.generate_daily_quests("ada")

        assert first.template_id == "math-mastery-basic"
        assert second.template_id == "calculation-champion"

    async def test_unknown_learner(self, engine):
        with pytest.raises(NotFoundError):
            await engine.generate_daily_quests("ghost")

    async def test_provider_failure_persists_nothing(self, engine, progress_provider):
        progress_provider.add_learner("ada", worlds=["numerical-kingdom"])
        progress_provider.fail_with = ConnectionError("character service down")

        with pytest.raises(StoreUnavailableError):
            await engine.generate_daily_quests("ada")

        assert await engine.get_active_quests("ada") == []

    async def test_blank_learner_id_is_rejected(self, engine):
        with pytest.raises(ValidationError):
            await engine.generate_daily_quests("  ")


class TestWeeklyGeneration:
    async def test_prerequisites_filter_templates(self, engine, progress_provider):
        progress_provider.add_learner("ada", level=1)
        progress_provider.add_learner("grace", level=10)

        low = await engine.generate_weekly_quests("ada")
        high = await engine.generate_weekly_quests("grace")

        assert template_ids(low) == ["subject-specialist"]
        assert template_ids(high) == ["knowledge-seeker", "multi-world-explorer"]

    async def test_weekly_expiry_uses_configured_duration(self, engine, progress_provider, clock, config_manager):
        config_manager.set("quests.weekly_duration_hours", 48)
        progress_provider.add_learner("ada", level=1)

        [quest] = await engine.generate_weekly_quests("ada")

        assert (quest.expires_at - clock.now).total_seconds() == 48 * 3600

    async def test_no_eligible_templates_returns_empty(self, engine, progress_provider, config_manager, recorded_events):
        config_manager.set(
            "quest_catalog",
            {
                "version": 2,
                "daily": {},
                "weekly": [
                    {
                        "id": "veteran-trial",
                        "title": "Veteran Trial",
                        "description": "Only for seasoned learners.",
                        "category": "achievement",
                        "objectives": [{"type": "complete_lessons", "target": 10}],
                        "prerequisites": {"minimum_level": 20},
                    }
                ],
            },
        )
        progress_provider.add_learner("ada", level=1)

        quests = await engine.generate_weekly_quests("ada")

        assert quests == []
        assert await engine.get_active_quests("ada") == []
        assert recorded_events == []
        assert "veteran-trial" in engine.catalog

    async def test_refresh_generates_both_cadences(self, engine, progress_provider):
        progress_provider.add_learner("ada", level=1, worlds=["numerical-kingdom"])

        result = await engine.refresh_quests("ada")

        assert template_ids(result["daily"]) == ["math-mastery-basic"]
        assert template_ids(result["weekly"]) == ["subject-specialist"]
        assert len(await engine.get_active_quests("ada")) == 2


class TestActiveQuestQueries:
    async def test_filter_by_cadence_string(self, engine, progress_provider):
        progress_provider.add_learner("ada", level=1, worlds=["numerical-kingdom"])
        await engine.refresh_quests("ada")

        weekly = await engine.get_active_quests("ada", "weekly")

        assert template_ids(weekly) == ["subject-specialist"]

    async def test_unknown_cadence(self, engine):
        with pytest.raises(ValidationError):
            await engine.get_active_quests("ada", "monthly")

    async def test_quest_is_active_until_its_expiry_instant(self, engine, progress_provider, clock):
        progress_provider.add_learner("ada", level=1)
        [quest] = await engine.generate_weekly_quests("ada")

        clock.now = quest.expires_at
        at_expiry = await engine.get_active_quests("ada", "weekly")
        clock.advance(microseconds=1)
        after_expiry = await engine.get_active_quests("ada", "weekly")

        assert [q.id for q in at_expiry] == [quest.id]
        assert after_expiry == []
