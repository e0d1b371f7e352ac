"""
Integration tests for direct completion and reward retries.
"""

import pytest

from questline.modules.shared.exceptions import InvalidStateError, NotFoundError, PartialRewardFailureError

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
async def math_quest(engine, progress_provider):
    progress_provider.add_learner("ada", level=1, worlds=["numerical-kingdom"])
    [quest] = await engine.generate_daily_quests("ada")
    return quest


class TestCompleteQuest:
    async def test_direct_completion(self, engine, math_quest, reward_sink, clock, recorded_events):
        quest = await engine.complete_quest("ada", math_quest.id)

        assert quest.completed is True
        assert quest.completed_at == clock.now
        assert all(o.completed and o.current_value == o.target_value for o in quest.objectives)
        assert sorted(reward_sink.applied) == [f"ada:{quest.id}:0", f"ada:{quest.id}:1"]
        assert [n for n, _ in recorded_events][-2:] == ["quest.completed", "quest.rewards_distributed"]

    async def test_already_completed(self, engine, math_quest):
        await engine.complete_quest("ada", math_quest.id)

        with pytest.raises(InvalidStateError):
            await engine.complete_quest("ada", math_quest.id)

    async def test_expired(self, engine, math_quest, clock):
        clock.advance(days=1)

        with pytest.raises(InvalidStateError):
            await engine.complete_quest("ada", math_quest.id)

    async def test_completion_at_expiry_instant(self, engine, math_quest, clock):
        clock.now = math_quest.expires_at

        quest = await engine.complete_quest("ada", math_quest.id)

        assert quest.completed is True

    async def test_unknown_quest(self, engine):
        with pytest.raises(NotFoundError):
            await engine.complete_quest("ada", "no-such-quest")

    async def test_other_learners_quest_is_not_found(self, engine, math_quest):
        with pytest.raises(NotFoundError):
            await engine.complete_quest("grace", math_quest.id)


class TestRewardRetry:
    async def test_retry_after_partial_failure(self, engine, math_quest, reward_sink):
        reward_sink.fail_kinds = {"stat_points"}
        with pytest.raises(PartialRewardFailureError):
            await engine.complete_quest("ada", math_quest.id)

        reward_sink.fail_kinds = set()
        retried = await engine.retry_quest_rewards("ada", math_quest.id)

        assert retried is True
        assert len(reward_sink.applied_of("xp")) == 1
        assert reward_sink.applied_of("stat_points")[0]["amount"] == 1
        assert [k for k, _, _ in reward_sink.calls].count("xp") == 2

    async def test_retry_when_already_distributed(self, engine, math_quest):
        await engine.complete_quest("ada", math_quest.id)

        assert await engine.retry_quest_rewards("ada", math_quest.id) is False

    async def test_retry_requires_completion(self, engine, math_quest):
        with pytest.raises(InvalidStateError):
            await engine.retry_quest_rewards("ada", math_quest.id)


class TestCompletionStreakCheckpoint:
    async def test_learning_quest_claims_reached_milestone(self, engine, math_quest, clock, reward_sink, seed_streak):
        await seed_streak("ada", 3, clock.now.date())

        await engine.complete_quest("ada", math_quest.id)

        streak_keys = [k for k in reward_sink.applied if ":streak:" in k]
        assert streak_keys == ["ada:streak:3"]
        assert reward_sink.applied["ada:streak:3"][2]["amount"] == 30

    async def test_other_categories_skip_milestones(
        self, engine, progress_provider, config_manager, clock, reward_sink, seed_streak
    ):
        config_manager.set(
            "quest_catalog",
            {
                "version": 2,
                "daily": {
                    "numerical-kingdom": [
                        {
                            "id": "study-buddy",
                            "title": "Study Buddy",
                            "description": "Help a classmate with one lesson.",
                            "category": "social",
                            "objectives": [{"type": "complete_lessons", "target": 1}],
                            "rewards": [{"type": "xp", "value": 15}],
                        }
                    ]
                },
                "weekly": [],
            },
        )
        progress_provider.add_learner("ada", level=1, worlds=["numerical-kingdom"])
        await seed_streak("ada", 3, clock.now.date())
        [quest] = await engine.generate_daily_quests("ada")

        await engine.complete_quest("ada", quest.id)

        assert list(reward_sink.applied) == [f"ada:{quest.id}:0"]
        streak = await engine.get_learning_streak("ada")
        assert streak.claimed_milestones == []
