"""
Integration tests for learning streaks and milestone rewards.
"""

from datetime import timedelta

import pytest

from questline.modules.shared.exceptions import PartialRewardFailureError

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


class TestStreakProgression:
    async def test_first_activity_starts_streak(self, engine, clock):
        assert await engine.get_learning_streak("ada") is None

        await engine.apply_activity("ada", "complete_lesson")

        streak = await engine.get_learning_streak("ada")
        assert (streak.current_streak, streak.longest_streak) == (1, 1)
        assert streak.last_activity_date == clock.now.date()

    async def test_same_day_activity_is_counted_once(self, engine, recorded_events):
        await engine.apply_activity("ada", "complete_lesson")
        await engine.apply_activity("ada", "complete_lesson")

        streak = await engine.get_learning_streak("ada")
        assert streak.current_streak == 1
        assert [n for n, _ in recorded_events].count("streak.updated") == 1

    async def test_gap_resets_current_but_keeps_longest(self, engine, clock, recorded_events):
        for _ in range(2):
            await engine.apply_activity("ada", "complete_lesson")
            clock.advance(days=1)
        clock.advance(days=2)

        await engine.apply_activity("ada", "complete_lesson")

        streak = await engine.get_learning_streak("ada")
        assert (streak.current_streak, streak.longest_streak) == (1, 2)
        assert recorded_events[-1] == (
            "streak.updated",
            {"learner_id": "ada", "current_streak": 1, "longest_streak": 2, "reset": True},
        )


class TestStreakMilestones:
    async def test_seventh_day_grants_milestone_once(self, engine, clock, reward_sink, recorded_events, seed_streak):
        await seed_streak("ada", 6, clock.now.date() - timedelta(days=1), claimed=(3,))

        await engine.apply_activity("ada", "complete_lesson")
        await engine.apply_activity("ada", "complete_lesson")

        streak = await engine.get_learning_streak("ada")
        assert streak.current_streak == 7
        assert sorted(streak.claimed_milestones) == [3, 7]
        [grant] = reward_sink.applied_of("xp")
        assert grant["amount"] == 70
        assert grant["bonus_multiplier"] == pytest.approx(1.07)
        assert grant["idempotency_key"] == "ada:streak:7"
        assert [n for n, _ in recorded_events].count("streak.milestone_claimed") == 1

    async def test_daily_run_claims_each_milestone(self, engine, clock, reward_sink):
        for _ in range(7):
            await engine.apply_activity("ada", "complete_lesson")
            clock.advance(days=1)

        amounts = sorted(g["amount"] for g in reward_sink.applied_of("xp"))
        assert amounts == [30, 70]

    async def test_milestone_not_reclaimed_after_reset(self, engine, clock, reward_sink):
        for _ in range(3):
            await engine.apply_activity("ada", "complete_lesson")
            clock.advance(days=1)
        clock.advance(days=3)
        for _ in range(3):
            await engine.apply_activity("ada", "complete_lesson")
            clock.advance(days=1)

        assert [g["amount"] for g in reward_sink.applied_of("xp")] == [30]

    async def test_configured_milestones(self, engine, config_manager, reward_sink):
        config_manager.set("streaks.milestones", [1])

        await engine.apply_activity("ada", "complete_lesson")

        [grant] = reward_sink.applied_of("xp")
        assert grant["amount"] == 10
        assert grant["bonus_multiplier"] == pytest.approx(1.01)


class TestMilestoneDelivery:
    async def test_failed_grant_is_resent_on_next_activity(self, engine, clock, reward_sink, recorded_events):
        reward_sink.fail_kinds = {"xp"}
        for _ in range(2):
            await engine.apply_activity("ada", "complete_lesson")
            clock.advance(days=1)
        with pytest.raises(PartialRewardFailureError):
            await engine.apply_activity("ada", "complete_lesson")

        reward_sink.fail_kinds = set()
        clock.advance(days=1)
        await engine.apply_activity("ada", "complete_lesson")

        [grant] = reward_sink.applied_of("xp")
        assert grant["amount"] == 30
        assert grant["idempotency_key"] == "ada:streak:3"
        streak = await engine.get_learning_streak("ada")
        assert [(r.streak_length, r.delivered) for r in streak.streak_rewards] == [(3, True)]
        assert [n for n, _ in recorded_events].count("streak.milestone_claimed") == 1

    async def test_delivered_grant_is_not_resent(self, engine, clock, reward_sink):
        for _ in range(3):
            await engine.apply_activity("ada", "complete_lesson")
            clock.advance(days=1)

        await engine.apply_activity("ada", "complete_lesson")

        assert [k for k, _, _ in reward_sink.calls] == ["xp"]

    async def test_undelivered_claim_is_resent_same_day(self, engine, clock, reward_sink, seed_streak):
        await seed_streak("ada", 3, clock.now.date(), claimed=(3,), delivered=False)

        await engine.apply_activity("ada", "complete_lesson")

        [grant] = reward_sink.applied_of("xp")
        assert grant["idempotency_key"] == "ada:streak:3"
        streak = await engine.get_learning_streak("ada")
        assert streak.streak_rewards[0].delivered is True
