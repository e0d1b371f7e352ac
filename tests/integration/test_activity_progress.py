"""
Integration tests for applying activity events to active quests.
"""

import asyncio

import pytest

from questline.modules.quests.models import ActivityPayload, ActivityType
from questline.modules.shared.exceptions import PartialRewardFailureError, ValidationError

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
async def math_quest(engine, progress_provider):
    progress_provider.add_learner("ada", level=1, worlds=["numerical-kingdom"])
    [quest] = await engine.generate_daily_quests("ada")
    return quest


def names(events):
    return [name for name, _ in events]


class TestObjectiveProgress:
    async def test_partial_progress(self, engine, math_quest, recorded_events):
        await engine.apply_activity("ada", "answer_question", {"subject_id": "mathematics", "correct_answers": 3})

        [quest] = await engine.get_active_quests("ada")
        assert quest.objectives[0].current_value == 3
        assert quest.objectives[0].completed is False
        assert quest.progress_percentage == 60
        progressed = [p for n, p in recorded_events if n == "quest.progressed"]
        assert progressed[0]["objectives"][0]["new_value"] == 3

    async def test_final_increment_completes_and_rewards(self, engine, math_quest, reward_sink, recorded_events):
        payload = ActivityPayload(subject_id="mathematics", correct_answers=3)
        await engine.apply_activity("ada", ActivityType.ANSWER_QUESTION, payload)

        await engine.apply_activity("ada", "answer_question", {"subject_id": "mathematics", "correct_answers": 2})

        assert await engine.get_active_quests("ada") == []
        assert reward_sink.applied_of("xp")[0]["amount"] == 50
        assert reward_sink.applied_of("xp")[0]["idempotency_key"] == f"ada:{math_quest.id}:0"
        assert reward_sink.applied_of("stat_points")[0]["amount"] == 1
        assert names(recorded_events).count("quest.completed") == 1
        assert names(recorded_events).count("quest.rewards_distributed") == 1

    async def test_increment_is_capped_at_target(self, engine, math_quest, recorded_events):
        await engine.apply_activity("ada", "answer_question", {"subject_id": "mathematics", "correct_answers": 9})

        progressed = [p for n, p in recorded_events if n == "quest.progressed"]
        assert progressed[0]["objectives"][0]["new_value"] == 5
        assert progressed[0]["objectives"][0]["completed"] is True

    async def test_concurrent_events_do_not_overshoot(self, engine, math_quest, recorded_events, reward_sink):
        payload = {"subject_id": "mathematics", "correct_answers": 3}

        await asyncio.gather(
            engine.apply_activity("ada", "answer_question", payload),
            engine.apply_activity("ada", "answer_question", payload),
        )

        values = [p["objectives"][0]["new_value"] for n, p in recorded_events if n == "quest.progressed"]
        assert sorted(values) == [3, 5]
        assert names(recorded_events).count("quest.completed") == 1
        assert len(reward_sink.applied_of("xp")) == 1

    async def test_other_subject_does_not_progress(self, engine, math_quest, recorded_events):
        await engine.apply_activity("ada", "answer_question", {"subject_id": "science", "correct_answers": 5})

        [quest] = await engine.get_active_quests("ada")
        assert quest.objectives[0].current_value == 0
        assert "quest.progressed" not in names(recorded_events)

    async def test_zero_correct_answers_is_ignored(self, engine, math_quest, recorded_events):
        await engine.apply_activity("ada", "answer_question", {"subject_id": "mathematics", "correct_answers": 0})

        assert "quest.progressed" not in names(recorded_events)

    async def test_expired_quests_are_untouched(self, engine, math_quest, clock, recorded_events):
        clock.advance(days=1)

        await engine.apply_activity("ada", "answer_question", {"subject_id": "mathematics", "correct_answers": 5})

        assert "quest.completed" not in names(recorded_events)

    async def test_unknown_activity_type(self, engine):
        with pytest.raises(ValidationError):
            await engine.apply_activity("ada", "watch_video", {})


class TestActivityStreakAndFailures:
    async def test_every_activity_touches_streak(self, engine, recorded_events):
        await engine.apply_activity("nobody-with-quests", "complete_lesson")

        streak = await engine.get_learning_streak("nobody-with-quests")
        assert streak.current_streak == 1
        assert names(recorded_events) == ["streak.updated"]

    async def test_reward_failure_keeps_completion(self, engine, math_quest, reward_sink):
        reward_sink.fail_kinds = {"stat_points"}

        with pytest.raises(PartialRewardFailureError) as excinfo:
            await engine.apply_activity("ada", "answer_question", {"subject_id": "mathematics", "correct_answers": 5})

        assert [f.reward_type for f in excinfo.value.failures] == ["stat_points"]
        assert await engine.get_active_quests("ada") == []
        streak = await engine.get_learning_streak("ada")
        assert streak.current_streak == 1
