"""
Activity to objective matching.

Pure functions over ``QuestObjective`` values; the progress tracker owns
loading and persisting them.

    objective type     activity          condition              increment
    answer_questions   answer_question   correct_answers > 0    correct_answers
    complete_lessons   complete_lesson   -                      1
    earn_xp            earn_xp           xp_earned > 0          xp_earned
    achieve_accuracy   answer_question   accuracy is set        accuracy
    maintain_streak    complete_lesson   -                      1

``achieve_accuracy`` adds the latest reported accuracy (rounded to an int)
through the same capped sum as every other type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from questline.database.models.enums import ObjectiveType
from questline.modules.quests.models import ActivityPayload, ActivityType, QuestObjective

_Rule = Tuple[ActivityType, Callable[[ActivityPayload], bool], Callable[[ActivityPayload], int]]

_RULES: Dict[ObjectiveType, _Rule] = {
    ObjectiveType.ANSWER_QUESTIONS: (
        ActivityType.ANSWER_QUESTION,
        lambda p: p.correct_answers > 0,
        lambda p: p.correct_answers,
    ),
    ObjectiveType.COMPLETE_LESSONS: (
        ActivityType.COMPLETE_LESSON,
        lambda p: True,
        lambda p: 1,
    ),
    ObjectiveType.EARN_XP: (
        ActivityType.EARN_XP,
        lambda p: p.xp_earned > 0,
        lambda p: p.xp_earned,
    ),
    ObjectiveType.ACHIEVE_ACCURACY: (
        ActivityType.ANSWER_QUESTION,
        lambda p: p.accuracy is not None,
        lambda p: int(round(p.accuracy or 0)),
    ),
    # streak length itself is tracked by the streak tracker
    ObjectiveType.MAINTAIN_STREAK: (
        ActivityType.COMPLETE_LESSON,
        lambda p: True,
        lambda p: 1,
    ),
}


@dataclass(frozen=True)
class ObjectiveUpdate:
    objective_id: str
    previous_value: int
    new_value: int
    completed_now: bool


def matches(objective: QuestObjective, activity_type: ActivityType, payload: ActivityPayload) -> bool:
    """True when an incomplete objective is touched by this activity."""
    if objective.completed:
        return False
    if objective.subject_id and objective.subject_id != payload.subject_id:
        return False
    rule = _RULES.get(objective.type)
    if rule is None:
        return False
    expected_activity, condition, _ = rule
    return activity_type == expected_activity and condition(payload)


def increment_for(objective: QuestObjective, payload: ActivityPayload) -> int:
    rule = _RULES.get(objective.type)
    if rule is None:
        return 0
    return max(rule[2](payload), 0)


def apply_to_objectives(
    objectives: List[QuestObjective],
    activity_type: ActivityType,
    payload: ActivityPayload,
) -> List[ObjectiveUpdate]:
    """
    Advance every matching objective in place.

    Returns one update per objective whose value or completion changed.
    """
    updates: List[ObjectiveUpdate] = []
    for objective in objectives:
        if not matches(objective, activity_type, payload):
            continue

        previous = objective.current_value
        new_value = min(previous + increment_for(objective, payload), objective.target_value)
        new_value = max(new_value, previous)
        completed_now = new_value >= objective.target_value

        if new_value == previous and not completed_now:
            continue

        objective.current_value = new_value
        objective.completed = completed_now
        updates.append(ObjectiveUpdate(objective.id, previous, new_value, completed_now))

    return updates
