"""
Quest domain types.

Templates are immutable catalog entries. ``Quest.from_template`` copies a
template into a fresh per-learner aggregate so mutating objective state
never touches the shared template.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from questline.database.models.enums import Cadence, ObjectiveType, QuestCategory
from questline.modules.rewards.models import QuestReward, parse_reward


class ActivityType(str, enum.Enum):
    """Kinds of learner activity the engine consumes."""

    ANSWER_QUESTION = "answer_question"
    COMPLETE_LESSON = "complete_lesson"
    EARN_XP = "earn_xp"


# ============================================================================
# Catalog types
# ============================================================================


@dataclass(frozen=True)
class ObjectiveSpec:
    type: ObjectiveType
    target: int
    description: str = ""
    subject_id: Optional[str] = None


@dataclass(frozen=True)
class Prerequisites:
    """Unset fields impose no constraint."""

    minimum_level: Optional[int] = None
    required_subject_xp: Optional[int] = None
    completed_quests: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.minimum_level and not self.required_subject_xp and not self.completed_quests


@dataclass(frozen=True)
class QuestTemplate:
    id: str
    title: str
    description: str
    cadence: Cadence
    category: QuestCategory
    objectives: Tuple[ObjectiveSpec, ...]
    rewards: Tuple[QuestReward, ...] = ()
    difficulty: int = 1
    estimated_minutes: int = 0
    world_id: Optional[str] = None
    subject_id: Optional[str] = None
    prerequisites: Prerequisites = field(default_factory=Prerequisites)


# ============================================================================
# Per-learner aggregates
# ============================================================================


@dataclass
class QuestObjective:
    """
    Mutable objective state.

    ``current_value`` only grows and is capped at ``target_value``;
    ``completed`` never reverts.
    """

    id: str
    type: ObjectiveType
    target_value: int
    current_value: int = 0
    completed: bool = False
    subject_id: Optional[str] = None
    description: str = ""

    def definition(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "target_value": self.target_value,
            "subject_id": self.subject_id,
            "description": self.description,
        }

    def to_state(self) -> Dict[str, Any]:
        return {**self.definition(), "current_value": self.current_value, "completed": self.completed}

    @classmethod
    def from_state(cls, data: Mapping[str, Any]) -> QuestObjective:
        return cls(
            id=str(data["id"]),
            type=ObjectiveType(data["type"]),
            target_value=int(data["target_value"]),
            current_value=int(data.get("current_value", 0)),
            completed=bool(data.get("completed", False)),
            subject_id=data.get("subject_id"),
            description=str(data.get("description", "")),
        )


@dataclass
class Quest:
    id: str
    template_id: str
    title: str
    description: str
    cadence: Cadence
    category: QuestCategory
    objectives: List[QuestObjective]
    rewards: List[QuestReward]
    created_at: datetime
    expires_at: datetime
    difficulty: int = 1
    estimated_minutes: int = 0
    world_id: Optional[str] = None
    subject_id: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None

    @classmethod
    def from_template(
        cls,
        template: QuestTemplate,
        *,
        quest_id: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> Quest:
        """Materialize ``template`` with zeroed objectives and copied lists."""
        objectives = [
            QuestObjective(
                id=f"{template.id}-obj-{index}",
                type=spec.type,
                target_value=spec.target,
                subject_id=spec.subject_id,
                description=spec.description,
            )
            for index, spec in enumerate(template.objectives)
        ]
        return cls(
            id=quest_id,
            template_id=template.id,
            title=template.title,
            description=template.description,
            cadence=template.cadence,
            category=template.category,
            objectives=objectives,
            rewards=list(template.rewards),
            created_at=created_at,
            expires_at=expires_at,
            difficulty=template.difficulty,
            estimated_minutes=template.estimated_minutes,
            world_id=template.world_id,
            subject_id=template.subject_id,
        )

    @classmethod
    def from_rows(cls, quest_row: Any, user_quest_row: Any) -> Quest:
        return cls(
            id=quest_row.id,
            template_id=quest_row.template_id,
            title=quest_row.title,
            description=quest_row.description,
            cadence=Cadence(quest_row.cadence),
            category=QuestCategory(quest_row.category),
            objectives=[QuestObjective.from_state(o) for o in (user_quest_row.objectives or [])],
            rewards=[parse_reward(r) for r in (quest_row.rewards or [])],
            created_at=quest_row.created_at,
            expires_at=quest_row.expires_at,
            difficulty=quest_row.difficulty,
            estimated_minutes=quest_row.estimated_minutes,
            world_id=quest_row.world_id,
            subject_id=quest_row.subject_id,
            completed=user_quest_row.completed,
            completed_at=user_quest_row.completed_at,
        )

    @property
    def all_objectives_completed(self) -> bool:
        return bool(self.objectives) and all(o.completed for o in self.objectives)

    @property
    def progress_percentage(self) -> int:
        total_target = sum(o.target_value for o in self.objectives)
        if total_target <= 0:
            return 0
        total_current = sum(o.current_value for o in self.objectives)
        return round(total_current / total_target * 100)

    def is_expired(self, now: datetime) -> bool:
        return not self.completed and now > self.expires_at

    def time_remaining(self, now: datetime) -> timedelta:
        return max(self.expires_at - now, timedelta(0))


@dataclass(frozen=True)
class ActivityPayload:
    subject_id: Optional[str] = None
    xp_earned: int = 0
    accuracy: Optional[float] = None
    questions_answered: int = 0
    correct_answers: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ActivityPayload:
        """Accept a loose dict as produced by an HTTP or queue layer."""
        accuracy = data.get("accuracy")
        return cls(
            subject_id=data.get("subject_id"),
            xp_earned=int(data.get("xp_earned", 0) or 0),
            accuracy=float(accuracy) if accuracy is not None else None,
            questions_answered=int(data.get("questions_answered", 0) or 0),
            correct_answers=int(data.get("correct_answers", 0) or 0),
        )
