"""
Quests Module
=============

Domain: template-driven quests with per-learner objective progress

Services:
- QuestEngine: facade over generation, progress, completion and streaks
- QuestGenerator: per-period quest sets under prerequisite constraints
- ObjectiveProgressTracker: activity events to objective increments
- QuestLifecycleManager: completion and reward delivery
"""

from .catalog import QuestTemplateCatalog
from .completion import QuestLifecycleManager
from .engine import QuestEngine, build_engine
from .generator import QuestGenerator, QuestSelector
from .lifecycle import QuestLifecycleStore
from .models import (
    ActivityPayload,
    ActivityType,
    ObjectiveSpec,
    Prerequisites,
    Quest,
    QuestObjective,
    QuestTemplate,
)
from .progress import ObjectiveProgressTracker

__all__ = [
    "QuestEngine",
    "build_engine",
    "QuestTemplateCatalog",
    "QuestGenerator",
    "QuestSelector",
    "QuestLifecycleStore",
    "QuestLifecycleManager",
    "ObjectiveProgressTracker",
    "ActivityPayload",
    "ActivityType",
    "ObjectiveSpec",
    "Prerequisites",
    "Quest",
    "QuestObjective",
    "QuestTemplate",
]
