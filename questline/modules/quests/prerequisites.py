"""
Prerequisite evaluation.

A pure eligibility check; missing inputs mean "no constraint" except where a
constraint is set and the data it needs is absent, which fails the check.
"""

from __future__ import annotations

from typing import AbstractSet, Mapping, Optional

from questline.modules.quests.models import QuestTemplate
from questline.modules.shared.collaborators import SubjectProgress


def is_eligible(
    template: QuestTemplate,
    level: int,
    subject_progress: Optional[Mapping[str, SubjectProgress]] = None,
    completed_template_ids: Optional[AbstractSet[str]] = None,
) -> bool:
    """
    Args:
        template: Candidate template
        level: Learner's character level
        subject_progress: Accumulated XP per subject id
        completed_template_ids: Templates the learner has completed; ``None``
            skips the completed-quest check
    """
    prereqs = template.prerequisites

    if prereqs.minimum_level and level < prereqs.minimum_level:
        return False

    # subject XP only applies to templates bound to a subject
    if prereqs.required_subject_xp and template.subject_id:
        progress = (subject_progress or {}).get(template.subject_id)
        if progress is None or progress.total_xp < prereqs.required_subject_xp:
            return False

    if prereqs.completed_quests and completed_template_ids is not None:
        if not set(prereqs.completed_quests).issubset(completed_template_ids):
            return False

    return True
