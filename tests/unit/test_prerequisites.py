"""Unit tests for the prerequisite evaluator."""

import pytest

from questline.database.models.enums import Cadence, ObjectiveType, QuestCategory
from questline.modules.quests.models import ObjectiveSpec, Prerequisites, QuestTemplate
from questline.modules.quests.prerequisites import is_eligible
from questline.modules.shared.collaborators import SubjectProgress


def make_template(prerequisites=None, subject_id="mathematics"):
    return QuestTemplate(
        id="tpl",
        title="Template",
        description="",
        cadence=Cadence.WEEKLY,
        category=QuestCategory.LEARNING,
        objectives=(ObjectiveSpec(ObjectiveType.COMPLETE_LESSONS, 1),),
        subject_id=subject_id,
        prerequisites=prerequisites or Prerequisites(),
    )


@pytest.mark.unit
class TestIsEligible:
    def test_no_prerequisites_is_always_eligible(self):
        assert is_eligible(make_template(), level=1)

    def test_minimum_level(self):
        template = make_template(Prerequisites(minimum_level=5))

        assert not is_eligible(template, level=4)
        assert is_eligible(template, level=5)

    def test_required_subject_xp_uses_template_subject(self):
        template = make_template(Prerequisites(required_subject_xp=100))

        assert not is_eligible(template, 1, {"mathematics": SubjectProgress(99)})
        assert is_eligible(template, 1, {"mathematics": SubjectProgress(100)})

    def test_required_subject_xp_fails_without_progress_record(self):
        template = make_template(Prerequisites(required_subject_xp=10))

        assert not is_eligible(template, 1, {"science": SubjectProgress(500)})
        assert not is_eligible(template, 1, None)

    def test_required_subject_xp_ignored_for_subjectless_template(self):
        template = make_template(Prerequisites(required_subject_xp=1000), subject_id=None)

        assert is_eligible(template, 1, {})

    def test_completed_quests_enforced_when_history_given(self):
        template = make_template(Prerequisites(completed_quests=("a", "b")))

        assert not is_eligible(template, 1, completed_template_ids={"a"})
        assert is_eligible(template, 1, completed_template_ids={"a", "b", "c"})

    def test_completed_quests_skipped_without_history(self):
        template = make_template(Prerequisites(completed_quests=("a",)))

        assert is_eligible(template, 1, completed_template_ids=None)
