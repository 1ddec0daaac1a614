"""
Answer / action subledger: uniqueness, consensus, completion rules and notes.
"""

import pytest
from sqlalchemy import delete, func, select

from bmt.core.exceptions import (
    AlreadyCompletedError,
    DuplicateAnswerError,
    EvaluationClosedError,
    ForbiddenError,
    MissingClosingRemarkError,
    StaleProgressionError,
    ValidationError,
)
from bmt.models import db
from bmt.models.evaluation import PROGRESSIONS, Evaluation, Participant, Question
from bmt.models.followup import Action, Answer, ClosingRemark, Note
from bmt.models.project import Project
from bmt.services import action_service, answer_service, evaluation_service, participant_service
from bmt.services.progression import advance_participant_progression

FACILITATOR = "aad-facilitator"
MEMBER = "aad-member"
OBSERVER = "aad-observer"


@pytest.fixture()
def question_id(evaluation):
    return evaluation["questions"][0]["id"]


@pytest.fixture()
def member(evaluation):
    return participant_service.add_participant(
        evaluation["id"], FACILITATOR, MEMBER, "engineering", "participant",
    )


@pytest.fixture()
def observer(evaluation):
    return participant_service.add_participant(
        evaluation["id"], FACILITATOR, OBSERVER, "pre_ops", "read_only",
    )


@pytest.fixture()
def action(question_id):
    return action_service.create_action(question_id, FACILITATOR, "Update the strategy", "Owner missing")


def _finish(evaluation):
    for stage in PROGRESSIONS[1:]:
        advance_participant_progression(evaluation["id"], FACILITATOR, stage)


class TestAnswers:
    def test_record_answer(self, question_id):
        answer = answer_service.record_answer(question_id, FACILITATOR, "nomination", " Looks fine ", "low")
        assert answer["text"] == "Looks fine"
        assert answer["severity"] == "low"
        assert answer["answered_by_id"] is not None

    def test_duplicate_answer_rejected(self, question_id):
        answer_service.record_answer(question_id, FACILITATOR, "nomination", "first", "low")
        with pytest.raises(DuplicateAnswerError):
            answer_service.record_answer(question_id, FACILITATOR, "nomination", "second", "high")

    def test_two_participants_same_stage(self, question_id, member):
        a = answer_service.record_answer(question_id, FACILITATOR, "nomination", "mine", "low")
        b = answer_service.record_answer(question_id, MEMBER, "nomination", "theirs", "high")
        assert a["answered_by_id"] != b["answered_by_id"]

    def test_later_stage_is_new_row(self, evaluation, question_id):
        first = answer_service.record_answer(question_id, FACILITATOR, "nomination", "n", "low")
        advance_participant_progression(evaluation["id"], FACILITATOR, "individual")
        second = answer_service.record_answer(question_id, FACILITATOR, "individual", "i", "high")
        assert first["id"] != second["id"]
        assert second["progression"] == "individual"

    def test_invalid_severity(self, question_id):
        with pytest.raises(ValidationError):
            answer_service.record_answer(question_id, FACILITATOR, "nomination", "x", "critical")

    def test_read_only_forbidden(self, question_id, observer):
        with pytest.raises(ForbiddenError):
            answer_service.record_answer(question_id, OBSERVER, "nomination", "x", "low")

    def test_consensus_requires_facilitator(self, question_id, member):
        with pytest.raises(ForbiddenError):
            answer_service.record_answer(question_id, MEMBER, "nomination", "x", "low", consensus=True)

    def test_consensus_answer_has_no_author(self, question_id):
        own = answer_service.record_answer(question_id, FACILITATOR, "nomination", "mine", "low")
        consensus = answer_service.record_answer(
            question_id, FACILITATOR, "nomination", "agreed", "limited", consensus=True,
        )
        assert consensus["answered_by_id"] is None
        assert own["id"] != consensus["id"]

    def test_consensus_answers_are_not_unique(self, question_id):
        first = answer_service.record_answer(
            question_id, FACILITATOR, "nomination", "agreed", "limited", consensus=True,
        )
        second = answer_service.record_answer(
            question_id, FACILITATOR, "nomination", "revisited", "high", consensus=True,
        )
        assert first["id"] != second["id"]
        assert first["answered_by_id"] is None and second["answered_by_id"] is None

    def test_non_string_text_rejected(self, question_id):
        with pytest.raises(ValidationError):
            answer_service.record_answer(question_id, FACILITATOR, "nomination", ["x"], "low")

    def test_edit_own_answer(self, question_id):
        answer = answer_service.record_answer(question_id, FACILITATOR, "nomination", "draft", "low")
        edited = answer_service.edit_answer(answer["id"], FACILITATOR, "final", "high")
        assert (edited["id"], edited["text"], edited["severity"]) == (answer["id"], "final", "high")

    def test_edit_other_answer_forbidden(self, question_id, member):
        answer = answer_service.record_answer(question_id, MEMBER, "nomination", "theirs", "low")
        with pytest.raises(ForbiddenError):
            answer_service.edit_answer(answer["id"], FACILITATOR, "mine now", "low")

    def test_edit_after_advancing_is_stale(self, evaluation, question_id):
        answer = answer_service.record_answer(question_id, FACILITATOR, "nomination", "draft", "low")
        advance_participant_progression(evaluation["id"], FACILITATOR, "individual")
        with pytest.raises(StaleProgressionError):
            answer_service.edit_answer(answer["id"], FACILITATOR, "too late", "low")


class TestActions:
    def test_create_action(self, action):
        assert action["title"] == "Update the strategy"
        assert action["priority"] == "medium"
        assert action["completed"] is False
        assert action["notes"] == [] and action["closing_remarks"] == []

    def test_assignee_must_belong_to_evaluation(self, question_id, member):
        action = action_service.create_action(
            question_id, FACILITATOR, "Assigned", assigned_to_id=member["id"],
        )
        assert action["assigned_to_id"] == member["id"]
        with pytest.raises(ValidationError):
            action_service.create_action(question_id, FACILITATOR, "Bad", assigned_to_id="someone-else")

    def test_invalid_due_date(self, question_id):
        with pytest.raises(ValidationError):
            action_service.create_action(question_id, FACILITATOR, "Dated", due_date="next week")

    def test_edit_action(self, action):
        edited = action_service.edit_action(
            action["id"], FACILITATOR, title="Renamed", priority="high", on_hold=True, due_date="2026-12-01",
        )
        assert edited["title"] == "Renamed"
        assert edited["priority"] == "high"
        assert edited["on_hold"] is True
        assert edited["due_date"].startswith("2026-12-01")

    def test_edit_unknown_field_rejected(self, action):
        with pytest.raises(ValidationError):
            action_service.edit_action(action["id"], FACILITATOR, completed=True)

    def test_void_hides_action(self, evaluation, action):
        action_service.void_action(action["id"], FACILITATOR)
        visible = evaluation_service.get_evaluation(evaluation["id"])["questions"][0]["actions"]
        assert visible == []
        everything = evaluation_service.get_evaluation(evaluation["id"], include_voided=True)
        assert [a["id"] for a in everything["questions"][0]["actions"]] == [action["id"]]
        with pytest.raises(ValidationError):
            action_service.edit_action(action["id"], FACILITATOR, title="Nope")

    def test_complete_requires_remark(self, action):
        with pytest.raises(MissingClosingRemarkError):
            action_service.complete_action(action["id"], FACILITATOR, "   ")

    def test_complete_twice_rejected(self, action):
        done = action_service.complete_action(action["id"], FACILITATOR, "Strategy updated")
        assert done["completed"] is True
        assert [r["text"] for r in done["closing_remarks"]] == ["Strategy updated"]
        with pytest.raises(AlreadyCompletedError):
            action_service.complete_action(action["id"], FACILITATOR, "Again")

    def test_complete_voided_rejected(self, action):
        action_service.void_action(action["id"], FACILITATOR)
        with pytest.raises(ValidationError):
            action_service.complete_action(action["id"], FACILITATOR, "Done")

    def test_complete_allowed_after_finish(self, evaluation, action):
        _finish(evaluation)
        done = action_service.complete_action(action["id"], FACILITATOR, "Closed out")
        assert done["completed"] is True

    def test_action_writes_rejected_after_finish(self, evaluation, question_id, action):
        _finish(evaluation)
        with pytest.raises(EvaluationClosedError):
            action_service.create_action(question_id, FACILITATOR, "Too late")
        with pytest.raises(EvaluationClosedError):
            action_service.edit_action(action["id"], FACILITATOR, title="Renamed late")
        with pytest.raises(EvaluationClosedError):
            action_service.void_action(action["id"], FACILITATOR)

    def test_non_string_fields_rejected(self, question_id, action):
        with pytest.raises(ValidationError):
            action_service.create_action(question_id, FACILITATOR, 5)
        with pytest.raises(ValidationError):
            action_service.edit_action(action["id"], FACILITATOR, description={"x": 1})
        with pytest.raises(ValidationError):
            action_service.add_note(action["id"], FACILITATOR, 42)

    def test_read_only_cannot_create(self, question_id, observer):
        with pytest.raises(ForbiddenError):
            action_service.create_action(question_id, OBSERVER, "Nope")


class TestNotes:
    def test_add_note(self, action, member):
        note = action_service.add_note(action["id"], MEMBER, "Called the owner")
        assert note["text"] == "Called the owner"
        assert note["created_by_id"] == member["id"]

    def test_note_on_completed_action_allowed(self, action):
        action_service.complete_action(action["id"], FACILITATOR, "Done")
        assert action_service.add_note(action["id"], FACILITATOR, "Follow-up call")["text"] == "Follow-up call"

    def test_blank_note_rejected(self, action):
        with pytest.raises(ValidationError):
            action_service.add_note(action["id"], FACILITATOR, " ")

    def test_note_after_finish_rejected(self, evaluation, action):
        _finish(evaluation)
        with pytest.raises(EvaluationClosedError):
            action_service.add_note(action["id"], FACILITATOR, "Too late")


class TestCascadeDelete:
    def test_deleting_project_removes_evaluation_graph(self, project, evaluation, question_id, action, member):
        answer_service.record_answer(question_id, MEMBER, "nomination", "theirs", "low")
        action_service.add_note(action["id"], MEMBER, "Called the owner")
        action_service.complete_action(action["id"], FACILITATOR, "Done")

        db.session.execute(delete(Project.__table__).where(Project.__table__.c.id == project["id"]))
        db.session.commit()
        db.session.expunge_all()

        for model in (Evaluation, Participant, Question, Answer, Action, Note, ClosingRemark):
            count = db.session.execute(select(func.count()).select_from(model.__table__)).scalar()
            assert count == 0, model.__name__
