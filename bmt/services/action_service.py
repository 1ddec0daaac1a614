"""
Follow-up actions, notes and closing remarks.

Actions are never deleted: void_action() hides them from default listings.
Completion stays possible after the evaluation is finished so follow-up work
can be closed out; every other action write requires an open evaluation.
"""

import logging

from bmt.core.exceptions import (
    AlreadyCompletedError,
    ForbiddenError,
    MissingClosingRemarkError,
    ValidationError,
)
from bmt.models import db
from bmt.models.evaluation import ROLE_READ_ONLY, Participant, Question
from bmt.models.followup import PRIORITIES, Action, ClosingRemark, Note
from bmt.services.progression import ensure_evaluation_open, resolve_participant
from bmt.utils.helpers import clean_text, commit_or_raise, get_or_raise, parse_datetime

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "priority", "due_date", "on_hold", "assigned_to_id")


def _writer(evaluation_id, azure_unique_id):
    participant = resolve_participant(evaluation_id, azure_unique_id)
    if participant.role == ROLE_READ_ONLY:
        raise ForbiddenError("Read-only participants cannot modify actions")
    return participant


def _validate_assignee(evaluation_id, assigned_to_id):
    if not assigned_to_id:
        return None
    assignee = db.session.get(Participant, assigned_to_id)
    if assignee is None or assignee.evaluation_id != evaluation_id:
        raise ValidationError(
            "Assignee must be a participant of the same evaluation",
            details={"assigned_to_id": assigned_to_id},
        )
    if assignee.is_voided:
        raise ValidationError("Assignee has been removed from the evaluation",
                              details={"assigned_to_id": assigned_to_id})
    return assignee.id


def _validate_priority(priority):
    if priority not in PRIORITIES:
        raise ValidationError(
            f"Invalid priority '{priority}'",
            details={"priority": f"must be one of {', '.join(PRIORITIES)}"},
        )


def _get_live_action(action_id):
    action = get_or_raise(Action, action_id)
    if action.is_voided:
        raise ValidationError(f"Action id={action_id} is voided")
    return action


def create_action(
    question_id: str,
    azure_unique_id: str | None,
    title: str,
    description: str | None = "",
    priority: str = "medium",
    due_date=None,
    assigned_to_id: str | None = None,
) -> dict:
    """Raise a follow-up action against a question."""
    question = get_or_raise(Question, question_id)
    evaluation = question.evaluation
    participant = _writer(evaluation.id, azure_unique_id)
    ensure_evaluation_open(evaluation)

    title = clean_text(title, "title", required=True)
    description = clean_text(description, "description")
    _validate_priority(priority)

    action = Action(
        question_id=question_id,
        title=title,
        description=description,
        priority=priority,
        due_date=parse_datetime(due_date),
        created_by_id=participant.id,
        assigned_to_id=_validate_assignee(evaluation.id, assigned_to_id),
    )
    db.session.add(action)
    commit_or_raise()

    logger.info(
        "Action created",
        extra={"evaluation_id": evaluation.id, "participant_id": participant.id, "action_id": action.id},
    )
    return action.to_dict(include_children=True)


def edit_action(action_id: str, azure_unique_id: str | None, **fields) -> dict:
    """Update the editable fields of a live action on an open evaluation."""
    unknown = sorted(set(fields) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError("Unknown action fields", details={f: "not editable" for f in unknown})

    action = _get_live_action(action_id)
    evaluation = action.question.evaluation
    _writer(evaluation.id, azure_unique_id)
    ensure_evaluation_open(evaluation)

    if "title" in fields:
        action.title = clean_text(fields["title"], "title", required=True)
    if "description" in fields:
        action.description = clean_text(fields["description"], "description")
    if "priority" in fields:
        _validate_priority(fields["priority"])
        action.priority = fields["priority"]
    if "due_date" in fields:
        action.due_date = parse_datetime(fields["due_date"])
    if "on_hold" in fields:
        action.on_hold = bool(fields["on_hold"])
    if "assigned_to_id" in fields:
        action.assigned_to_id = _validate_assignee(evaluation.id, fields["assigned_to_id"])

    commit_or_raise()
    logger.info("Action edited", extra={"evaluation_id": evaluation.id, "action_id": action.id})
    return action.to_dict(include_children=True)


def void_action(action_id: str, azure_unique_id: str | None) -> dict:
    action = _get_live_action(action_id)
    evaluation = action.question.evaluation
    _writer(evaluation.id, azure_unique_id)
    ensure_evaluation_open(evaluation)

    action.is_voided = True
    commit_or_raise()
    logger.info("Action voided", extra={"evaluation_id": evaluation.id, "action_id": action.id})
    return action.to_dict()


def complete_action(action_id: str, azure_unique_id: str | None, closing_remark_text: str | None) -> dict:
    """Mark an action completed and append its closing remark.

    Raises:
        MissingClosingRemarkError: blank remark
        AlreadyCompletedError:     action already completed
        ValidationError:           action voided
    """
    action = get_or_raise(Action, action_id)
    evaluation = action.question.evaluation
    participant = _writer(evaluation.id, azure_unique_id)

    remark = clean_text(closing_remark_text, "closing_remark")
    if not remark:
        raise MissingClosingRemarkError(action_id)
    if action.is_voided:
        raise ValidationError(f"Action id={action_id} is voided")
    if action.completed:
        raise AlreadyCompletedError(action_id)

    action.completed = True
    action.on_hold = False
    action.closing_remarks.append(ClosingRemark(
        text=remark,
        created_by_id=participant.id,
    ))
    commit_or_raise()

    logger.info(
        "Action completed",
        extra={"evaluation_id": evaluation.id, "participant_id": participant.id, "action_id": action.id},
    )
    return action.to_dict(include_children=True)


def add_note(action_id: str, azure_unique_id: str | None, text: str | None) -> dict:
    """Append a note to an action's activity log."""
    action = get_or_raise(Action, action_id)
    evaluation = action.question.evaluation
    participant = resolve_participant(evaluation.id, azure_unique_id)

    text = clean_text(text, "text", required=True)
    ensure_evaluation_open(evaluation)

    note = Note(action_id=action.id, text=text, created_by_id=participant.id)
    db.session.add(note)
    commit_or_raise()
    logger.info(
        "Note added",
        extra={"evaluation_id": evaluation.id, "participant_id": participant.id, "action_id": action.id},
    )
    return note.to_dict()
