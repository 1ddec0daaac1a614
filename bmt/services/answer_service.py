"""
Answer recording.

Answers are keyed by (question, author, progression). The uniqueness rule is
checked up front for a clean error and enforced again by the partial unique
index, so a concurrent duplicate still surfaces as DuplicateAnswerError.

Consensus answers are the facilitator's agreed answer for the whole group.
They carry no author, so the uniqueness rule does not apply to them and a
facilitator may record several at the same stage.
"""

import logging

from sqlalchemy import select

from bmt.core.exceptions import DuplicateAnswerError, ForbiddenError, ValidationError
from bmt.models import db
from bmt.models.evaluation import ROLE_FACILITATOR, ROLE_READ_ONLY, Question
from bmt.models.followup import SEVERITIES, Answer
from bmt.services.progression import (
    ensure_answer_stage,
    ensure_evaluation_open,
    resolve_participant,
)
from bmt.utils.helpers import clean_text, commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def _validate_severity(severity):
    if severity not in SEVERITIES:
        raise ValidationError(
            f"Invalid severity '{severity}'",
            details={"severity": f"must be one of {', '.join(SEVERITIES)}"},
        )


def _writable_participant(question, azure_unique_id, progression):
    """Resolve the caller and apply the evaluation and stage write gates."""
    evaluation = question.evaluation
    participant = resolve_participant(evaluation.id, azure_unique_id)
    if participant.role == ROLE_READ_ONLY:
        raise ForbiddenError("Read-only participants cannot record answers")
    ensure_evaluation_open(evaluation)
    ensure_answer_stage(participant, progression)
    return participant


def record_answer(
    question_id: str,
    azure_unique_id: str | None,
    progression: str,
    text: str | None,
    severity: str,
    consensus: bool = False,
) -> dict:
    """Record the caller's answer to a question at one progression stage.

    Args:
        consensus: Record the facilitator's group answer (no author).

    Raises:
        NotFoundError:         question does not exist
        ForbiddenError:        not a participant, read-only, or consensus by a non-facilitator
        ValidationError:       bad severity or voided evaluation
        EvaluationClosedError: evaluation finished
        StaleProgressionError: progression is not the caller's current stage
        DuplicateAnswerError:  caller already answered at this stage (never for consensus)
    """
    _validate_severity(severity)
    text = clean_text(text, "text")
    question = get_or_raise(Question, question_id)
    participant = _writable_participant(question, azure_unique_id, progression)

    if consensus:
        if participant.role != ROLE_FACILITATOR:
            raise ForbiddenError("Only the facilitator can record a consensus answer")
        author_id = None
    else:
        author_id = participant.id
        existing = db.session.execute(
            select(Answer.id).where(
                Answer.question_id == question_id,
                Answer.progression == progression,
                Answer.answered_by_id == author_id,
            )
        ).first()
        if existing:
            raise DuplicateAnswerError(question_id, author_id, progression)

    answer = Answer(
        question_id=question_id,
        answered_by_id=author_id,
        progression=progression,
        severity=severity,
        text=text,
    )
    participant_id = participant.id
    db.session.add(answer)
    commit_or_raise(on_integrity_error=lambda: DuplicateAnswerError(question_id, participant_id, progression))

    logger.info(
        "Answer recorded",
        extra={
            "evaluation_id": question.evaluation_id,
            "participant_id": participant.id,
            "progression": progression,
            "consensus": consensus,
        },
    )
    return answer.to_dict()


def edit_answer(answer_id: str, azure_unique_id: str | None, text: str | None, severity: str) -> dict:
    """Update an answer in place. Only its author, and only at the same stage."""
    _validate_severity(severity)
    answer = get_or_raise(Answer, answer_id)
    question = answer.question
    participant = _writable_participant(question, azure_unique_id, answer.progression)

    if answer.answered_by_id is None:
        if participant.role != ROLE_FACILITATOR:
            raise ForbiddenError("Only the facilitator can edit a consensus answer")
    elif answer.answered_by_id != participant.id:
        raise ForbiddenError("Answers can only be edited by their author")

    answer.text = clean_text(text, "text")
    answer.severity = severity
    commit_or_raise()
    logger.info(
        "Answer edited",
        extra={"evaluation_id": question.evaluation_id, "participant_id": participant.id},
    )
    return answer.to_dict()
