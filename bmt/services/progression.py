"""
Progression Engine.

Three correlated tracks are kept consistent here:
  - each Participant's own progression (forward-only, one stage at a time)
  - each Answer's progression (the stage it was given at)
  - the Evaluation's aggregate progression (min over the quorum)

Every participant change locks the owning evaluation row, recomputes the
aggregate in the same transaction and bumps the evaluation's row version, so
two concurrent advances on one evaluation cannot both commit against a stale
participant set.

Quorum policies are named predicates over a Participant, selected with the
QUORUM_POLICY config key. Extra policies can be added with
register_quorum_policy().

Functions:
  advance_participant_progression()  — the one public state transition
  recompute_aggregate()              — min-over-quorum, called after any participant change
  resolve_participant()              — caller identity → Participant row (ForbiddenError otherwise)
  ensure_evaluation_open()           — write gate for a finished / voided evaluation
  ensure_answer_stage()              — write gate for an answer's stage
"""

import logging

from flask import current_app
from sqlalchemy import select

from bmt.core.exceptions import (
    EvaluationClosedError,
    ForbiddenError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    StaleProgressionError,
    ValidationError,
)
from bmt.models import _utcnow, db
from bmt.models.evaluation import (
    PROGRESSIONS,
    ROLE_READ_ONLY,
    WORKSHOP_COMPLETE_PROGRESSION,
    Evaluation,
    Participant,
    progression_index,
)
from bmt.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

DEFAULT_QUORUM_POLICY = "all_active"

_QUORUM_POLICIES = {
    "all_active": lambda p: not p.is_voided,
    "exclude_read_only": lambda p: not p.is_voided and p.role != ROLE_READ_ONLY,
}


def register_quorum_policy(name: str, predicate) -> None:
    """Make a participant predicate selectable through QUORUM_POLICY."""
    _QUORUM_POLICIES[name] = predicate


def get_quorum_policy():
    name = current_app.config.get("QUORUM_POLICY", DEFAULT_QUORUM_POLICY)
    try:
        return _QUORUM_POLICIES[name]
    except KeyError:
        raise InternalError(f"Unknown QUORUM_POLICY '{name}'") from None


# ── Stage helpers ─────────────────────────────────────────────────────────────


def next_progression(current: str) -> str | None:
    """Stage following `current`, or None at the terminal stage."""
    idx = progression_index(current)
    if idx + 1 >= len(PROGRESSIONS):
        return None
    return PROGRESSIONS[idx + 1]


def _checked_index(progression: str) -> int:
    if progression not in PROGRESSIONS:
        raise ValidationError(
            f"Unknown progression '{progression}'",
            details={"progression": f"must be one of {', '.join(PROGRESSIONS)}"},
        )
    return progression_index(progression)


def validate_advance(current: str, requested: str) -> None:
    """Allow exactly one step forward; anything else is an invalid transition."""
    requested_idx = _checked_index(requested)
    current_idx = progression_index(current)
    if requested_idx <= current_idx:
        raise InvalidTransitionError(current, requested, "progression cannot move backwards")
    if requested_idx > current_idx + 1:
        raise InvalidTransitionError(current, requested, "progression cannot skip stages")


# ── Gates ─────────────────────────────────────────────────────────────────────


def ensure_evaluation_open(evaluation: Evaluation) -> None:
    if evaluation.status == "voided":
        raise ValidationError(f"Evaluation id={evaluation.id} is voided")
    if evaluation.is_finished:
        raise EvaluationClosedError(evaluation.id)


def ensure_answer_stage(participant: Participant, progression: str) -> None:
    """An answer may only be written at the author's current stage."""
    target_idx = _checked_index(progression)
    current_idx = progression_index(participant.progression)
    if target_idx < current_idx:
        raise StaleProgressionError(
            f"Participant has already advanced to '{participant.progression}'; "
            f"answers for '{progression}' can no longer be changed",
            progression=progression,
        )
    if target_idx > current_idx:
        raise StaleProgressionError(
            f"Participant is at '{participant.progression}' and has not reached '{progression}'",
            progression=progression,
        )


def resolve_participant(evaluation_id: str, azure_unique_id: str | None, roles=None) -> Participant:
    """Map the caller identity to its Participant row on the evaluation.

    Raises:
        ForbiddenError: no identity, no participant row, voided row, or a role
                        outside `roles` when given.
    """
    if not azure_unique_id:
        raise ForbiddenError("An authenticated caller identity is required")
    participant = db.session.execute(
        select(Participant).where(
            Participant.evaluation_id == evaluation_id,
            Participant.azure_unique_id == azure_unique_id,
        )
    ).scalars().first()
    if participant is None or participant.is_voided:
        raise ForbiddenError(f"Caller is not a participant of evaluation id={evaluation_id}")
    if roles is not None and participant.role not in roles:
        raise ForbiddenError(
            f"Role '{participant.role}' may not perform this operation "
            f"(requires one of: {', '.join(roles)})"
        )
    return participant


# ── Aggregate ─────────────────────────────────────────────────────────────────


def lock_evaluation(evaluation_id: str) -> Evaluation:
    """Load the evaluation row with a write lock (no-op lock on SQLite)."""
    evaluation = db.session.execute(
        select(Evaluation)
        .where(Evaluation.id == evaluation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()
    if evaluation is None:
        raise NotFoundError(resource="Evaluation", resource_id=evaluation_id)
    return evaluation


def recompute_aggregate(evaluation: Evaluation) -> str:
    """Set the evaluation progression to the minimum over its quorum.

    An empty quorum leaves the aggregate unchanged. The evaluation row is
    always touched so its version increments with every participant change.
    """
    in_quorum = get_quorum_policy()
    participants = db.session.execute(
        select(Participant).where(Participant.evaluation_id == evaluation.id)
    ).scalars().all()
    members = [p for p in participants if in_quorum(p)]

    evaluation.updated_at = _utcnow()
    if not members:
        return evaluation.progression

    aggregate = min((p.progression for p in members), key=progression_index)
    if aggregate != evaluation.progression:
        logger.info(
            "Evaluation progression changed",
            extra={
                "evaluation_id": evaluation.id,
                "from_progression": evaluation.progression,
                "progression": aggregate,
            },
        )
        evaluation.progression = aggregate
    if (
        evaluation.workshop_complete_date is None
        and progression_index(aggregate) >= progression_index(WORKSHOP_COMPLETE_PROGRESSION)
    ):
        evaluation.workshop_complete_date = _utcnow()
    return aggregate


# ── Public API ────────────────────────────────────────────────────────────────


def advance_participant_progression(
    evaluation_id: str,
    azure_unique_id: str | None,
    new_progression: str,
) -> dict:
    """Advance the caller's own participant progression by exactly one stage.

    Returns:
        {"participant": {...}, "evaluation": {...}} after commit.

    Raises:
        NotFoundError:          evaluation does not exist
        ForbiddenError:         caller is not an active participant
        ValidationError:        unknown stage, or evaluation voided
        InvalidTransitionError: backwards, same-stage or skipping move
    """
    evaluation = lock_evaluation(evaluation_id)
    if evaluation.status == "voided":
        raise ValidationError(f"Evaluation id={evaluation_id} is voided")

    participant = resolve_participant(evaluation_id, azure_unique_id)
    validate_advance(participant.progression, new_progression)

    previous = participant.progression
    participant.progression = new_progression
    db.session.flush()
    recompute_aggregate(evaluation)
    commit_or_raise()

    logger.info(
        "Participant progression advanced",
        extra={
            "evaluation_id": evaluation_id,
            "participant_id": participant.id,
            "from_progression": previous,
            "progression": new_progression,
        },
    )
    return {"participant": participant.to_dict(), "evaluation": evaluation.to_dict()}
