"""
Participant management for an evaluation.

Participants are never deleted; void_participant() drops them from the
quorum while keeping their answers and actions attributable. Both add and
void recompute the evaluation aggregate under the evaluation row lock.
"""

import logging

from sqlalchemy import select

from bmt.core.exceptions import ValidationError
from bmt.models import db
from bmt.models.evaluation import (
    ROLE_FACILITATOR,
    ROLE_ORGANIZATION_LEAD,
    ROLES,
    Participant,
)
from bmt.models.question_template import ORGANIZATIONS
from bmt.services.progression import (
    ensure_evaluation_open,
    lock_evaluation,
    recompute_aggregate,
    resolve_participant,
)
from bmt.utils.helpers import clean_text, commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

_CAN_ADD = (ROLE_FACILITATOR, ROLE_ORGANIZATION_LEAD)


def add_participant(
    evaluation_id: str,
    azure_unique_id: str | None,
    new_azure_unique_id: str,
    organization: str,
    role: str,
) -> dict:
    """Add an identity to the evaluation at the evaluation's current stage.

    Starting new participants at the aggregate stage keeps the aggregate from
    moving backwards.
    """
    evaluation = lock_evaluation(evaluation_id)
    resolve_participant(evaluation_id, azure_unique_id, roles=_CAN_ADD)
    ensure_evaluation_open(evaluation)

    errors = {}
    new_azure_unique_id = clean_text(new_azure_unique_id, "azure_unique_id")
    if not new_azure_unique_id:
        errors["azure_unique_id"] = "required"
    if organization not in ORGANIZATIONS:
        errors["organization"] = f"must be one of {', '.join(ORGANIZATIONS)}"
    if role not in ROLES:
        errors["role"] = f"must be one of {', '.join(ROLES)}"
    if errors:
        raise ValidationError("Invalid participant", details=errors)

    existing = db.session.execute(
        select(Participant.id).where(
            Participant.evaluation_id == evaluation_id,
            Participant.azure_unique_id == new_azure_unique_id,
        )
    ).first()
    if existing:
        raise ValidationError(
            "Identity is already a participant of this evaluation",
            details={"azure_unique_id": "duplicate"},
        )

    participant = Participant(
        evaluation_id=evaluation_id,
        azure_unique_id=new_azure_unique_id,
        organization=organization,
        role=role,
        progression=evaluation.progression,
    )
    db.session.add(participant)
    db.session.flush()
    recompute_aggregate(evaluation)
    commit_or_raise()

    logger.info(
        "Participant added",
        extra={"evaluation_id": evaluation_id, "participant_id": participant.id, "role": role},
    )
    return participant.to_dict()


def void_participant(evaluation_id: str, azure_unique_id: str | None, participant_id: str) -> dict:
    """Remove a participant from the quorum. Facilitators only."""
    evaluation = lock_evaluation(evaluation_id)
    resolve_participant(evaluation_id, azure_unique_id, roles=(ROLE_FACILITATOR,))
    ensure_evaluation_open(evaluation)

    participant = get_or_raise(Participant, participant_id)
    if participant.evaluation_id != evaluation_id:
        raise ValidationError("Participant does not belong to this evaluation")
    if participant.is_voided:
        raise ValidationError(f"Participant id={participant_id} is already voided")

    participant.is_voided = True
    db.session.flush()
    recompute_aggregate(evaluation)
    commit_or_raise()

    logger.info("Participant voided", extra={"evaluation_id": evaluation_id, "participant_id": participant_id})
    return participant.to_dict()
