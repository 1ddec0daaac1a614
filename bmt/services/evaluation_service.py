"""
Evaluation Builder Service.

Materializes an Evaluation from the template library and serves the
project → evaluation → question graph.

Design decisions:
    - Questions are snapshots. Text, support notes, barrier, organization and
      order are copied from the template at creation time; later template
      edits create new template rows and never touch these copies.
    - Evaluation + questions + the creator's facilitator participant are
      written in one commit; any failure leaves nothing behind.
    - previous_evaluation_id is a soft reference. It is stored without a
      foreign key and only checked when an evaluation is read.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from bmt.core.exceptions import ForbiddenError, ValidationError
from bmt.models import db
from bmt.models.evaluation import (
    EVALUATION_STATUSES,
    FIRST_PROGRESSION,
    ROLE_FACILITATOR,
    Evaluation,
    Participant,
    Question,
)
from bmt.models.project import Project, ProjectCategory
from bmt.models.question_template import ORGANIZATIONS
from bmt.services.progression import ensure_evaluation_open, resolve_participant
from bmt.services.template_service import resolve_current_templates
from bmt.utils.helpers import clean_text, commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


# ── Projects ──────────────────────────────────────────────────────────────────


def get_or_create_project(fusion_project_id: str, azure_unique_id: str | None) -> tuple[dict, bool]:
    """Return (project_dict, created) for an external project id."""
    if not azure_unique_id:
        raise ForbiddenError("An authenticated caller identity is required")
    fusion_project_id = clean_text(fusion_project_id, "fusion_project_id")
    if not fusion_project_id:
        raise ValidationError("fusion_project_id is required", details={"fusion_project_id": "required"})

    project = db.session.execute(
        select(Project).where(Project.fusion_project_id == fusion_project_id)
    ).scalars().first()
    if project is not None:
        return project.to_dict(), False

    project = Project(fusion_project_id=fusion_project_id)
    db.session.add(project)
    commit_or_raise()
    logger.info("Project registered", extra={"project_id": project.id})
    return project.to_dict(), True


def list_projects() -> list[dict]:
    projects = db.session.execute(select(Project).order_by(Project.created_at)).scalars().all()
    return [p.to_dict() for p in projects]


def get_project(project_id: str, include_voided: bool = False) -> dict:
    project = get_or_raise(Project, project_id)
    return project.to_dict(include_children=True, include_voided=include_voided)


# ── Evaluations ───────────────────────────────────────────────────────────────


def create_evaluation(
    project_id: str,
    name: str,
    project_category_ids,
    azure_unique_id: str | None,
    *,
    organization: str = "all",
    previous_evaluation_id: str | None = None,
) -> dict:
    """Create an evaluation with one Question snapshot per current template.

    Args:
        project_id:             Owning project; must exist.
        name:                   Evaluation name.
        project_category_ids:   Categories whose current templates apply.
        azure_unique_id:        Caller; becomes the facilitator participant.
        organization:           Facilitator's organization.
        previous_evaluation_id: Optional soft link to an earlier evaluation.

    Raises:
        ForbiddenError:  no caller identity
        ValidationError: missing project, blank name, empty/unknown categories,
                         or no template resolved
    """
    if not azure_unique_id:
        raise ForbiddenError("An authenticated caller identity is required")

    errors = {}
    name = clean_text(name, "name")
    if not name:
        errors["name"] = "required"
    if project_category_ids is not None and not isinstance(project_category_ids, (list, tuple, set)):
        raise ValidationError("project_category_ids must be a list", details={"project_category_ids": "must be a list"})
    category_ids = list(dict.fromkeys(project_category_ids or ()))
    if not category_ids:
        errors["project_category_ids"] = "at least one category is required"
    if organization not in ORGANIZATIONS:
        errors["organization"] = f"must be one of {', '.join(ORGANIZATIONS)}"
    if errors:
        raise ValidationError("Invalid evaluation", details=errors)

    project = db.session.get(Project, project_id) if project_id else None
    if project is None:
        raise ValidationError(f"Project id={project_id} does not exist", details={"project_id": "not found"})

    known = set(db.session.execute(
        select(ProjectCategory.id).where(ProjectCategory.id.in_(category_ids))
    ).scalars().all())
    unknown = [cid for cid in category_ids if cid not in known]
    if unknown:
        raise ValidationError("Unknown project category", details={"project_category_ids": unknown})

    templates = resolve_current_templates(category_ids)
    if not templates:
        raise ValidationError(
            "No active question templates apply to the selected categories",
            details={"project_category_ids": category_ids},
        )

    evaluation = Evaluation(
        project=project,
        name=name,
        progression=FIRST_PROGRESSION,
        status="active",
        previous_evaluation_id=previous_evaluation_id or None,
    )
    for template in templates:
        evaluation.questions.append(Question(
            question_template_id=template.id,
            text=template.text,
            support_notes=template.support_notes,
            barrier=template.barrier,
            organization=template.organization,
            order=template.order,
        ))
    evaluation.participants.append(Participant(
        azure_unique_id=azure_unique_id,
        organization=organization,
        role=ROLE_FACILITATOR,
        progression=FIRST_PROGRESSION,
    ))
    db.session.add(evaluation)
    commit_or_raise()

    logger.info(
        "Evaluation created",
        extra={
            "evaluation_id": evaluation.id,
            "project_id": project.id,
            "question_count": len(templates),
        },
    )
    return evaluation.to_dict(include_children=True)


def resolve_previous_evaluation(evaluation: Evaluation) -> Evaluation | None:
    """Follow the soft previous_evaluation_id link; None when unset or dangling."""
    if not evaluation.previous_evaluation_id:
        return None
    previous = db.session.get(Evaluation, evaluation.previous_evaluation_id)
    if previous is None:
        logger.warning(
            "Dangling previous evaluation reference",
            extra={"evaluation_id": evaluation.id, "previous_evaluation_id": evaluation.previous_evaluation_id},
        )
    return previous


def get_evaluation(evaluation_id: str, include_voided: bool = False) -> dict:
    """Full evaluation graph, plus the resolved previous evaluation (if any)."""
    evaluation = get_or_raise(Evaluation, evaluation_id)
    d = evaluation.to_dict(include_children=True, include_voided=include_voided)
    previous = resolve_previous_evaluation(evaluation)
    d["previous_evaluation"] = previous.to_dict() if previous else None
    d["previous_evaluation_missing"] = bool(evaluation.previous_evaluation_id) and previous is None
    return d


def set_evaluation_summary(evaluation_id: str, azure_unique_id: str | None, summary: str | None) -> dict:
    evaluation = get_or_raise(Evaluation, evaluation_id)
    resolve_participant(evaluation_id, azure_unique_id, roles=(ROLE_FACILITATOR,))
    ensure_evaluation_open(evaluation)
    evaluation.summary = clean_text(summary, "summary") or None
    commit_or_raise()
    return evaluation.to_dict()


def set_evaluation_status(evaluation_id: str, azure_unique_id: str | None, status: str) -> dict:
    """Void or reactivate an evaluation. Voided evaluations reject further writes."""
    if status not in EVALUATION_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'",
            details={"status": f"must be one of {', '.join(EVALUATION_STATUSES)}"},
        )
    evaluation = get_or_raise(Evaluation, evaluation_id)
    resolve_participant(evaluation_id, azure_unique_id, roles=(ROLE_FACILITATOR,))
    evaluation.status = status
    commit_or_raise()
    logger.info("Evaluation status set", extra={"evaluation_id": evaluation_id, "status": status})
    return evaluation.to_dict()
