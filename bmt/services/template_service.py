"""
Template Registry Service.

Owns QuestionTemplate revisions and ProjectCategory membership.

Design decisions:
    - Templates are never edited in place. edit_question_template() writes a
      new head with previous_id → old row and voids the old row, so questions
      already snapshotted from the old row keep their own copy untouched.
    - Only the current head of a chain can be edited, voided or reordered.
      previous_id is unique, so a chain never forks; edits also lock the head.
    - History is read through the store by following previous_id; the store
      stays the source of truth for the chain.
    - admin_order is a dense 1..n sequence over current heads, renumbered on
      every reorder.

Functions:
    create_question_template()   edit_question_template()   delete_question_template()
    reorder_question_template()  add_to_project_category()  remove_from_project_category()
    list_question_templates()    get_template_history()     resolve_current_templates()
    create_project_category()    copy_project_category()    delete_project_category()
    list_project_categories()    seed_default_templates()
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from bmt.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from bmt.models import db
from bmt.models.project import ProjectCategory, project_category_question_templates
from bmt.models.question_template import (
    BARRIERS,
    ORGANIZATIONS,
    STATUS_ACTIVE,
    STATUS_VOIDED,
    QuestionTemplate,
)
from bmt.utils.helpers import clean_text, commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────────


def _require_identity(azure_unique_id: str | None) -> None:
    if not azure_unique_id:
        raise ForbiddenError("An authenticated caller identity is required")


def _validate_fields(text, barrier, organization) -> dict:
    errors = {}
    if not clean_text(text, "text"):
        errors["text"] = "required"
    if barrier not in BARRIERS:
        errors["barrier"] = f"must be one of {', '.join(BARRIERS)}"
    if organization not in ORGANIZATIONS:
        errors["organization"] = f"must be one of {', '.join(ORGANIZATIONS)}"
    return errors


def _is_head(template: QuestionTemplate) -> bool:
    if template.status != STATUS_ACTIVE:
        return False
    successor = db.session.execute(
        select(QuestionTemplate.id).where(QuestionTemplate.previous_id == template.id)
    ).first()
    return successor is None


def _get_head_or_raise(template_id: str, lock: bool = False) -> QuestionTemplate:
    """Load a current head; with lock, take a row lock (no-op lock on SQLite)."""
    if lock:
        template = db.session.execute(
            select(QuestionTemplate)
            .where(QuestionTemplate.id == template_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().first()
        if template is None:
            raise NotFoundError(resource="QuestionTemplate", resource_id=template_id)
    else:
        template = get_or_raise(QuestionTemplate, template_id, label="QuestionTemplate")
    if not _is_head(template):
        raise ValidationError(
            f"QuestionTemplate id={template_id} is not the current revision",
            details={"template_id": "only the current revision can be changed"},
        )
    return template


def _next_order(barrier: str) -> int:
    current_max = db.session.execute(
        select(func.max(QuestionTemplate.order)).where(
            QuestionTemplate.barrier == barrier,
            QuestionTemplate.head_filter(),
        )
    ).scalar()
    return (current_max or 0) + 1


def _next_admin_order() -> int:
    current_max = db.session.execute(
        select(func.max(QuestionTemplate.admin_order)).where(QuestionTemplate.head_filter())
    ).scalar()
    return (current_max or 0) + 1


def _load_categories(category_ids) -> list[ProjectCategory]:
    ids = list(dict.fromkeys(category_ids or ()))
    if not ids:
        return []
    categories = db.session.execute(
        select(ProjectCategory).where(ProjectCategory.id.in_(ids))
    ).scalars().all()
    missing = set(ids) - {c.id for c in categories}
    if missing:
        raise ValidationError(
            "Unknown project category",
            details={"project_category_ids": sorted(missing)},
        )
    return list(categories)


def _heads_query():
    return (
        select(QuestionTemplate)
        .where(QuestionTemplate.head_filter())
        .order_by(QuestionTemplate.admin_order, QuestionTemplate.created_at)
    )


# ── Templates ─────────────────────────────────────────────────────────────────


def create_question_template(
    azure_unique_id: str | None,
    text: str,
    support_notes: str | None,
    barrier: str,
    organization: str,
    project_category_ids=(),
) -> dict:
    """Create the first revision of a new template chain."""
    _require_identity(azure_unique_id)
    errors = _validate_fields(text, barrier, organization)
    if errors:
        raise ValidationError("Invalid question template", details=errors)
    categories = _load_categories(project_category_ids)

    template = QuestionTemplate(
        text=text.strip(),
        support_notes=clean_text(support_notes, "support_notes"),
        barrier=barrier,
        organization=organization,
        order=_next_order(barrier),
        admin_order=_next_admin_order(),
        status=STATUS_ACTIVE,
    )
    template.project_categories = categories
    db.session.add(template)
    commit_or_raise()

    logger.info(
        "Question template created",
        extra={"template_id": template.id, "barrier": barrier, "created_by": azure_unique_id},
    )
    return template.to_dict()


def edit_question_template(
    template_id: str,
    azure_unique_id: str | None,
    text: str,
    support_notes: str | None,
    barrier: str,
    organization: str,
) -> dict:
    """Write a new revision of a template and retire the edited row.

    Category membership and admin_order carry over. order is kept unless the
    barrier changes, in which case the new revision goes last in its barrier.

    Raises:
        NotFoundError:   template does not exist
        ValidationError: invalid fields, or template is not the current head
                         (including a concurrent edit that revised it first)
    """
    _require_identity(azure_unique_id)
    old = _get_head_or_raise(template_id, lock=True)
    errors = _validate_fields(text, barrier, organization)
    if errors:
        raise ValidationError("Invalid question template", details=errors)

    new_order = old.order if barrier == old.barrier else _next_order(barrier)
    revision = QuestionTemplate(
        text=text.strip(),
        support_notes=clean_text(support_notes, "support_notes"),
        barrier=barrier,
        organization=organization,
        order=new_order,
        admin_order=old.admin_order,
        status=STATUS_ACTIVE,
        previous_id=old.id,
    )
    revision.project_categories = list(old.project_categories)
    old.status = STATUS_VOIDED
    db.session.add(revision)
    commit_or_raise(on_integrity_error=lambda: ValidationError(
        f"QuestionTemplate id={template_id} was revised concurrently",
        details={"template_id": "only the current revision can be changed"},
    ))

    logger.info(
        "Question template revised",
        extra={"template_id": revision.id, "previous_id": old.id, "edited_by": azure_unique_id},
    )
    return revision.to_dict()


def delete_question_template(template_id: str, azure_unique_id: str | None) -> dict:
    """Retire a chain without a successor. Rows are kept for traceability."""
    _require_identity(azure_unique_id)
    template = _get_head_or_raise(template_id)
    template.status = STATUS_VOIDED
    commit_or_raise()
    logger.info("Question template voided", extra={"template_id": template_id})
    return template.to_dict()


def reorder_question_template(
    template_id: str,
    azure_unique_id: str | None,
    new_next_template_id: str | None = None,
) -> list[dict]:
    """Move a template in the admin order, placing it before `new_next_template_id`.

    With no next template the template moves to the end. Returns the full
    reordered list of current templates.
    """
    _require_identity(azure_unique_id)
    moving = _get_head_or_raise(template_id)
    if new_next_template_id is not None:
        if new_next_template_id == template_id:
            raise ValidationError("A template cannot be placed before itself")
        _get_head_or_raise(new_next_template_id)

    heads = [t for t in db.session.execute(_heads_query()).scalars().all() if t.id != moving.id]
    if new_next_template_id is None:
        heads.append(moving)
    else:
        position = next(i for i, t in enumerate(heads) if t.id == new_next_template_id)
        heads.insert(position, moving)

    for index, template in enumerate(heads, start=1):
        template.admin_order = index
    commit_or_raise()
    return [t.to_dict() for t in heads]


def add_to_project_category(template_id: str, category_id: str, azure_unique_id: str | None) -> dict:
    _require_identity(azure_unique_id)
    template = _get_head_or_raise(template_id)
    category = get_or_raise(ProjectCategory, category_id, label="ProjectCategory")
    if category not in template.project_categories:
        template.project_categories.append(category)
    commit_or_raise()
    return template.to_dict()


def remove_from_project_category(template_id: str, category_id: str, azure_unique_id: str | None) -> dict:
    _require_identity(azure_unique_id)
    template = _get_head_or_raise(template_id)
    category = get_or_raise(ProjectCategory, category_id, label="ProjectCategory")
    if category in template.project_categories:
        template.project_categories.remove(category)
    commit_or_raise()
    return template.to_dict()


def list_question_templates(include_voided: bool = False) -> list[dict]:
    """Current templates in admin order; with include_voided, every revision."""
    if include_voided:
        stmt = select(QuestionTemplate).order_by(
            QuestionTemplate.admin_order, QuestionTemplate.created_at,
        )
    else:
        stmt = _heads_query()
    return [t.to_dict() for t in db.session.execute(stmt).scalars().all()]


def get_template_history(template_id: str) -> list[dict]:
    """Revisions from `template_id` back to the first one (newest first)."""
    template = get_or_raise(QuestionTemplate, template_id, label="QuestionTemplate")
    history = []
    seen = set()
    while template is not None:
        if template.id in seen:
            logger.error("Revision cycle detected at template %s", template.id)
            break
        seen.add(template.id)
        history.append(template.to_dict(include_categories=False))
        if template.previous_id is None:
            break
        template = db.session.get(QuestionTemplate, template.previous_id)
    return history


def resolve_current_templates(category_ids) -> list[QuestionTemplate]:
    """Current heads belonging to any of the given categories, each once."""
    ids = list(category_ids)
    if not ids:
        return []
    member_ids = (
        select(project_category_question_templates.c.question_template_id)
        .where(project_category_question_templates.c.project_category_id.in_(ids))
    )
    stmt = (
        select(QuestionTemplate)
        .where(QuestionTemplate.head_filter(), QuestionTemplate.id.in_(member_ids))
        .order_by(QuestionTemplate.barrier, QuestionTemplate.order)
    )
    return list(db.session.execute(stmt).scalars().all())


# ── Project categories ────────────────────────────────────────────────────────


def _require_unique_category_name(name: str) -> str:
    name = clean_text(name, "name", required=True)
    exists = db.session.execute(
        select(ProjectCategory.id).where(ProjectCategory.name == name)
    ).first()
    if exists:
        raise ValidationError(f"Project category '{name}' already exists", details={"name": "duplicate"})
    return name


def create_project_category(name: str, azure_unique_id: str | None) -> dict:
    _require_identity(azure_unique_id)
    category = ProjectCategory(name=_require_unique_category_name(name))
    db.session.add(category)
    commit_or_raise()
    logger.info("Project category created", extra={"category_id": category.id})
    return category.to_dict()


def copy_project_category(category_id: str, new_name: str, azure_unique_id: str | None) -> dict:
    """New category with the same current-template membership as `category_id`."""
    _require_identity(azure_unique_id)
    source = get_or_raise(ProjectCategory, category_id, label="ProjectCategory")
    copy = ProjectCategory(name=_require_unique_category_name(new_name))
    copy.question_templates = resolve_current_templates([source.id])
    db.session.add(copy)
    commit_or_raise()
    return copy.to_dict()


def delete_project_category(category_id: str, azure_unique_id: str | None) -> None:
    _require_identity(azure_unique_id)
    category = get_or_raise(ProjectCategory, category_id, label="ProjectCategory")
    db.session.delete(category)
    commit_or_raise()
    logger.info("Project category deleted", extra={"category_id": category_id})


def list_project_categories() -> list[dict]:
    categories = db.session.execute(
        select(ProjectCategory).order_by(ProjectCategory.name)
    ).scalars().all()
    return [c.to_dict() for c in categories]


# ── Seeding ───────────────────────────────────────────────────────────────────


def seed_default_templates() -> int:
    """Insert the default category and templates when the library is empty.

    Safe to run multiple times — does nothing once any template exists.
    Call this from the seed-templates CLI command; the caller commits.
    """
    if db.session.execute(select(QuestionTemplate.id)).first():
        return 0

    category = db.session.execute(
        select(ProjectCategory).where(ProjectCategory.name == DEFAULT_CATEGORY)
    ).scalars().first()
    if category is None:
        category = ProjectCategory(name=DEFAULT_CATEGORY)
        db.session.add(category)

    created = 0
    order_in_barrier: dict[str, int] = {}
    for admin_order, (barrier, organization, text, support_notes) in enumerate(_DEFAULT_TEMPLATES, start=1):
        order_in_barrier[barrier] = order_in_barrier.get(barrier, 0) + 1
        template = QuestionTemplate(
            text=text,
            support_notes=support_notes,
            barrier=barrier,
            organization=organization,
            order=order_in_barrier[barrier],
            admin_order=admin_order,
            status=STATUS_ACTIVE,
        )
        template.project_categories = [category]
        db.session.add(template)
        created += 1

    db.session.flush()
    logger.info("Seeded %s question templates", created)
    return created


DEFAULT_CATEGORY = "SquareField"

_DEFAULT_TEMPLATES = (
    ("GM", "all",
     "Is the barrier management strategy established and known to the project?",
     "Look for a documented strategy, owners and a plan for keeping it updated."),
    ("GM", "engineering",
     "Are performance requirements defined for all barrier elements?",
     "Check that requirements are traceable to the major accident hazards."),
    ("PS1", "engineering",
     "Is containment integrity verified for all process systems in scope?",
     "Consider design pressure, corrosion allowance and inspection plans."),
    ("PS2", "construction",
     "Are natural ventilation and HVAC requirements fulfilled in hazardous areas?",
     "Verify ventilation rates against the area classification."),
    ("PS3", "engineering",
     "Is the gas detection layout documented and verified?",
     "Review detector coverage studies and voting logic."),
    ("PS4", "commissioning",
     "Are emergency shutdown functions tested end to end before start-up?",
     "Ask for test records of cause and effect charts."),
    ("PS6", "pre_ops",
     "Are ignition source control requirements implemented in operating procedures?",
     "Hot work permits and equipment isolation on gas detection."),
    ("PS7", "engineering",
     "Is fire detection designed according to the fire and explosion strategy?",
     "Check detector types and coverage per fire area."),
    ("PS12", "pre_ops",
     "Are escape routes, muster areas and evacuation means verified?",
     "Walk the routes; check signage and lighting."),
    ("PS15", "commissioning",
     "Is the emergency power and UPS capacity verified for required duration?",
     "Compare load lists with battery autonomy tests."),
    ("PS22", "all",
     "Are human-machine interfaces for safety critical alarms reviewed with operators?",
     "Alarm rationalisation and operator involvement in HMI reviews."),
)
