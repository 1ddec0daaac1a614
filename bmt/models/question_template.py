"""
QuestionTemplate — the reusable question library.

Revision chain:
    Editing a template never updates it in place. A new row is written with
    previous_id pointing at the edited row, and the edited row is voided.
    The chain is linear; the current head is the active row that no other
    row names as its previous revision.
"""

from sqlalchemy import and_, exists
from sqlalchemy.orm import aliased

from bmt.models import _iso, _utcnow, _uuid, db
from bmt.models.project import project_category_question_templates

# ── Constants ─────────────────────────────────────────────────────────────────

BARRIERS = ("GM", "PS1", "PS2", "PS3", "PS4", "PS6", "PS7", "PS12", "PS15", "PS22")

ORGANIZATIONS = ("commissioning", "construction", "engineering", "pre_ops", "all")

STATUS_ACTIVE = "active"
STATUS_VOIDED = "voided"
STATUSES = (STATUS_ACTIVE, STATUS_VOIDED)


class QuestionTemplate(db.Model):
    """One revision of a question in the template library."""

    __tablename__ = "question_templates"
    __table_args__ = (
        db.Index("ix_qt_status_barrier", "status", "barrier"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    text = db.Column(db.Text, nullable=False)
    support_notes = db.Column(db.Text, nullable=False, default="")
    barrier = db.Column(db.String(10), nullable=False, comment="GM | PS1 | PS2 | ... | PS22")
    organization = db.Column(
        db.String(20), nullable=False,
        comment="commissioning | construction | engineering | pre_ops | all",
    )
    order = db.Column(db.Integer, nullable=False, default=0, comment="Display order within barrier")
    admin_order = db.Column(db.Integer, nullable=False, default=0, comment="Global admin ordering")
    status = db.Column(db.String(10), nullable=False, default=STATUS_ACTIVE, comment="active | voided")
    previous_id = db.Column(
        db.String(36), db.ForeignKey("question_templates.id"),
        nullable=True, unique=True, index=True,
        comment="Preceding revision; NULL for the first revision of a chain. Unique: chains never fork",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    previous = db.relationship("QuestionTemplate", remote_side="QuestionTemplate.id", lazy="select")
    project_categories = db.relationship(
        "ProjectCategory",
        secondary=project_category_question_templates,
        back_populates="question_templates",
        lazy="select",
    )

    @classmethod
    def head_filter(cls):
        """SQL criterion selecting current heads: active and not superseded."""
        successor = aliased(cls)
        return and_(
            cls.status == STATUS_ACTIVE,
            ~exists().where(successor.previous_id == cls.id),
        )

    def to_dict(self, include_categories=True):
        d = {
            "id": self.id,
            "text": self.text,
            "support_notes": self.support_notes,
            "barrier": self.barrier,
            "organization": self.organization,
            "order": self.order,
            "admin_order": self.admin_order,
            "status": self.status,
            "previous_id": self.previous_id,
            "created_at": _iso(self.created_at),
        }
        if include_categories:
            d["project_categories"] = [c.to_dict() for c in self.project_categories]
        return d

    def __repr__(self) -> str:
        return f"<QuestionTemplate {self.id} {self.barrier}#{self.order} {self.status}>"
