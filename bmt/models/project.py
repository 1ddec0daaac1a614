"""Project and ProjectCategory models.

A Project mirrors an external (Fusion) project and owns its evaluations.
ProjectCategory is a named tag; templates join to categories N:M so an
evaluation can pick the templates that apply to its project's category.
"""

from bmt.models import _iso, _utcnow, _uuid, db

project_category_question_templates = db.Table(
    "project_category_question_templates",
    db.Column(
        "project_category_id", db.String(36),
        db.ForeignKey("project_categories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "question_template_id", db.String(36),
        db.ForeignKey("question_templates.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)


class Project(db.Model):
    """External project under evaluation."""

    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    fusion_project_id = db.Column(
        db.String(100), nullable=False, unique=True,
        comment="Identifier of the project in the external project portal",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    evaluations = db.relationship(
        "Evaluation", back_populates="project", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Evaluation.created_at",
    )

    def to_dict(self, include_children=False, include_voided=False):
        d = {
            "id": self.id,
            "fusion_project_id": self.fusion_project_id,
            "created_at": _iso(self.created_at),
        }
        if include_children:
            d["evaluations"] = [
                e.to_dict(include_children=True)
                for e in self.evaluations
                if include_voided or e.status != "voided"
            ]
        return d

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.fusion_project_id}>"


class ProjectCategory(db.Model):
    """Named tag selecting which question templates apply to a project."""

    __tablename__ = "project_categories"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    question_templates = db.relationship(
        "QuestionTemplate",
        secondary=project_category_question_templates,
        back_populates="project_categories",
        lazy="select",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<ProjectCategory {self.id}: {self.name}>"
