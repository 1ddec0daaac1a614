"""
Evaluation domain models.

Models:
    Evaluation   — one structured evaluation of a Project
    Participant  — an identity taking part in an evaluation, with its own progression
    Question     — immutable snapshot of a QuestionTemplate, scoped to one evaluation

Progression is an ordered tuple; comparisons use tuple index, never string order.
"""

from bmt.models import _iso, _utcnow, _uuid, db

# ── Constants ─────────────────────────────────────────────────────────────────

PROGRESSIONS = ("nomination", "individual", "preparation", "workshop", "follow_up", "finished")
FIRST_PROGRESSION = PROGRESSIONS[0]
TERMINAL_PROGRESSION = PROGRESSIONS[-1]

# The workshop is considered held once the aggregate reaches this stage.
WORKSHOP_COMPLETE_PROGRESSION = "follow_up"

ROLE_FACILITATOR = "facilitator"
ROLE_PARTICIPANT = "participant"
ROLE_READ_ONLY = "read_only"
ROLE_ORGANIZATION_LEAD = "organization_lead"
ROLES = (ROLE_FACILITATOR, ROLE_PARTICIPANT, ROLE_READ_ONLY, ROLE_ORGANIZATION_LEAD)

EVALUATION_STATUSES = ("active", "voided")


def progression_index(progression: str) -> int:
    """Position of a stage in PROGRESSIONS. Raises ValueError for unknown stages."""
    return PROGRESSIONS.index(progression)


class Evaluation(db.Model):
    """A structured evaluation of one project."""

    __tablename__ = "evaluations"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    summary = db.Column(db.Text, nullable=True)
    progression = db.Column(
        db.String(20), nullable=False, default=FIRST_PROGRESSION,
        comment="Aggregate stage = min over quorum participants",
    )
    status = db.Column(db.String(10), nullable=False, default="active", comment="active | voided")
    workshop_complete_date = db.Column(db.DateTime(timezone=True), nullable=True)
    previous_evaluation_id = db.Column(
        db.String(36), nullable=True,
        comment="Soft reference to an earlier evaluation; no FK, checked at read time",
    )
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    project = db.relationship("Project", back_populates="evaluations")
    participants = db.relationship(
        "Participant", back_populates="evaluation", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Participant.created_at",
    )
    questions = db.relationship(
        "Question", back_populates="evaluation", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="[Question.barrier, Question.order]",
    )

    @property
    def is_finished(self) -> bool:
        return self.progression == TERMINAL_PROGRESSION

    def to_dict(self, include_children=False, include_voided=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "summary": self.summary,
            "progression": self.progression,
            "status": self.status,
            "workshop_complete_date": _iso(self.workshop_complete_date),
            "previous_evaluation_id": self.previous_evaluation_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            d["participants"] = [p.to_dict() for p in self.participants]
            d["questions"] = [
                q.to_dict(include_children=True, include_voided=include_voided)
                for q in self.questions
            ]
        return d

    def __repr__(self) -> str:
        return f"<Evaluation {self.id}: {self.name} ({self.progression})>"


class Participant(db.Model):
    """An identity taking part in an evaluation."""

    __tablename__ = "participants"
    __table_args__ = (
        db.UniqueConstraint("azure_unique_id", "evaluation_id", name="uq_participant_identity_evaluation"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    evaluation_id = db.Column(
        db.String(36), db.ForeignKey("evaluations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    azure_unique_id = db.Column(db.String(100), nullable=False)
    organization = db.Column(db.String(20), nullable=False)
    role = db.Column(
        db.String(20), nullable=False, default=ROLE_PARTICIPANT,
        comment="facilitator | participant | read_only | organization_lead",
    )
    progression = db.Column(db.String(20), nullable=False, default=FIRST_PROGRESSION)
    is_voided = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    evaluation = db.relationship("Evaluation", back_populates="participants")

    def to_dict(self):
        return {
            "id": self.id,
            "evaluation_id": self.evaluation_id,
            "azure_unique_id": self.azure_unique_id,
            "organization": self.organization,
            "role": self.role,
            "progression": self.progression,
            "is_voided": self.is_voided,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Participant {self.id} {self.role} ({self.progression})>"


class Question(db.Model):
    """Snapshot of a template taken when the evaluation was created."""

    __tablename__ = "questions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    evaluation_id = db.Column(
        db.String(36), db.ForeignKey("evaluations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    question_template_id = db.Column(
        db.String(36), db.ForeignKey("question_templates.id"),
        nullable=False, index=True,
        comment="Originating template revision; traceability only",
    )
    text = db.Column(db.Text, nullable=False)
    support_notes = db.Column(db.Text, nullable=False, default="")
    barrier = db.Column(db.String(10), nullable=False)
    organization = db.Column(db.String(20), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    evaluation = db.relationship("Evaluation", back_populates="questions")
    question_template = db.relationship("QuestionTemplate", lazy="select")
    answers = db.relationship(
        "Answer", back_populates="question", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Answer.created_at",
    )
    actions = db.relationship(
        "Action", back_populates="question", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Action.created_at",
    )

    def to_dict(self, include_children=False, include_voided=False):
        d = {
            "id": self.id,
            "evaluation_id": self.evaluation_id,
            "question_template_id": self.question_template_id,
            "text": self.text,
            "support_notes": self.support_notes,
            "barrier": self.barrier,
            "organization": self.organization,
            "order": self.order,
            "created_at": _iso(self.created_at),
        }
        if include_children:
            d["answers"] = [a.to_dict() for a in self.answers]
            d["actions"] = [
                a.to_dict(include_children=True)
                for a in self.actions
                if include_voided or not a.is_voided
            ]
        return d

    def __repr__(self) -> str:
        return f"<Question {self.id} {self.barrier}#{self.order}>"
