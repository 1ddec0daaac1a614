"""
Answer / Action subledger models.

Answer         — one participant's (or the facilitator consensus) answer at one stage
Action         — follow-up action raised against a question
Note           — free-text activity log entry on an action
ClosingRemark  — remark appended when an action is completed

Answers are segregated per progression stage: a later stage is a new row,
never an update of an earlier stage's row.
"""

from bmt.models import _iso, _utcnow, _uuid, db

# ── Constants ─────────────────────────────────────────────────────────────────

SEVERITIES = ("high", "limited", "low", "na")
PRIORITIES = ("high", "medium", "low")


class Answer(db.Model):
    __tablename__ = "answers"
    __table_args__ = (
        # Null-author (consensus) answers are excluded from the uniqueness rule.
        db.Index(
            "uq_answer_question_author_progression",
            "question_id", "answered_by_id", "progression",
            unique=True,
            postgresql_where=db.text("answered_by_id IS NOT NULL"),
            sqlite_where=db.text("answered_by_id IS NOT NULL"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    question_id = db.Column(
        db.String(36), db.ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    answered_by_id = db.Column(
        db.String(36), db.ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True, index=True,
        comment="NULL for facilitator consensus answers",
    )
    progression = db.Column(db.String(20), nullable=False, comment="Stage the answer was given at")
    severity = db.Column(db.String(10), nullable=False, comment="high | limited | low | na")
    text = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    question = db.relationship("Question", back_populates="answers")
    answered_by = db.relationship("Participant", lazy="select")

    def to_dict(self):
        return {
            "id": self.id,
            "question_id": self.question_id,
            "answered_by_id": self.answered_by_id,
            "progression": self.progression,
            "severity": self.severity,
            "text": self.text,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Answer {self.id} q={self.question_id} {self.progression}>"


class Action(db.Model):
    """Follow-up action. Voided actions are kept for the audit trail."""

    __tablename__ = "actions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    question_id = db.Column(
        db.String(36), db.ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    priority = db.Column(db.String(10), nullable=False, default="medium", comment="high | medium | low")
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    on_hold = db.Column(db.Boolean, nullable=False, default=False)
    is_voided = db.Column(db.Boolean, nullable=False, default=False)
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    assigned_to_id = db.Column(
        db.String(36), db.ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    question = db.relationship("Question", back_populates="actions")
    created_by = db.relationship("Participant", foreign_keys=[created_by_id], lazy="select")
    assigned_to = db.relationship("Participant", foreign_keys=[assigned_to_id], lazy="select")
    notes = db.relationship(
        "Note", back_populates="action", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Note.created_at",
    )
    closing_remarks = db.relationship(
        "ClosingRemark", back_populates="action", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="ClosingRemark.created_at",
    )

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "question_id": self.question_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "due_date": _iso(self.due_date),
            "completed": self.completed,
            "on_hold": self.on_hold,
            "is_voided": self.is_voided,
            "created_by_id": self.created_by_id,
            "assigned_to_id": self.assigned_to_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            d["notes"] = [n.to_dict() for n in self.notes]
            d["closing_remarks"] = [r.to_dict() for r in self.closing_remarks]
        return d

    def __repr__(self) -> str:
        return f"<Action {self.id}: {self.title[:30]}>"


class Note(db.Model):
    __tablename__ = "notes"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    action_id = db.Column(
        db.String(36), db.ForeignKey("actions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    action = db.relationship("Action", back_populates="notes")

    def to_dict(self):
        return {
            "id": self.id,
            "action_id": self.action_id,
            "text": self.text,
            "created_by_id": self.created_by_id,
            "created_at": _iso(self.created_at),
        }


class ClosingRemark(db.Model):
    __tablename__ = "closing_remarks"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    action_id = db.Column(
        db.String(36), db.ForeignKey("actions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    action = db.relationship("Action", back_populates="closing_remarks")

    def to_dict(self):
        return {
            "id": self.id,
            "action_id": self.action_id,
            "text": self.text,
            "created_by_id": self.created_by_id,
            "created_at": _iso(self.created_at),
        }
