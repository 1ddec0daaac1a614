"""initial_evaluation_schema

Create the project, template library, evaluation and follow-up tables.

Revision ID: 7c1e4a9b2d30
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e4a9b2d30"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk():
    return sa.Column("id", sa.String(length=36), nullable=False)


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            _uuid_pk(),
            sa.Column("fusion_project_id", sa.String(length=100), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("fusion_project_id"),
        )

    if "project_categories" not in existing_tables:
        op.create_table(
            "project_categories",
            _uuid_pk(),
            sa.Column("name", sa.String(length=200), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "question_templates" not in existing_tables:
        op.create_table(
            "question_templates",
            _uuid_pk(),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("support_notes", sa.Text(), nullable=False),
            sa.Column("barrier", sa.String(length=10), nullable=False),
            sa.Column("organization", sa.String(length=20), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("admin_order", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="active"),
            sa.Column("previous_id", sa.String(length=36), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["previous_id"], ["question_templates.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_question_templates_previous_id", "question_templates", ["previous_id"], unique=True)
        op.create_index("ix_qt_status_barrier", "question_templates", ["status", "barrier"])

    if "project_category_question_templates" not in existing_tables:
        op.create_table(
            "project_category_question_templates",
            sa.Column("project_category_id", sa.String(length=36), nullable=False),
            sa.Column("question_template_id", sa.String(length=36), nullable=False),
            sa.ForeignKeyConstraint(["project_category_id"], ["project_categories.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["question_template_id"], ["question_templates.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("project_category_id", "question_template_id"),
        )
        op.create_index(
            "ix_project_category_question_templates_question_template_id",
            "project_category_question_templates",
            ["question_template_id"],
        )

    if "evaluations" not in existing_tables:
        op.create_table(
            "evaluations",
            _uuid_pk(),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("summary", sa.Text(), nullable=True),
            sa.Column("progression", sa.String(length=20), nullable=False, server_default="nomination"),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="active"),
            sa.Column("workshop_complete_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("previous_evaluation_id", sa.String(length=36), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_evaluations_project_id", "evaluations", ["project_id"])

    if "participants" not in existing_tables:
        op.create_table(
            "participants",
            _uuid_pk(),
            sa.Column("evaluation_id", sa.String(length=36), nullable=False),
            sa.Column("azure_unique_id", sa.String(length=100), nullable=False),
            sa.Column("organization", sa.String(length=20), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="participant"),
            sa.Column("progression", sa.String(length=20), nullable=False, server_default="nomination"),
            sa.Column("is_voided", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            sa.ForeignKeyConstraint(["evaluation_id"], ["evaluations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("azure_unique_id", "evaluation_id", name="uq_participant_identity_evaluation"),
        )
        op.create_index("ix_participants_evaluation_id", "participants", ["evaluation_id"])

    if "questions" not in existing_tables:
        op.create_table(
            "questions",
            _uuid_pk(),
            sa.Column("evaluation_id", sa.String(length=36), nullable=False),
            sa.Column("question_template_id", sa.String(length=36), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("support_notes", sa.Text(), nullable=False),
            sa.Column("barrier", sa.String(length=10), nullable=False),
            sa.Column("organization", sa.String(length=20), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["evaluation_id"], ["evaluations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["question_template_id"], ["question_templates.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_questions_evaluation_id", "questions", ["evaluation_id"])
        op.create_index("ix_questions_question_template_id", "questions", ["question_template_id"])

    if "answers" not in existing_tables:
        op.create_table(
            "answers",
            _uuid_pk(),
            sa.Column("question_id", sa.String(length=36), nullable=False),
            sa.Column("answered_by_id", sa.String(length=36), nullable=True),
            sa.Column("progression", sa.String(length=20), nullable=False),
            sa.Column("severity", sa.String(length=10), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["answered_by_id"], ["participants.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_answers_question_id", "answers", ["question_id"])
        op.create_index("ix_answers_answered_by_id", "answers", ["answered_by_id"])
        op.create_index(
            "uq_answer_question_author_progression",
            "answers",
            ["question_id", "answered_by_id", "progression"],
            unique=True,
            postgresql_where=sa.text("answered_by_id IS NOT NULL"),
            sqlite_where=sa.text("answered_by_id IS NOT NULL"),
        )

    if "actions" not in existing_tables:
        op.create_table(
            "actions",
            _uuid_pk(),
            sa.Column("question_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("on_hold", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_voided", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by_id", sa.String(length=36), nullable=True),
            sa.Column("assigned_to_id", sa.String(length=36), nullable=True),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by_id"], ["participants.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["assigned_to_id"], ["participants.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_actions_question_id", "actions", ["question_id"])
        op.create_index("ix_actions_created_by_id", "actions", ["created_by_id"])
        op.create_index("ix_actions_assigned_to_id", "actions", ["assigned_to_id"])

    for table in ("notes", "closing_remarks"):
        if table in existing_tables:
            continue
        op.create_table(
            table,
            _uuid_pk(),
            sa.Column("action_id", sa.String(length=36), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("created_by_id", sa.String(length=36), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["action_id"], ["actions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by_id"], ["participants.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_action_id", table, ["action_id"])
        op.create_index(f"ix_{table}_created_by_id", table, ["created_by_id"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "closing_remarks",
        "notes",
        "actions",
        "answers",
        "questions",
        "participants",
        "evaluations",
        "project_category_question_templates",
        "question_templates",
        "project_categories",
        "projects",
    ):
        if table in existing_tables:
            op.drop_table(table)
