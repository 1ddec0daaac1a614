"""
Template library: revision chains, snapshots, ordering and categories.
"""

import pytest

from bmt.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from bmt.models import db
from bmt.models.evaluation import Question
from bmt.models.question_template import STATUS_VOIDED, QuestionTemplate
from bmt.services import evaluation_service, template_service
from bmt.utils.helpers import commit_or_raise

ADMIN = "aad-admin"
FACILITATOR = "aad-facilitator"


def _category_ids(template):
    return [c["id"] for c in template["project_categories"]]


def _make(text, barrier="GM", categories=()):
    return template_service.create_question_template(
        ADMIN, text, "", barrier, "all", project_category_ids=list(categories),
    )


class TestCreate:
    def test_create_assigns_orders(self, category):
        a = _make("First", categories=[category["id"]])
        b = _make("Second", categories=[category["id"]])
        c = _make("Other barrier", barrier="PS1")
        assert (a["order"], b["order"], c["order"]) == (1, 2, 1)
        assert (a["admin_order"], b["admin_order"], c["admin_order"]) == (1, 2, 3)
        assert _category_ids(a) == [category["id"]]

    def test_create_requires_identity(self):
        with pytest.raises(ForbiddenError):
            template_service.create_question_template(None, "Text", "", "GM", "all")

    def test_create_rejects_unknown_barrier(self):
        with pytest.raises(ValidationError) as exc:
            _make("Text", barrier="PS99")
        assert "barrier" in exc.value.details

    def test_create_rejects_unknown_category(self):
        with pytest.raises(ValidationError):
            _make("Text", categories=["missing"])

    def test_create_rejects_non_string_text(self):
        with pytest.raises(ValidationError):
            template_service.create_question_template(ADMIN, 42, "", "GM", "all")


class TestRevisionChain:
    def test_edit_creates_new_head(self, template, category):
        v2 = template_service.edit_question_template(
            template["id"], ADMIN, "Reworded", "notes", "GM", "all",
        )
        assert v2["previous_id"] == template["id"]
        assert v2["admin_order"] == template["admin_order"]
        assert v2["order"] == template["order"]
        assert _category_ids(v2) == [category["id"]]

        old = db.session.get(QuestionTemplate, template["id"])
        assert old.status == STATUS_VOIDED
        assert [t["id"] for t in template_service.list_question_templates()] == [v2["id"]]

    def test_edit_of_superseded_revision_rejected(self, template):
        template_service.edit_question_template(template["id"], ADMIN, "v2", "", "GM", "all")
        with pytest.raises(ValidationError):
            template_service.edit_question_template(template["id"], ADMIN, "v3", "", "GM", "all")

    def test_chain_cannot_fork(self, template):
        v2 = template_service.edit_question_template(template["id"], ADMIN, "A edit", "", "GM", "all")
        # A second successor of the same revision, as a racing edit would write it.
        db.session.add(QuestionTemplate(
            text="B edit", barrier="GM", organization="all", previous_id=template["id"],
        ))
        with pytest.raises(ValidationError):
            commit_or_raise()
        assert [t["id"] for t in template_service.list_question_templates()] == [v2["id"]]

    def test_history_newest_first(self, template):
        v2 = template_service.edit_question_template(template["id"], ADMIN, "v2", "", "GM", "all")
        v3 = template_service.edit_question_template(v2["id"], ADMIN, "v3", "", "GM", "all")
        history = template_service.get_template_history(v3["id"])
        assert [h["id"] for h in history] == [v3["id"], v2["id"], template["id"]]

    def test_history_unknown_template(self):
        with pytest.raises(NotFoundError):
            template_service.get_template_history("nope")

    def test_snapshot_survives_template_edit(self, project, category, template):
        old_eval = evaluation_service.create_evaluation(
            project["id"], "Before edit", [category["id"]], FACILITATOR,
        )
        v2 = template_service.edit_question_template(
            template["id"], ADMIN, "Tv2 text", "", "GM", "all",
        )
        new_eval = evaluation_service.create_evaluation(
            project["id"], "After edit", [category["id"]], FACILITATOR,
        )

        assert [q["question_template_id"] for q in new_eval["questions"]] == [v2["id"]]
        assert [q["text"] for q in new_eval["questions"]] == ["Tv2 text"]

        db.session.expire_all()
        old_questions = db.session.query(Question).filter_by(evaluation_id=old_eval["id"]).all()
        assert [q.text for q in old_questions] == [template["text"]]
        assert old_questions[0].question_template_id == template["id"]

    def test_deleted_template_not_resolved(self, project, category, template):
        template_service.delete_question_template(template["id"], ADMIN)
        assert template_service.list_question_templates() == []
        with pytest.raises(ValidationError):
            evaluation_service.create_evaluation(project["id"], "Empty", [category["id"]], FACILITATOR)


class TestReorder:
    def test_move_before(self):
        a, b, c = _make("A"), _make("B"), _make("C")
        result = template_service.reorder_question_template(c["id"], ADMIN, new_next_template_id=a["id"])
        assert [t["id"] for t in result] == [c["id"], a["id"], b["id"]]
        assert [t["admin_order"] for t in result] == [1, 2, 3]

    def test_move_to_end(self):
        a, b, c = _make("A"), _make("B"), _make("C")
        result = template_service.reorder_question_template(a["id"], ADMIN)
        assert [t["id"] for t in result] == [b["id"], c["id"], a["id"]]

    def test_cannot_place_before_itself(self):
        a = _make("A")
        with pytest.raises(ValidationError):
            template_service.reorder_question_template(a["id"], ADMIN, new_next_template_id=a["id"])


class TestCategories:
    def test_add_and_remove(self, template):
        other = template_service.create_project_category("Onshore", ADMIN)
        added = template_service.add_to_project_category(template["id"], other["id"], ADMIN)
        assert other["id"] in _category_ids(added)
        removed = template_service.remove_from_project_category(template["id"], other["id"], ADMIN)
        assert other["id"] not in _category_ids(removed)

    def test_duplicate_name_rejected(self, category):
        with pytest.raises(ValidationError):
            template_service.create_project_category("Offshore", ADMIN)

    def test_copy_carries_current_templates(self, category, template):
        copy = template_service.copy_project_category(category["id"], "Offshore copy", ADMIN)
        resolved = template_service.resolve_current_templates([copy["id"]])
        assert [t.id for t in resolved] == [template["id"]]

    def test_delete_category_keeps_templates(self, category, template):
        template_service.delete_project_category(category["id"], ADMIN)
        assert [t["id"] for t in template_service.list_question_templates()] == [template["id"]]
        assert template_service.list_project_categories() == []


class TestSeed:
    def test_seed_is_idempotent(self):
        created = template_service.seed_default_templates()
        db.session.commit()
        assert created > 0
        assert template_service.seed_default_templates() == 0
        names = [c["name"] for c in template_service.list_project_categories()]
        assert names == [template_service.DEFAULT_CATEGORY]
