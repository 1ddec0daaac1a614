"""
Template Blueprint: question template library and project categories.

Endpoints:
    GET    /api/v1/question-templates                               — current heads
    POST   /api/v1/question-templates                               — create
    PUT    /api/v1/question-templates/<template_id>                 — edit (new revision)
    DELETE /api/v1/question-templates/<template_id>                 — void
    GET    /api/v1/question-templates/<template_id>/history         — revision chain
    POST   /api/v1/question-templates/<template_id>/reorder         — move in admin order
    POST   /api/v1/question-templates/<template_id>/categories/<category_id>
    DELETE /api/v1/question-templates/<template_id>/categories/<category_id>
    GET    /api/v1/project-categories
    POST   /api/v1/project-categories
    POST   /api/v1/project-categories/<category_id>/copy
    DELETE /api/v1/project-categories/<category_id>
"""

from flask import Blueprint, jsonify, request

from bmt.blueprints import caller_id, json_body
from bmt.blueprints.errors import register_error_handlers
from bmt.services import template_service

template_bp = Blueprint("template", __name__, url_prefix="/api/v1")
register_error_handlers(template_bp)


# ── Question templates ────────────────────────────────────────────────────────


@template_bp.route("/question-templates", methods=["GET"])
def list_templates():
    include_voided = request.args.get("include_voided", "false").lower() in ("1", "true", "yes")
    return jsonify(template_service.list_question_templates(include_voided=include_voided)), 200


@template_bp.route("/question-templates", methods=["POST"])
def create_template():
    """Body: text, barrier, organization (required); support_notes, project_category_ids."""
    data, err = json_body("text", "barrier", "organization")
    if err:
        return err
    result = template_service.create_question_template(
        caller_id(),
        data["text"],
        data.get("support_notes"),
        data["barrier"],
        data["organization"],
        project_category_ids=data.get("project_category_ids") or (),
    )
    return jsonify(result), 201


@template_bp.route("/question-templates/<template_id>", methods=["PUT"])
def edit_template(template_id):
    data, err = json_body("text", "barrier", "organization")
    if err:
        return err
    result = template_service.edit_question_template(
        template_id,
        caller_id(),
        data["text"],
        data.get("support_notes"),
        data["barrier"],
        data["organization"],
    )
    return jsonify(result), 200


@template_bp.route("/question-templates/<template_id>", methods=["DELETE"])
def delete_template(template_id):
    return jsonify(template_service.delete_question_template(template_id, caller_id())), 200


@template_bp.route("/question-templates/<template_id>/history", methods=["GET"])
def template_history(template_id):
    return jsonify(template_service.get_template_history(template_id)), 200


@template_bp.route("/question-templates/<template_id>/reorder", methods=["POST"])
def reorder_template(template_id):
    """Body: new_next_template_id (optional; omitted or null moves to the end)."""
    data, err = json_body()
    if err:
        return err
    result = template_service.reorder_question_template(
        template_id, caller_id(), new_next_template_id=data.get("new_next_template_id"),
    )
    return jsonify(result), 200


@template_bp.route("/question-templates/<template_id>/categories/<category_id>", methods=["POST"])
def add_template_category(template_id, category_id):
    return jsonify(template_service.add_to_project_category(template_id, category_id, caller_id())), 200


@template_bp.route("/question-templates/<template_id>/categories/<category_id>", methods=["DELETE"])
def remove_template_category(template_id, category_id):
    return jsonify(template_service.remove_from_project_category(template_id, category_id, caller_id())), 200


# ── Project categories ────────────────────────────────────────────────────────


@template_bp.route("/project-categories", methods=["GET"])
def list_categories():
    return jsonify(template_service.list_project_categories()), 200


@template_bp.route("/project-categories", methods=["POST"])
def create_category():
    data, err = json_body("name")
    if err:
        return err
    return jsonify(template_service.create_project_category(data["name"], caller_id())), 201


@template_bp.route("/project-categories/<category_id>/copy", methods=["POST"])
def copy_category(category_id):
    data, err = json_body("name")
    if err:
        return err
    return jsonify(template_service.copy_project_category(category_id, data["name"], caller_id())), 201


@template_bp.route("/project-categories/<category_id>", methods=["DELETE"])
def delete_category(category_id):
    template_service.delete_project_category(category_id, caller_id())
    return "", 204
