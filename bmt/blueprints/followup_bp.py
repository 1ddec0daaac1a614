"""
Follow-up Blueprint: answers, actions, notes and closing remarks.

Endpoints:
    POST /api/v1/questions/<question_id>/answers     — record answer
    PUT  /api/v1/answers/<answer_id>                 — edit own answer
    POST /api/v1/questions/<question_id>/actions     — create action
    PUT  /api/v1/actions/<action_id>                 — edit action
    POST /api/v1/actions/<action_id>/void            — void action
    POST /api/v1/actions/<action_id>/complete        — complete with closing remark
    POST /api/v1/actions/<action_id>/notes           — add note
"""

from flask import Blueprint, jsonify

from bmt.blueprints import caller_id, json_body
from bmt.blueprints.errors import register_error_handlers
from bmt.services import action_service, answer_service
from bmt.services.action_service import EDITABLE_FIELDS
from bmt.utils.errors import E, api_error

followup_bp = Blueprint("followup", __name__, url_prefix="/api/v1")
register_error_handlers(followup_bp)


# ── Answers ───────────────────────────────────────────────────────────────────


@followup_bp.route("/questions/<question_id>/answers", methods=["POST"])
def record_answer(question_id):
    """Body: progression, severity (required); text; consensus (bool)."""
    data, err = json_body("progression", "severity")
    if err:
        return err
    result = answer_service.record_answer(
        question_id,
        caller_id(),
        data["progression"],
        data.get("text"),
        data["severity"],
        consensus=bool(data.get("consensus", False)),
    )
    return jsonify(result), 201


@followup_bp.route("/answers/<answer_id>", methods=["PUT"])
def edit_answer(answer_id):
    data, err = json_body("severity")
    if err:
        return err
    return jsonify(answer_service.edit_answer(answer_id, caller_id(), data.get("text"), data["severity"])), 200


# ── Actions ───────────────────────────────────────────────────────────────────


@followup_bp.route("/questions/<question_id>/actions", methods=["POST"])
def create_action(question_id):
    """Body: title (required); description, priority, due_date, assigned_to_id."""
    data, err = json_body("title")
    if err:
        return err
    result = action_service.create_action(
        question_id,
        caller_id(),
        data["title"],
        description=data.get("description"),
        priority=data.get("priority") or "medium",
        due_date=data.get("due_date"),
        assigned_to_id=data.get("assigned_to_id"),
    )
    return jsonify(result), 201


@followup_bp.route("/actions/<action_id>", methods=["PUT"])
def edit_action(action_id):
    """Body: any of title, description, priority, due_date, on_hold, assigned_to_id."""
    data, err = json_body()
    if err:
        return err
    unknown = sorted(set(data) - set(EDITABLE_FIELDS))
    if unknown:
        return api_error(
            E.VALIDATION_INVALID,
            "Unknown action fields",
            details={f: "not editable" for f in unknown},
        )
    return jsonify(action_service.edit_action(action_id, caller_id(), **data)), 200


@followup_bp.route("/actions/<action_id>/void", methods=["POST"])
def void_action(action_id):
    return jsonify(action_service.void_action(action_id, caller_id())), 200


@followup_bp.route("/actions/<action_id>/complete", methods=["POST"])
def complete_action(action_id):
    """Body: closing_remark (required; blank is rejected by the service with 422)."""
    data, err = json_body()
    if err:
        return err
    return jsonify(action_service.complete_action(action_id, caller_id(), data.get("closing_remark"))), 200


@followup_bp.route("/actions/<action_id>/notes", methods=["POST"])
def add_note(action_id):
    data, err = json_body()
    if err:
        return err
    return jsonify(action_service.add_note(action_id, caller_id(), data.get("text"))), 201
