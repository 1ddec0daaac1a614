"""
Evaluation Blueprint: projects, evaluations, participants, progression.

Endpoints:
    GET  /api/v1/projects                                       — list projects
    POST /api/v1/projects                                       — get-or-create by fusion_project_id
    GET  /api/v1/projects/<project_id>                          — project + evaluations
    POST /api/v1/evaluations                                    — create evaluation
    GET  /api/v1/evaluations/<evaluation_id>                    — full evaluation graph
    PUT  /api/v1/evaluations/<evaluation_id>/summary            — set summary
    PUT  /api/v1/evaluations/<evaluation_id>/status             — void / reactivate
    POST /api/v1/evaluations/<evaluation_id>/participants       — add participant
    POST /api/v1/evaluations/<evaluation_id>/participants/<participant_id>/void
    POST /api/v1/evaluations/<evaluation_id>/progression        — advance caller's progression

Layer contract:
    - No ORM calls here; all DB work is delegated to the services.
    - No db.session.commit() here.
    - Caller identity comes from g.azure_unique_id (bmt.middleware.identity).
"""

from flask import Blueprint, jsonify, request

from bmt.blueprints import caller_id, json_body
from bmt.blueprints.errors import register_error_handlers
from bmt.services import evaluation_service, participant_service
from bmt.services.progression import advance_participant_progression

evaluation_bp = Blueprint("evaluation", __name__, url_prefix="/api/v1")
register_error_handlers(evaluation_bp)


def _include_voided() -> bool:
    return request.args.get("include_voided", "false").lower() in ("1", "true", "yes")


# ── Projects ──────────────────────────────────────────────────────────────────


@evaluation_bp.route("/projects", methods=["GET"])
def list_projects():
    return jsonify(evaluation_service.list_projects()), 200


@evaluation_bp.route("/projects", methods=["POST"])
def create_project():
    """Register an external project. Returns 201 when created, 200 when it existed."""
    data, err = json_body("fusion_project_id")
    if err:
        return err
    project, created = evaluation_service.get_or_create_project(data["fusion_project_id"], caller_id())
    return jsonify(project), 201 if created else 200


@evaluation_bp.route("/projects/<project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(evaluation_service.get_project(project_id, include_voided=_include_voided())), 200


# ── Evaluations ───────────────────────────────────────────────────────────────


@evaluation_bp.route("/evaluations", methods=["POST"])
def create_evaluation():
    """Create an evaluation from the current templates of the given categories.

    Body (JSON):
        project_id (str, required)
        name (str, required)
        project_category_ids (list[str], required)
        organization (str, optional): creator's organization, default "all"
        previous_evaluation_id (str, optional)
    """
    data, err = json_body("project_id", "name", "project_category_ids")
    if err:
        return err
    result = evaluation_service.create_evaluation(
        data["project_id"],
        data["name"],
        data["project_category_ids"],
        caller_id(),
        organization=data.get("organization") or "all",
        previous_evaluation_id=data.get("previous_evaluation_id"),
    )
    return jsonify(result), 201


@evaluation_bp.route("/evaluations/<evaluation_id>", methods=["GET"])
def get_evaluation(evaluation_id):
    return jsonify(evaluation_service.get_evaluation(evaluation_id, include_voided=_include_voided())), 200


@evaluation_bp.route("/evaluations/<evaluation_id>/summary", methods=["PUT"])
def set_summary(evaluation_id):
    data, err = json_body()
    if err:
        return err
    return jsonify(evaluation_service.set_evaluation_summary(evaluation_id, caller_id(), data.get("summary"))), 200


@evaluation_bp.route("/evaluations/<evaluation_id>/status", methods=["PUT"])
def set_status(evaluation_id):
    data, err = json_body("status")
    if err:
        return err
    return jsonify(evaluation_service.set_evaluation_status(evaluation_id, caller_id(), data["status"])), 200


# ── Participants & progression ────────────────────────────────────────────────


@evaluation_bp.route("/evaluations/<evaluation_id>/participants", methods=["POST"])
def add_participant(evaluation_id):
    """Body: azure_unique_id, organization, role (all required)."""
    data, err = json_body("azure_unique_id", "organization", "role")
    if err:
        return err
    result = participant_service.add_participant(
        evaluation_id,
        caller_id(),
        data["azure_unique_id"],
        data["organization"],
        data["role"],
    )
    return jsonify(result), 201


@evaluation_bp.route("/evaluations/<evaluation_id>/participants/<participant_id>/void", methods=["POST"])
def void_participant(evaluation_id, participant_id):
    return jsonify(participant_service.void_participant(evaluation_id, caller_id(), participant_id)), 200


@evaluation_bp.route("/evaluations/<evaluation_id>/progression", methods=["POST"])
def advance_progression(evaluation_id):
    """Body: progression (the stage directly after the caller's current one)."""
    data, err = json_body("progression")
    if err:
        return err
    return jsonify(advance_participant_progression(evaluation_id, caller_id(), data["progression"])), 200
