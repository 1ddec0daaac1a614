"""
HTTP layer: status codes, error codes and identity resolution.
"""

import os

import jwt
import pytest

FACILITATOR = "aad-facilitator"
MEMBER = "aad-member"


def _h(azure_unique_id):
    return {"X-Azure-Unique-Id": azure_unique_id}


@pytest.fixture()
def setup(client):
    """Category + template + project + evaluation created through the API."""
    cat = client.post("/api/v1/project-categories", json={"name": "Offshore"}, headers=_h("admin"))
    assert cat.status_code == 201
    tpl = client.post(
        "/api/v1/question-templates",
        json={
            "text": "Is the strategy documented?",
            "barrier": "GM",
            "organization": "all",
            "project_category_ids": [cat.get_json()["id"]],
        },
        headers=_h("admin"),
    )
    assert tpl.status_code == 201
    proj = client.post("/api/v1/projects", json={"fusion_project_id": "F-1"}, headers=_h(FACILITATOR))
    assert proj.status_code == 201
    ev = client.post(
        "/api/v1/evaluations",
        json={
            "project_id": proj.get_json()["id"],
            "name": "Workshop",
            "project_category_ids": [cat.get_json()["id"]],
        },
        headers=_h(FACILITATOR),
    )
    assert ev.status_code == 201
    return {
        "category": cat.get_json(),
        "template": tpl.get_json(),
        "project": proj.get_json(),
        "evaluation": ev.get_json(),
    }


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers


class TestProjects:
    def test_get_or_create(self, client):
        first = client.post("/api/v1/projects", json={"fusion_project_id": "F-9"}, headers=_h(FACILITATOR))
        second = client.post("/api/v1/projects", json={"fusion_project_id": "F-9"}, headers=_h(FACILITATOR))
        assert first.status_code == 201
        assert second.status_code == 200
        assert first.get_json()["id"] == second.get_json()["id"]

    def test_missing_field(self, client):
        res = client.post("/api/v1/projects", json={}, headers=_h(FACILITATOR))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_no_identity_forbidden(self, client):
        res = client.post("/api/v1/projects", json={"fusion_project_id": "F-9"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_project_lists_evaluations(self, client, setup):
        res = client.get(f"/api/v1/projects/{setup['project']['id']}")
        assert res.status_code == 200
        assert [e["id"] for e in res.get_json()["evaluations"]] == [setup["evaluation"]["id"]]

    def test_unknown_project(self, client):
        res = client.get("/api/v1/projects/missing")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


class TestEvaluations:
    def test_create_snapshots_questions(self, setup):
        questions = setup["evaluation"]["questions"]
        assert [q["text"] for q in questions] == ["Is the strategy documented?"]
        assert questions[0]["question_template_id"] == setup["template"]["id"]

    def test_create_with_missing_project_is_422(self, client, setup):
        res = client.post(
            "/api/v1/evaluations",
            json={"project_id": "missing", "name": "X", "project_category_ids": [setup["category"]["id"]]},
            headers=_h(FACILITATOR),
        )
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_previous_evaluation_missing_flag(self, client, setup):
        res = client.post(
            "/api/v1/evaluations",
            json={
                "project_id": setup["project"]["id"],
                "name": "Second",
                "project_category_ids": [setup["category"]["id"]],
                "previous_evaluation_id": "gone",
            },
            headers=_h(FACILITATOR),
        )
        assert res.status_code == 201
        body = client.get(f"/api/v1/evaluations/{res.get_json()['id']}").get_json()
        assert body["previous_evaluation"] is None
        assert body["previous_evaluation_missing"] is True

    def test_summary_facilitator_only(self, client, setup):
        ev_id = setup["evaluation"]["id"]
        ok = client.put(f"/api/v1/evaluations/{ev_id}/summary", json={"summary": "Good"}, headers=_h(FACILITATOR))
        assert ok.status_code == 200
        assert ok.get_json()["summary"] == "Good"
        denied = client.put(f"/api/v1/evaluations/{ev_id}/summary", json={"summary": "x"}, headers=_h(MEMBER))
        assert denied.status_code == 403


class TestProgressionApi:
    def test_skip_is_409(self, client, setup):
        ev_id = setup["evaluation"]["id"]
        res = client.post(
            f"/api/v1/evaluations/{ev_id}/progression", json={"progression": "workshop"}, headers=_h(FACILITATOR),
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_INVALID_TRANSITION"

    def test_stale_answer_is_409(self, client, setup):
        ev_id = setup["evaluation"]["id"]
        question_id = setup["evaluation"]["questions"][0]["id"]
        added = client.post(
            f"/api/v1/evaluations/{ev_id}/participants",
            json={"azure_unique_id": MEMBER, "organization": "engineering", "role": "participant"},
            headers=_h(FACILITATOR),
        )
        assert added.status_code == 201

        for who in (FACILITATOR, MEMBER):
            res = client.post(
                f"/api/v1/evaluations/{ev_id}/progression", json={"progression": "individual"}, headers=_h(who),
            )
            assert res.status_code == 200
        assert res.get_json()["evaluation"]["progression"] == "individual"

        res = client.post(
            f"/api/v1/questions/{question_id}/answers",
            json={"progression": "nomination", "severity": "low", "text": "late"},
            headers=_h(FACILITATOR),
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_STALE_PROGRESSION"


class TestFollowupApi:
    def test_duplicate_answer_is_409(self, client, setup):
        question_id = setup["evaluation"]["questions"][0]["id"]
        body = {"progression": "nomination", "severity": "low", "text": "ok"}
        first = client.post(f"/api/v1/questions/{question_id}/answers", json=body, headers=_h(FACILITATOR))
        second = client.post(f"/api/v1/questions/{question_id}/answers", json=body, headers=_h(FACILITATOR))
        assert first.status_code == 201
        assert second.status_code == 409
        assert second.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_action_lifecycle(self, client, setup):
        question_id = setup["evaluation"]["questions"][0]["id"]
        created = client.post(
            f"/api/v1/questions/{question_id}/actions",
            json={"title": "Fix it", "priority": "high"},
            headers=_h(FACILITATOR),
        )
        assert created.status_code == 201
        action_id = created.get_json()["id"]

        note = client.post(f"/api/v1/actions/{action_id}/notes", json={"text": "Started"}, headers=_h(FACILITATOR))
        assert note.status_code == 201

        missing = client.post(f"/api/v1/actions/{action_id}/complete", json={}, headers=_h(FACILITATOR))
        assert missing.status_code == 422
        assert missing.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

        done = client.post(
            f"/api/v1/actions/{action_id}/complete", json={"closing_remark": "Fixed"}, headers=_h(FACILITATOR),
        )
        assert done.status_code == 200
        again = client.post(
            f"/api/v1/actions/{action_id}/complete", json={"closing_remark": "Fixed"}, headers=_h(FACILITATOR),
        )
        assert again.status_code == 409
        assert again.get_json()["code"] == "ERR_CONFLICT_STATE"


class TestMalformedBodies:
    @pytest.fixture()
    def action_id(self, client, setup):
        question_id = setup["evaluation"]["questions"][0]["id"]
        res = client.post(
            f"/api/v1/questions/{question_id}/actions", json={"title": "Fix it"}, headers=_h(FACILITATOR),
        )
        return res.get_json()["id"]

    def test_edit_action_rejects_reserved_keys(self, client, action_id):
        for key in ("action_id", "azure_unique_id"):
            res = client.put(f"/api/v1/actions/{action_id}", json={key: "x"}, headers=_h(FACILITATOR))
            assert res.status_code == 422
            assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_list_body_is_400(self, client, setup):
        question_id = setup["evaluation"]["questions"][0]["id"]
        res = client.post(f"/api/v1/questions/{question_id}/actions", json=["x"], headers=_h(FACILITATOR))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_list_body_on_optional_routes_is_400(self, client, action_id):
        for path in (f"/api/v1/actions/{action_id}/notes", f"/api/v1/actions/{action_id}/complete"):
            res = client.post(path, json=["x"], headers=_h(FACILITATOR))
            assert res.status_code == 400

    def test_non_string_title_is_422(self, client, setup, action_id):
        question_id = setup["evaluation"]["questions"][0]["id"]
        created = client.post(
            f"/api/v1/questions/{question_id}/actions", json={"title": 5}, headers=_h(FACILITATOR),
        )
        assert created.status_code == 422
        assert created.get_json()["code"] == "ERR_VALIDATION_INVALID"
        edited = client.put(f"/api/v1/actions/{action_id}", json={"title": 5}, headers=_h(FACILITATOR))
        assert edited.status_code == 422

    def test_non_string_name_and_text_are_422(self, client, setup, action_id):
        res = client.post(
            "/api/v1/evaluations",
            json={
                "project_id": setup["project"]["id"],
                "name": 7,
                "project_category_ids": [setup["category"]["id"]],
            },
            headers=_h(FACILITATOR),
        )
        assert res.status_code == 422
        note = client.post(f"/api/v1/actions/{action_id}/notes", json={"text": 3}, headers=_h(FACILITATOR))
        assert note.status_code == 422
        category = client.post("/api/v1/project-categories", json={"name": ["x"]}, headers=_h("admin"))
        assert category.status_code == 422


class TestTemplatesApi:
    def test_edit_and_history(self, client, setup):
        tpl_id = setup["template"]["id"]
        edited = client.put(
            f"/api/v1/question-templates/{tpl_id}",
            json={"text": "Reworded", "barrier": "GM", "organization": "all"},
            headers=_h("admin"),
        )
        assert edited.status_code == 200
        history = client.get(f"/api/v1/question-templates/{edited.get_json()['id']}/history")
        assert [h["id"] for h in history.get_json()] == [edited.get_json()["id"], tpl_id]

    def test_delete_category(self, client, setup):
        res = client.delete(f"/api/v1/project-categories/{setup['category']['id']}", headers=_h("admin"))
        assert res.status_code == 204
        assert client.get("/api/v1/project-categories").get_json() == []


class TestIdentity:
    def test_jwt_oid_claim(self, app, client):
        token = jwt.encode({"oid": "aad-token-user"}, app.config["SECRET_KEY"], algorithm="HS256")
        res = client.post(
            "/api/v1/projects",
            json={"fusion_project_id": "F-JWT"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert res.status_code == 201

    def test_invalid_token_without_header_is_forbidden(self, client):
        res = client.post(
            "/api/v1/projects",
            json={"fusion_project_id": "F-JWT"},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert res.status_code == 403

    def test_identity_header_ignored_when_untrusted(self, app, client, monkeypatch):
        monkeypatch.setitem(app.config, "TRUST_IDENTITY_HEADER", False)
        res = client.post("/api/v1/projects", json={"fusion_project_id": "F-HDR"}, headers=_h(FACILITATOR))
        assert res.status_code == 403

    def test_development_does_not_trust_header_by_default(self):
        from bmt.config import DevelopmentConfig, ProductionConfig

        if "TRUST_IDENTITY_HEADER" in os.environ:
            pytest.skip("TRUST_IDENTITY_HEADER set in the environment")
        assert DevelopmentConfig.TRUST_IDENTITY_HEADER is False
        assert ProductionConfig.TRUST_IDENTITY_HEADER is False
