"""
Shared pytest fixtures for the Barrier Evaluation Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - category / template / project / evaluation: small service-level factories
"""

import pytest

from bmt import create_app
from bmt.models import db as _db
from bmt.services import evaluation_service, template_service

FACILITATOR = "aad-facilitator"
ADMIN = "aad-admin"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def category():
    return template_service.create_project_category("Offshore", ADMIN)


@pytest.fixture()
def template(category):
    return template_service.create_question_template(
        ADMIN,
        "Is the barrier strategy documented?",
        "Look for an owner and revision history.",
        "GM",
        "all",
        project_category_ids=[category["id"]],
    )


@pytest.fixture()
def project():
    proj, _created = evaluation_service.get_or_create_project("FUSION-1", FACILITATOR)
    return proj


@pytest.fixture()
def evaluation(project, category, template):
    """Evaluation created by FACILITATOR with one question from `template`."""
    return evaluation_service.create_evaluation(
        project["id"], "Workshop 1", [category["id"]], FACILITATOR,
    )
