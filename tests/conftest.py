"""
Shared pytest fixtures for the suggestion workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup + cache flush (autouse)
    - client: Flask test client (function-scoped)
    - principals: one Principal per role (two supervisors on different teams)
    - auth_headers: X-User-* headers for a principal
    - submit / approved: factories walking a suggestion through the pipeline
"""

import pytest

from suggestion_hub import create_app
from suggestion_hub.middleware.timing import reset_metrics
from suggestion_hub.models import db as _db
from suggestion_hub.services import cache_service
from suggestion_hub.services.attachment_store import AttachmentStore
from suggestion_hub.services.capabilities import (
    DEPARTMENT_MANAGER,
    OPERATIONS_ADMIN,
    SAFETY_ADMIN,
    SHIFT_SUPERVISOR,
    TEAM_MEMBER,
    Principal,
)

TEAM = "A-shift"
OTHER_TEAM = "B-shift"

VALID_DRAFT = {
    "title": "Reduce valve wear",
    "type": "MECHANICAL",
    "content": "Replace the gate valve packing with graphite rings to cut wear.",
    "expectedBenefit": "Fewer unplanned stops on line 2",
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    upload_dir = str(tmp_path_factory.mktemp("uploads"))
    application.config["UPLOAD_DIR"] = upload_dir
    application.extensions["attachment_store"] = AttachmentStore(upload_dir)
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
        cache_service.get_cache().flush()
        reset_metrics()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        cache_service.get_cache().flush()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Principals ───────────────────────────────────────────────────────────


@pytest.fixture()
def principals():
    return {
        "member": Principal("u-member", TEAM_MEMBER, TEAM, "Mia Member"),
        "other_member": Principal("u-member-b", TEAM_MEMBER, OTHER_TEAM, "Ben Member"),
        "supervisor": Principal("u-super", SHIFT_SUPERVISOR, TEAM, "Sam Supervisor"),
        "other_supervisor": Principal("u-super-b", SHIFT_SUPERVISOR, OTHER_TEAM, "Oli Supervisor"),
        "safety_admin": Principal("u-safety", SAFETY_ADMIN, None, "Sara Safety"),
        "ops_admin": Principal("u-ops", OPERATIONS_ADMIN, None, "Otto Ops"),
        "manager": Principal("u-manager", DEPARTMENT_MANAGER, None, "Dana Manager"),
    }


def headers_for(principal):
    """Trusted-header identity for the test client."""
    headers = {
        "X-User-Id": principal.id,
        "X-User-Role": principal.role,
        "X-User-Name": principal.name,
    }
    if principal.team:
        headers["X-User-Team"] = principal.team
    return headers


@pytest.fixture()
def auth_headers():
    return headers_for


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def valid_draft():
    return dict(VALID_DRAFT)


@pytest.fixture()
def submit(principals):
    """Factory: submit a suggestion as the team member (or *principal*)."""
    from suggestion_hub.services.suggestion_service import SuggestionService

    def _submit(principal=None, **overrides):
        draft = {**VALID_DRAFT, **overrides}
        return SuggestionService().submit_suggestion(principal or principals["member"], draft)

    return _submit


@pytest.fixture()
def approved(submit, principals):
    """Factory: a suggestion that passed both review stages (NOT_STARTED)."""
    from suggestion_hub.services.review_pipeline import ReviewPipeline

    def _approved(**overrides):
        suggestion = submit(**overrides)
        pipeline = ReviewPipeline()
        pipeline.submit_first_review(suggestion.id, principals["supervisor"], "APPROVED")
        return pipeline.submit_second_review(suggestion.id, principals["manager"], "APPROVED")

    return _approved


@pytest.fixture()
def completed(approved, principals):
    """Factory: an approved suggestion whose implementation is COMPLETED."""
    from suggestion_hub.services.implementation_tracker import ImplementationTracker

    def _completed(**overrides):
        suggestion = approved(**overrides)
        tracker = ImplementationTracker()
        tracker.update_implementation(
            suggestion.id, principals["manager"],
            {"status": "IN_PROGRESS", "notes": "work started"},
        )
        return tracker.update_implementation(
            suggestion.id, principals["manager"],
            {"status": "COMPLETED", "notes": "done"},
        )

    return _completed
