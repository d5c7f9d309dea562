"""
Shared pytest fixtures for the OpsDesk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - organization: Pre-created Organization
    - admin_user / employee_user / client_user: Profiles for each role
    - auth_headers: Build a Bearer header for any Profile
"""

import pytest

from opsdesk import create_app
from opsdesk.models import db as _db
from opsdesk.services.jwt_service import generate_access_token
from opsdesk.utils.crypto import hash_password

TEST_PASSWORD = "Passw0rd!123"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


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


# ── Identity fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def organization():
    from opsdesk.models.organization import Organization
    org = Organization(name="Test Studio", email="hello@studio.io", vat_enabled=False, vat_rate=0.0)
    _db.session.add(org)
    _db.session.commit()
    return org


def _make_profile(email, role, organization_id=None, full_name="", username=None):
    from opsdesk.models.auth import Profile
    user = Profile(
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        full_name=full_name,
        username=username,
        role=role,
        organization_id=organization_id,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def make_profile(organization):
    """Factory: make_profile("x@studio.io", role="employee", full_name=..., username=...)."""
    def _factory(email, role="employee", **kwargs):
        return _make_profile(email, role, organization_id=organization.id, **kwargs)
    return _factory


@pytest.fixture()
def admin_user(organization):
    return _make_profile("admin@studio.io", "admin", organization.id, full_name="Ada Admin", username="ada")


@pytest.fixture()
def employee_user(organization):
    return _make_profile("emp@studio.io", "employee", organization.id, full_name="Eli Employee", username="eli")


@pytest.fixture()
def client_user(organization):
    return _make_profile("client@acme.com", "client", organization.id, full_name="Cara Client", username="cara")


@pytest.fixture()
def auth_headers():
    """Return a function that builds an Authorization header for a Profile."""
    def _headers(user):
        token = generate_access_token(user.id, user.role, user.organization_id)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture()
def admin_headers(admin_user, auth_headers):
    return auth_headers(admin_user)


@pytest.fixture()
def employee_headers(employee_user, auth_headers):
    return auth_headers(employee_user)


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def client_record():
    """A Client row without a login."""
    from opsdesk.services import client_service
    return client_service.create_client({
        "first_name": "Jane",
        "last_name": "Buyer",
        "email": "jane@buyer.com",
        "timezone": "Europe/Berlin",
    })


@pytest.fixture()
def project(client_record, admin_user):
    from opsdesk.services import project_service
    return project_service.create_project(
        {"name": "Website Relaunch", "client_id": client_record.id},
        actor_id=admin_user.id,
    )


@pytest.fixture()
def proposal(project, admin_user):
    from opsdesk.services import proposal_service
    return proposal_service.create_proposal(
        {"project_id": project.id, "title": "Phase 1", "amount": 1000, "status": "draft"},
        admin_user,
    )
