from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest
from flask_jwt_extended import create_access_token

from filedesk import create_app
from filedesk.common.identity import Identity
from filedesk.extensions import db
from filedesk.services import EXTENSION_KEY, build_services, services_for_app


@pytest.fixture
def app(tmp_path: Path):
    db_path = tmp_path / "test.db"
    storage_path = tmp_path / "storage"

    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STORAGE_ROOT": str(storage_path),
            "JWT_SECRET_KEY": "test-secret-key-at-least-32-bytes-long",
            "MAX_UPLOAD_SIZE_BYTES": 1024 * 1024,
            "FRONTEND_ORIGINS": ["http://localhost:5173"],
            "TRASH_RETENTION_DAYS": 30,
        }
    )

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    with app.app_context():
        yield services_for_app(app)
        db.session.remove()


@pytest.fixture
def alice() -> Identity:
    return Identity(user_id="u-alice", role="user", branch_id="b-tokyo", department_id="d-sales")


@pytest.fixture
def bob() -> Identity:
    return Identity(user_id="u-bob", role="user", branch_id="b-osaka", department_id="d-legal")


@pytest.fixture
def admin() -> Identity:
    return Identity(user_id="u-root", role="super_admin")


@pytest.fixture
def auth_headers(app):
    def build(identity: Identity) -> dict[str, str]:
        claims = {"role": identity.role}
        if identity.branch_id:
            claims["branch_id"] = identity.branch_id
        if identity.department_id:
            claims["department_id"] = identity.department_id
        with app.app_context():
            token = create_access_token(identity=identity.user_id, additional_claims=claims)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def make_services(app, services):
    """Service bundle on the same session with some settings overridden."""

    def build(**overrides):
        runtime = app.extensions[EXTENSION_KEY]
        return build_services(db.session, runtime.blobs, runtime.policy, replace(runtime.settings, **overrides))

    return build
