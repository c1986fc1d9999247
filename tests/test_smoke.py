import pytest

from app.raportal import create_app
from app.raportal.auth import _login_attempts
from app.raportal.db import session_scope
from app.raportal.models import Base
from app.raportal.modules.associations.service import find_by_name, seed_reference_data
from app.raportal.modules.users.service import create_user
from app.raportal.security import ACCESS, access_token_ttl, create_token


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("SEED_ON_START", raising=False)
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    _login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        seed_reference_data(s)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ambassador(app):
    with app.app_context(), session_scope(app) as s:
        assoc = find_by_name(s, "Abeokuta Baptist Association")
        u = create_user(
            s,
            email="amb@example.com",
            password="secret123",
            first_name="Ade",
            last_name="Bola",
            role_key="ambassador",
            association_id=assoc.id,
        )
        token, _ = create_token(u, ACCESS, access_token_ttl())
    return {"Authorization": f"Bearer {token}"}


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").data == b"ok"


def test_associations_are_public(client):
    r = client.get("/api/associations")
    assert r.status_code == 200
    names = [a["name"] for a in r.json]
    assert "Abeokuta Baptist Association" in names


ADMIN_ONLY = [
    ("get", "/api/users"),
    ("get", "/api/dashboard/superadmin/stats"),
    ("get", "/api/dashboard/superadmin/audit-logs"),
    ("get", "/api/exams/results/all"),
    ("post", "/api/camps"),
    ("get", "/api/ads"),
    ("get", "/api/media/all"),
    ("get", "/api/announcements/admin/all"),
]


@pytest.mark.parametrize("method,path", ADMIN_ONLY)
def test_admin_endpoints_reject_anonymous(client, method, path):
    r = getattr(client, method)(path)
    assert r.status_code == 401
    assert r.json["error"] == "unauthorized"


@pytest.mark.parametrize("method,path", ADMIN_ONLY)
def test_admin_endpoints_reject_ambassadors(client, ambassador, method, path):
    r = getattr(client, method)(path, headers=ambassador, json={})
    assert r.status_code == 403
    assert r.json["error"] == "forbidden"


def test_garbage_token_is_anonymous(client):
    r = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_unknown_route_is_json_404(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json["error"] == "not_found"


def test_receipts_not_served_publicly(client):
    assert client.get("/uploads/receipts/2026/01/abc-r.pdf").status_code == 404
