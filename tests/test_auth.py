"""Registration, login, passcode gate and refresh-token rotation."""
import pytest

from app.raportal import create_app
from app.raportal.auth import _login_attempts
from app.raportal.db import session_scope
from app.raportal.models import Association, Base, User
from app.raportal.modules.associations.service import find_by_name, seed_reference_data, update_president

ASSOC_A = "Abeokuta Baptist Association"
ASSOC_B = "Egba Baptist Association"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("SUPERADMIN_PASSCODE", "super-pass")
    monkeypatch.setenv("PRESIDENT_PASSCODE", "pres-pass")
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


def _register(client, email, *, role="ambassador", association=ASSOC_A, passcode=None):
    body = {
        "email": email,
        "password": "secret123",
        "firstName": "Tunde",
        "lastName": "Ade",
        "role": role,
        "associationName": association,
    }
    if passcode is not None:
        body["passcode"] = passcode
    return client.post("/api/auth/register", json=body)


def test_register_ambassador_issues_tokens_and_user_code(client):
    r = _register(client, "amb@example.com")
    assert r.status_code == 201
    body = r.json
    assert body["accessToken"] and body["refreshToken"]
    assert body["user"]["roles"] == ["ambassador"]
    assert body["user"]["userCode"] == "RA/OGBC/0001"
    assert body["user"]["rank"] == "Candidate"

    r2 = _register(client, "amb2@example.com")
    assert r2.json["user"]["userCode"] == "RA/OGBC/0002"


def test_register_duplicate_email_conflicts(client):
    assert _register(client, "dup@example.com").status_code == 201
    r = _register(client, "DUP@example.com")
    assert r.status_code == 409
    assert r.json["error"] == "conflict"


def test_register_unknown_association_rejected(client):
    r = _register(client, "x@example.com", association="Nowhere Association")
    assert r.status_code == 400


def test_privileged_registration_requires_passcode(client):
    assert _register(client, "p@example.com", role="president").status_code == 403
    assert _register(client, "p@example.com", role="president", passcode="wrong").status_code == 403
    assert _register(client, "p@example.com", role="president", passcode="pres-pass").status_code == 201
    assert _register(client, "s@example.com", role="superadmin", passcode="pres-pass").status_code == 403


def test_empty_configured_passcode_rejects_privileged_roles(app, monkeypatch):
    monkeypatch.setenv("SUPERADMIN_PASSCODE", "")
    other = create_app()
    r = _register(other.test_client(), "s@example.com", role="superadmin", passcode="")
    assert r.status_code == 403


def test_second_president_takes_over_association(app, client):
    r1 = _register(client, "first@example.com", role="president", passcode="pres-pass")
    r2 = _register(client, "second@example.com", role="president", passcode="pres-pass")
    first_id, second_id = r1.json["user"]["id"], r2.json["user"]["id"]

    with session_scope(app) as s:
        assoc = s.query(Association).filter(Association.name == ASSOC_A).one()
        assert assoc.president_user_id == second_id
        assert s.get(User, first_id).is_current_president is False
        assert s.get(User, second_id).is_current_president is True


def test_president_moving_association_leaves_no_stale_pointer(app, client):
    r = _register(client, "mover@example.com", role="president", passcode="pres-pass")
    user_id = r.json["user"]["id"]
    with session_scope(app) as s:
        update_president(s, find_by_name(s, ASSOC_B), s.get(User, user_id))

    with session_scope(app) as s:
        pointing = s.query(Association).filter(Association.president_user_id == user_id).all()
        assert [a.name for a in pointing] == [ASSOC_B]
        assert s.get(User, user_id).association.name == ASSOC_B


def test_login_with_email_or_user_code(client):
    code = _register(client, "log@example.com").json["user"]["userCode"]
    r = client.post("/api/auth/login", json={"email": "LOG@example.com", "password": "secret123"})
    assert r.status_code == 200
    r = client.post("/api/auth/login", json={"identifier": code.lower(), "password": "secret123"})
    assert r.status_code == 200
    r = client.post("/api/auth/login", json={"email": "log@example.com", "password": "nope"})
    assert r.status_code == 401


def test_privileged_login_requires_passcode(client):
    _register(client, "boss@example.com", role="superadmin", passcode="super-pass")
    r = client.post("/api/auth/login", json={"email": "boss@example.com", "password": "secret123"})
    assert r.status_code == 403
    r = client.post("/api/auth/login", json={"email": "boss@example.com", "password": "secret123", "passcode": "super-pass"})
    assert r.status_code == 200


def test_login_rate_limited_after_five_failures(client):
    _register(client, "rl@example.com")
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "rl@example.com", "password": "bad"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "rl@example.com", "password": "secret123"})
    assert r.status_code == 429


def test_refresh_rotation_and_reuse_detection(client):
    tokens = _register(client, "rot@example.com").json
    old_refresh = tokens["refreshToken"]

    r = client.post("/api/auth/refresh", json={"refreshToken": old_refresh})
    assert r.status_code == 200
    new_refresh = r.json["refreshToken"]
    assert new_refresh != old_refresh

    # replaying the rotated token is rejected and revokes every session
    r = client.post("/api/auth/refresh", json={"refreshToken": old_refresh})
    assert r.status_code == 401
    r = client.post("/api/auth/refresh", json={"refreshToken": new_refresh})
    assert r.status_code == 401


def test_access_token_is_not_a_refresh_token(client):
    tokens = _register(client, "typ@example.com").json
    r = client.post("/api/auth/refresh", json={"refreshToken": tokens["accessToken"]})
    assert r.status_code == 401


def test_logout_revokes_refresh_token(client):
    tokens = _register(client, "out@example.com").json
    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}
    r = client.post("/api/auth/logout", json={"refreshToken": tokens["refreshToken"]}, headers=headers)
    assert r.status_code == 200
    r = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert r.status_code == 401


def test_me_requires_bearer_token(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
    tokens = _register(client, "me@example.com").json
    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['accessToken']}"})
    assert r.status_code == 200
    assert r.json["email"] == "me@example.com"
