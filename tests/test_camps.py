import io

import pytest
from openpyxl import Workbook

from app.raportal import create_app
from app.raportal.auth import _login_attempts
from app.raportal.db import session_scope
from app.raportal.models import AuditLog, Base, User
from app.raportal.modules.associations.service import find_by_name, seed_reference_data
from app.raportal.modules.camps.models import CampRegistration
from app.raportal.modules.users.service import create_user
from app.raportal.security import ACCESS, access_token_ttl, create_token

ASSOC_A = "Abeokuta Baptist Association"
ASSOC_B = "Egba Baptist Association"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


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


def _make_user(app, email, role, association=ASSOC_A):
    with app.app_context(), session_scope(app) as s:
        assoc = find_by_name(s, association)
        u = create_user(
            s,
            email=email,
            password="secret123",
            first_name="Test",
            last_name=role.title(),
            role_key=role,
            association_id=assoc.id,
        )
        token, _ = create_token(u, ACCESS, access_token_ttl())
        uid = u.id
    return uid, {"Authorization": f"Bearer {token}"}


def _create_camp(client, headers, **overrides):
    body = {
        "title": "Annual Camp 2026",
        "type": "Annual Camp",
        "year": 2026,
        "startDate": "2026-08-01",
        "endDate": "2026-08-05",
        "fee": 5000,
    }
    body.update(overrides)
    return client.post("/api/camps", json=body, headers=headers)


def _sheet(*emails):
    wb = Workbook()
    ws = wb.active
    ws.append(["Email"])
    for e in emails:
        ws.append([e])
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


def _upload(client, camp_id, headers, sheet, filename="members.xlsx", mimetype=XLSX):
    return client.post(
        f"/api/camps/{camp_id}/bulk-upload",
        data={"file": (sheet, filename, mimetype)},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_create_camp_validates_fields(client, app):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    r = _create_camp(client, admin)
    assert r.status_code == 201
    assert r.json["startDate"].startswith("2026-08-01")

    assert _create_camp(client, admin, type="Picnic").status_code == 400
    assert _create_camp(client, admin, endDate="2026-07-01").status_code == 400
    assert _create_camp(client, admin, fee=-1).status_code == 400


@pytest.mark.parametrize("fee", ["nan", "inf"])
def test_create_camp_rejects_non_finite_fee(client, app, fee):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    r = _create_camp(client, admin, fee=fee)
    assert r.status_code == 400
    assert r.json["error"] == "bad_request"


def test_individual_registration_once(client, app):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    camp_id = _create_camp(client, admin).json["id"]

    r = client.post(f"/api/camps/{camp_id}/register", headers=amb)
    assert r.status_code == 201
    assert r.json["status"] == "pending"
    assert r.json["registrationType"] == "individual"

    assert client.post(f"/api/camps/{camp_id}/register", headers=amb).status_code == 409
    mine = client.get("/api/camps/my-registrations", headers=amb).json
    assert [m["campId"] for m in mine] == [camp_id]


def test_bulk_upload_reports_row_errors_and_keeps_successes(client, app):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    known_id, _ = _make_user(app, "known@example.com", "ambassador")
    camp_id = _create_camp(client, admin).json["id"]

    r = _upload(client, camp_id, admin, _sheet("known@example.com", "ghost@example.com", "KNOWN@example.com"))
    assert r.status_code == 200
    assert r.json["successCount"] == 1
    assert r.json["errors"] == [
        {"row": 3, "error": "User with email ghost@example.com not found"},
        {"row": 4, "error": "User KNOWN@example.com already registered"},
    ]

    with session_scope(app) as s:
        regs = s.query(CampRegistration).filter(CampRegistration.camp_id == camp_id).all()
        assert [(r.user_id, r.registration_type, r.status) for r in regs] == [(known_id, "bulk", "confirmed")]
        audit = s.query(AuditLog).filter(AuditLog.action == "CAMP_UPLOAD").one()
        assert audit.metadata_json["successCount"] == 1
        assert audit.metadata_json["errorCount"] == 2


def test_bulk_upload_matches_email_only(client, app):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    known_id, _ = _make_user(app, "known@example.com", "ambassador")
    camp_id = _create_camp(client, admin).json["id"]
    with session_scope(app) as s:
        code = s.get(User, known_id).user_code

    r = _upload(client, camp_id, admin, _sheet(code))
    assert r.status_code == 200
    assert r.json["successCount"] == 0
    assert r.json["errors"] == [{"row": 2, "error": f"User with email {code} not found"}]


def test_president_bulk_upload_limited_to_own_association(client, app):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    _, pres = _make_user(app, "pres@example.com", "president")
    _make_user(app, "mine@example.com", "ambassador")
    _make_user(app, "theirs@example.com", "ambassador", association=ASSOC_B)
    camp_id = _create_camp(client, admin).json["id"]

    r = _upload(client, camp_id, pres, _sheet("mine@example.com", "theirs@example.com"))
    assert r.json["successCount"] == 1
    assert r.json["errors"][0]["row"] == 3

    regs = client.get(f"/api/camps/{camp_id}/registrations", headers=pres).json
    assert [x["user"]["email"] for x in regs] == ["mine@example.com"]


def test_bulk_upload_rejects_non_xlsx(client, app, tmp_path):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    camp_id = _create_camp(client, admin).json["id"]
    r = _upload(client, camp_id, admin, io.BytesIO(b"email\nx@example.com\n"), filename="list.csv", mimetype="text/csv")
    assert r.status_code == 400
    r = _upload(client, camp_id, admin, io.BytesIO(b"not a workbook"), filename="list.xlsx")
    assert r.status_code == 400
    storage = tmp_path / "storage"
    assert not storage.exists() or not [p for p in storage.rglob("*") if p.is_file()]


def test_ambassador_cannot_bulk_upload(client, app):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    camp_id = _create_camp(client, admin).json["id"]
    assert _upload(client, camp_id, amb, _sheet("amb@example.com")).status_code == 403


def test_status_override_notifies_member(client, app):
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    camp_id = _create_camp(client, admin).json["id"]
    reg_id = client.post(f"/api/camps/{camp_id}/register", headers=amb).json["id"]

    r = client.patch(f"/api/camps/registrations/{reg_id}/status", json={"status": "confirmed"}, headers=admin)
    assert r.status_code == 200
    assert r.json["status"] == "confirmed"
    assert client.patch(f"/api/camps/registrations/{reg_id}/status", json={"status": "waitlisted"}, headers=admin).status_code == 400

    items = client.get("/api/notifications", headers=amb).json["items"]
    assert items[0]["type"] == "camp_status"
