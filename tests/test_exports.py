"""Spreadsheet exports and the role dashboards."""
import io

import pytest
from openpyxl import load_workbook

from app.raportal import create_app
from app.raportal.auth import _login_attempts
from app.raportal.db import session_scope
from app.raportal.models import AuditLog, Base
from app.raportal.modules.associations.service import find_by_name, seed_reference_data
from app.raportal.modules.users.service import create_user
from app.raportal.security import ACCESS, access_token_ttl, create_token

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


@pytest.fixture()
def people(app):
    return {
        "admin": _make_user(app, "admin@example.com", "superadmin"),
        "pres": _make_user(app, "pres@example.com", "president"),
        "amb": _make_user(app, "amb@example.com", "ambassador"),
        "amb_b": _make_user(app, "amb-b@example.com", "ambassador", association=ASSOC_B),
    }


def _pay(client, headers, amount):
    r = client.post(
        "/api/payments",
        json={"type": "dues", "amount": amount, "receiptUrl": "https://bank.example.com/r"},
        headers=headers,
    )
    assert r.status_code == 201
    return r.json["id"]


def _rows(response):
    assert response.status_code == 200
    assert response.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    wb = load_workbook(io.BytesIO(response.data), read_only=True)
    return [list(r) for r in wb.worksheets[0].iter_rows(values_only=True)]


def test_superadmin_user_export_includes_everyone(client, people):
    rows = _rows(client.get("/api/exports/users", headers=people["admin"][1]))
    assert rows[0][:3] == ["First Name", "Last Name", "Email"]
    assert sorted(r[2] for r in rows[1:]) == [
        "admin@example.com",
        "amb-b@example.com",
        "amb@example.com",
        "pres@example.com",
    ]


def test_president_export_is_forced_to_own_association(client, app, people):
    _, pres = people["pres"]
    with session_scope(app) as s:
        other = find_by_name(s, ASSOC_B).id
    rows = _rows(client.get("/api/exports/users", query_string={"associationId": other}, headers=pres))
    assert "amb-b@example.com" not in {r[2] for r in rows[1:]}
    assert len(rows) == 4


def test_payment_export_filters_status_and_records_audit(client, app, people):
    _, admin = people["admin"]
    keep = _pay(client, people["amb"][1], 1000)
    _pay(client, people["amb_b"][1], 2000)
    client.patch(f"/api/payments/{keep}/verify", json={"status": "approved"}, headers=admin)

    rows = _rows(client.get("/api/exports/payments?status=approved", headers=admin))
    assert len(rows) == 2
    assert rows[1][3] == 1000
    assert rows[1][4] == "approved"

    with session_scope(app) as s:
        ev = s.query(AuditLog).filter(AuditLog.action == "DATA_EXPORT").one()
        assert ev.target_type == "Payments"
        assert ev.metadata_json == {"filters": {"status": "approved"}, "rows": 1}


def test_exam_export_rejects_unknown_status(client, people):
    r = client.get("/api/exports/exams?status=pending", headers=people["admin"][1])
    assert r.status_code == 400


def test_export_date_range_validation(client, people):
    admin = people["admin"][1]
    assert client.get("/api/exports/users?startDate=2026-02-01&endDate=2026-01-01", headers=admin).status_code == 400
    assert client.get("/api/exports/users?startDate=yesterday", headers=admin).status_code == 400


def test_unknown_export_and_ambassador_access(client, people):
    assert client.get("/api/exports/donations", headers=people["admin"][1]).status_code == 404
    assert client.get("/api/exports/users", headers=people["amb"][1]).status_code == 403


def test_camp_export_lists_participants(client, people):
    admin = people["admin"][1]
    camp = client.post(
        "/api/camps",
        json={"title": "Leaders 2026", "type": "Leadership Retreat", "year": 2026, "startDate": "2026-04-01", "endDate": "2026-04-03"},
        headers=admin,
    ).json
    client.post(f"/api/camps/{camp['id']}/register", headers=people["amb"][1])
    rows = _rows(client.get(f"/api/exports/camps?campId={camp['id']}", headers=admin))
    assert rows[1][2:5] == ["Leaders 2026", "individual", "pending"]


# ---------- Dashboards ----------

def test_superadmin_stats(client, people):
    _pay(client, people["amb"][1], 500)
    stats = client.get("/api/dashboard/superadmin/stats", headers=people["admin"][1]).json
    assert stats["totalUsers"] == 4
    assert stats["usersByStatus"] == {"active": 4}
    assert stats["payments"]["pending"] == {"count": 1, "totalAmount": 500.0}
    assert stats["activeExams"] == 0


def test_audit_log_listing_and_filters(client, people):
    admin_id, admin = people["admin"]
    client.get("/api/exports/users", headers=admin)
    pid = _pay(client, people["amb"][1], 500)
    client.patch(f"/api/payments/{pid}/verify", json={"status": "rejected", "reason": "Blurry"}, headers=admin)

    logs = client.get("/api/dashboard/superadmin/audit-logs", query_string={"actorId": admin_id}, headers=admin).json
    assert [x["action"] for x in logs["items"]] == ["PAYMENT_REJECTED", "DATA_EXPORT"]

    only = client.get("/api/dashboard/superadmin/audit-logs?action=DATA_EXPORT", headers=admin).json
    assert only["total"] == 1

    trail = client.get(f"/api/dashboard/superadmin/audit-logs/Payment/{pid}", headers=admin).json
    assert [x["metadata"]["reason"] for x in trail] == ["Blurry"]


def test_president_dashboard_scoped(client, people):
    _, pres = people["pres"]
    _pay(client, people["amb"][1], 700)
    _pay(client, people["amb_b"][1], 900)

    stats = client.get("/api/dashboard/president/stats", headers=pres).json
    assert stats["totalUsers"] == 3
    assert stats["payments"]["pending"]["totalAmount"] == 700.0

    members = client.get("/api/dashboard/president/users?q=amb", headers=pres).json
    assert [m["email"] for m in members["items"]] == ["amb@example.com"]


def test_ambassador_summary(client, people):
    _, amb = people["amb"]
    _pay(client, amb, 100)
    summary = client.get("/api/dashboard/ambassador/summary", headers=amb).json
    assert summary["userCode"].startswith("RA/OGBC/")
    assert summary["pendingPayments"] == 1
    assert len(summary["recentPayments"]) == 1
    assert summary["results"] == []
    assert summary["unreadNotifications"] == 0
    assert client.get("/api/dashboard/superadmin/stats", headers=amb).status_code == 403
