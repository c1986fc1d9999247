import io

import pytest

from app.raportal import create_app
from app.raportal.auth import _login_attempts
from app.raportal.db import session_scope
from app.raportal.models import AuditLog, Base
from app.raportal.modules.associations.service import find_by_name, seed_reference_data
from app.raportal.modules.notifications.models import Notification
from app.raportal.modules.payments.models import Payment
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


def _submit(client, headers, *, ptype="dues", amount="5000", receipt=True):
    data = {"type": ptype, "amount": amount, "referenceNote": "Bank transfer"}
    if receipt:
        data["receipt"] = (io.BytesIO(b"%PDF-1.4 fake receipt"), "receipt.pdf", "application/pdf")
    return client.post("/api/payments", data=data, headers=headers, content_type="multipart/form-data")


def test_submit_payment_stores_receipt(client, app):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    r = _submit(client, amb)
    assert r.status_code == 201, r.json
    body = r.json
    assert body["status"] == "pending"
    assert body["amount"] == 5000
    assert body["fileMetadata"]["contentType"] == "application/pdf"
    assert body["receiptUrl"] == f"/api/payments/{body['id']}/receipt-file"

    f = client.get(body["receiptUrl"], headers=amb)
    assert f.status_code == 200
    assert f.data == b"%PDF-1.4 fake receipt"


def test_submit_requires_receipt_and_valid_fields(client, app):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    assert _submit(client, amb, receipt=False).status_code == 400
    assert _submit(client, amb, ptype="donation").status_code == 400
    assert _submit(client, amb, amount="-1").status_code == 400

    r = client.post(
        "/api/payments",
        json={"type": "camp", "amount": 2500, "receiptUrl": "https://bank.example.com/r/1"},
        headers=amb,
    )
    assert r.status_code == 201
    assert r.json["receiptUrl"] == "https://bank.example.com/r/1"


@pytest.mark.parametrize("amount", ["nan", "inf", "-inf", "Infinity"])
def test_submit_rejects_non_finite_amount(client, app, amount):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    r = _submit(client, amb, amount=amount)
    assert r.status_code == 400
    assert r.json["error"] == "bad_request"
    with session_scope(app) as s:
        assert s.query(Payment).count() == 0


def test_rejected_submission_leaves_no_stored_receipt(client, app, tmp_path):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    r = client.post(
        "/api/payments",
        data={
            "type": "dues",
            "amount": "5000",
            "receiptUrl": "ftp://bank.example.com/r/1",
            "receipt": (io.BytesIO(b"%PDF-1.4 fake receipt"), "receipt.pdf", "application/pdf"),
        },
        headers=amb,
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    storage = tmp_path / "storage"
    assert not storage.exists() or not [p for p in storage.rglob("*") if p.is_file()]


def test_president_verifies_own_association_once(client, app):
    amb_id, amb = _make_user(app, "amb@example.com", "ambassador")
    _, pres = _make_user(app, "pres@example.com", "president")
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    pid = _submit(client, amb).json["id"]

    r = client.patch(f"/api/payments/{pid}/verify", json={"status": "approved"}, headers=pres)
    assert r.status_code == 200
    assert r.json["status"] == "approved"
    assert r.json["verifiedAt"]

    # only a superadmin may revisit a decided payment
    r = client.patch(f"/api/payments/{pid}/verify", json={"status": "rejected"}, headers=pres)
    assert r.status_code == 409
    r = client.patch(f"/api/payments/{pid}/verify", json={"status": "rejected", "reason": "Duplicate"}, headers=admin)
    assert r.status_code == 200
    assert r.json["rejectionReason"] == "Duplicate"

    # approving again clears the earlier rejection reason
    r = client.patch(f"/api/payments/{pid}/verify", json={"status": "approved"}, headers=admin)
    assert r.status_code == 200
    assert r.json["status"] == "approved"
    assert r.json["rejectionReason"] is None

    with session_scope(app) as s:
        actions = [a.action for a in s.query(AuditLog).filter(AuditLog.target_type == "Payment").order_by(AuditLog.id).all()]
        assert actions == ["PAYMENT_APPROVED", "PAYMENT_REJECTED", "PAYMENT_APPROVED"]
        notes = s.query(Notification).filter(Notification.user_id == amb_id).all()
        assert [n.type for n in notes] == ["payment_status"] * 3
        assert s.get(Payment, pid).rejection_reason is None


def test_president_of_other_association_cannot_verify(client, app):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    _, pres_b = _make_user(app, "pres-b@example.com", "president", association=ASSOC_B)
    pid = _submit(client, amb).json["id"]

    r = client.patch(f"/api/payments/{pid}/verify", json={"status": "approved"}, headers=pres_b)
    assert r.status_code == 403
    assert client.get("/api/payments", headers=pres_b).json["items"] == []


def test_verify_rejects_unknown_status(client, app):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    pid = _submit(client, amb).json["id"]
    r = client.patch(f"/api/payments/{pid}/verify", json={"status": "maybe"}, headers=admin)
    assert r.status_code == 400


def test_other_ambassador_cannot_view_payment(client, app):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    _, other = _make_user(app, "other@example.com", "ambassador")
    pid = _submit(client, amb).json["id"]
    assert client.get(f"/api/payments/{pid}", headers=other).status_code == 403
    assert client.get(f"/api/payments/{pid}/receipt", headers=other).status_code == 403
    assert client.get("/api/payments/my", headers=other).json == []


def test_receipt_pdf_is_generated(client, app):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    pid = _submit(client, amb).json["id"]
    r = client.get(f"/api/payments/{pid}/receipt", headers=amb)
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data.startswith(b"%PDF")


def test_soft_delete_hides_payment_from_lists_and_stats(client, app):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    _, admin = _make_user(app, "admin@example.com", "superadmin")
    keep = _submit(client, amb, amount="1000").json["id"]
    gone = _submit(client, amb, amount="3000").json["id"]

    assert client.delete(f"/api/payments/{gone}", headers=admin).status_code == 200
    assert client.get(f"/api/payments/{gone}", headers=admin).status_code == 404
    assert [p["id"] for p in client.get("/api/payments/my", headers=amb).json] == [keep]

    stats = client.get("/api/payments/stats", headers=admin).json
    assert stats["pending"] == {"count": 1, "totalAmount": 1000.0}

    with session_scope(app) as s:
        assert s.get(Payment, gone).is_deleted is True
