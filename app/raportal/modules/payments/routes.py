from __future__ import annotations

import io

from flask import Blueprint, current_app, jsonify, request, send_file

from app.raportal.constants import ROLE_AMBASSADOR, ROLE_PRESIDENT, ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.errors import NotFoundError
from app.raportal.modules.payments.receipts import generate_receipt_pdf
from app.raportal.modules.payments.service import (
    create_payment,
    delete_payment,
    ensure_can_view,
    get_payment,
    payment_stats,
    payment_to_dict,
    payments_query,
    verify_payment,
)
from app.raportal.rbac import current_roles, current_user, require_auth, require_roles
from app.raportal.storage import StorageError, storage_from_config
from app.raportal.utils import json_payload, page_params, paginate, parse_datetime, parse_int

bp = Blueprint("payments", __name__)


@bp.post("/payments")
@require_roles(ROLE_AMBASSADOR, ROLE_PRESIDENT)
def payments_create():
    s = db_session()
    payment = create_payment(s, json_payload(), current_user(), request.files.get("receipt"))
    s.commit()
    return jsonify(payment_to_dict(payment)), 201


@bp.get("/payments/my")
@require_auth
def payments_my():
    s = db_session()
    rows = s.execute(payments_query(user_id=current_user().id)).scalars().all()
    return jsonify([payment_to_dict(p) for p in rows])


@bp.get("/payments")
@require_roles(ROLE_SUPERADMIN, ROLE_PRESIDENT)
def payments_list():
    s = db_session()
    u = current_user()
    page, limit = page_params()
    if ROLE_SUPERADMIN in current_roles():
        association_id = parse_int(request.args.get("associationId"), "associationId")
    else:
        association_id = u.association_id or -1
    stmt = payments_query(
        association_id=association_id,
        status=(request.args.get("status") or "").strip() or None,
        ptype=(request.args.get("type") or "").strip() or None,
        date_from=parse_datetime(request.args.get("from")),
        date_to=parse_datetime(request.args.get("to")),
    )
    return jsonify(paginate(s, stmt, page=page, limit=limit, serialize=payment_to_dict))


@bp.get("/payments/stats")
@require_roles(ROLE_SUPERADMIN, ROLE_PRESIDENT)
def payments_stats():
    s = db_session()
    if ROLE_SUPERADMIN in current_roles():
        association_id = parse_int(request.args.get("associationId"), "associationId")
    else:
        association_id = current_user().association_id or -1
    return jsonify(payment_stats(s, association_id=association_id))


@bp.get("/payments/<int:payment_id>")
@require_auth
def payments_detail(payment_id: int):
    s = db_session()
    payment = get_payment(s, payment_id)
    ensure_can_view(payment, current_user(), current_roles())
    return jsonify(payment_to_dict(payment))


@bp.patch("/payments/<int:payment_id>/verify")
@require_roles(ROLE_SUPERADMIN, ROLE_PRESIDENT)
def payments_verify(payment_id: int):
    s = db_session()
    payload = json_payload()
    payment = verify_payment(
        s,
        get_payment(s, payment_id),
        status=payload.get("status") or "",
        reason=payload.get("reason"),
        actor=current_user(),
        roles=current_roles(),
    )
    s.commit()
    return jsonify(payment_to_dict(payment))


@bp.delete("/payments/<int:payment_id>")
@require_roles(ROLE_SUPERADMIN)
def payments_delete(payment_id: int):
    s = db_session()
    delete_payment(s, get_payment(s, payment_id), current_user())
    s.commit()
    return jsonify({"message": "Payment deleted."})


@bp.get("/payments/<int:payment_id>/receipt")
@require_auth
def payments_receipt_pdf(payment_id: int):
    s = db_session()
    payment = get_payment(s, payment_id)
    ensure_can_view(payment, current_user(), current_roles())
    pdf = generate_receipt_pdf(payment, payment.user)
    return send_file(
        io.BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=f"receipt-{payment.id}.pdf",
    )


@bp.get("/payments/<int:payment_id>/receipt-file")
@require_auth
def payments_receipt_file(payment_id: int):
    s = db_session()
    payment = get_payment(s, payment_id)
    ensure_can_view(payment, current_user(), current_roles())
    if not payment.receipt_storage_key:
        raise NotFoundError("No uploaded receipt for this payment.")
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(payment.receipt_storage_key)
    except StorageError as e:
        current_app.logger.error("Receipt file missing payment_id=%s key=%s", payment.id, payment.receipt_storage_key)
        raise NotFoundError("Receipt file not found.") from e
    meta = payment.file_metadata or {}
    return send_file(
        fobj,
        mimetype=meta.get("contentType") or "application/octet-stream",
        as_attachment=True,
        download_name=meta.get("originalFilename") or payment.receipt_storage_key.rsplit("/", 1)[-1],
    )
