from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from werkzeug.datastructures import FileStorage

from app.raportal.audit import record_event
from app.raportal.constants import PAYMENT_TYPES, ROLE_PRESIDENT, ROLE_SUPERADMIN
from app.raportal.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.raportal.models import User
from app.raportal.modules.notifications.service import notify
from app.raportal.modules.payments.models import Payment
from app.raportal.uploads import RECEIPT, store_upload
from app.raportal.utils import iso, parse_float

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Select

logger = logging.getLogger(__name__)

VERIFY_STATUSES = ("approved", "rejected")


def validate_payment_payload(payload: dict) -> list[str]:
    """Validate a payment submission. Returns list of errors."""
    errors = []
    ptype = (payload.get("type") or "").strip().lower()
    if ptype not in PAYMENT_TYPES:
        errors.append(f"Invalid type. Must be one of: {', '.join(PAYMENT_TYPES)}")
    raw_amount = payload.get("amount")
    if raw_amount is None or str(raw_amount).strip() == "":
        errors.append("Amount is required.")
    else:
        try:
            if parse_float(raw_amount, "Amount") <= 0:
                errors.append("Amount must be greater than zero.")
        except BadRequestError as e:
            errors.append(e.message)
    receipt_url = (payload.get("receiptUrl") or "").strip()
    if receipt_url and not receipt_url.startswith(("http://", "https://")):
        errors.append("receiptUrl must be an http(s) URL.")
    return errors


def create_payment(s: "Session", payload: dict, user: User, receipt: FileStorage | None = None) -> Payment:
    """Record a manual receipt-based payment as pending."""
    errors = validate_payment_payload(payload)
    if errors:
        raise BadRequestError(" ".join(errors), details=errors)

    receipt_url = (payload.get("receiptUrl") or "").strip() or None
    file_meta = store_upload(receipt, RECEIPT, required=receipt_url is None)

    now = datetime.utcnow()
    payment = Payment(
        user_id=user.id,
        type=payload["type"].strip().lower(),
        amount=parse_float(payload.get("amount"), "amount"),
        reference_note=(payload.get("referenceNote") or "").strip() or None,
        receipt_url=receipt_url,
        receipt_storage_key=file_meta["storageKey"] if file_meta else None,
        file_metadata=file_meta,
        provider="manual",
        status="pending",
        created_at=now,
        updated_at=now,
    )
    s.add(payment)
    s.flush()
    logger.info("Payment submitted id=%s user_id=%s type=%s amount=%s", payment.id, user.id, payment.type, payment.amount)
    return payment


def get_payment(s: "Session", payment_id: int) -> Payment:
    payment = s.get(Payment, payment_id)
    if not payment or payment.is_deleted:
        raise NotFoundError("Payment not found.")
    return payment


def payments_query(
    *,
    user_id: int | None = None,
    association_id: int | None = None,
    status: str | None = None,
    ptype: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> "Select":
    stmt = select(Payment).where(Payment.is_deleted.is_(False))
    if user_id:
        stmt = stmt.where(Payment.user_id == user_id)
    if association_id:
        stmt = stmt.join(User, User.id == Payment.user_id).where(User.association_id == association_id)
    if status:
        stmt = stmt.where(Payment.status == status)
    if ptype:
        stmt = stmt.where(Payment.type == ptype)
    if date_from:
        stmt = stmt.where(Payment.created_at >= date_from)
    if date_to:
        stmt = stmt.where(Payment.created_at <= date_to)
    return stmt.order_by(Payment.created_at.desc(), Payment.id.desc())


def ensure_can_view(payment: Payment, user: User, roles: set[str]) -> None:
    if ROLE_SUPERADMIN in roles or payment.user_id == user.id:
        return
    if ROLE_PRESIDENT in roles and payment.user and payment.user.association_id == user.association_id:
        return
    raise ForbiddenError("You cannot access this payment.")


def verify_payment(
    s: "Session",
    payment: Payment,
    *,
    status: str,
    reason: str | None,
    actor: User,
    roles: set[str],
) -> Payment:
    """
    Approve or reject a payment. Only a pending payment may be verified, except
    that a superadmin may override an earlier decision.
    """
    status = (status or "").strip().lower()
    if status not in VERIFY_STATUSES:
        raise BadRequestError("status must be 'approved' or 'rejected'.")
    is_superadmin = ROLE_SUPERADMIN in roles
    if not is_superadmin:
        payer = payment.user
        if payer is None or payer.association_id is None or payer.association_id != actor.association_id:
            raise ForbiddenError("Presidents can only verify payments from their own association.")
    if payment.status != "pending" and not is_superadmin:
        raise ConflictError(f"Only a superadmin can override a {payment.status} payment.")

    previous_status = payment.status
    reason = (reason or "").strip() or None
    payment.status = status
    payment.verified_by_user_id = actor.id
    payment.verified_at = datetime.utcnow()
    payment.updated_at = payment.verified_at
    payment.rejection_reason = reason if status == "rejected" else None

    record_event(
        s,
        actor=actor,
        action="PAYMENT_APPROVED" if status == "approved" else "PAYMENT_REJECTED",
        target_type="Payment",
        target_id=payment.id,
        metadata={
            "previousStatus": previous_status,
            "reason": reason,
            "amount": payment.amount,
            "type": payment.type,
        },
    )
    if status == "approved":
        message = f"Your payment of {payment.amount:,.2f} for {payment.type} has been approved."
    else:
        message = f"Your payment of {payment.amount:,.2f} for {payment.type} was rejected. Reason: {reason or 'not given'}"
    notify(
        s,
        user_id=payment.user_id,
        type="payment_status",
        title=f"Payment {status.capitalize()}",
        message=message,
        metadata={"paymentId": payment.id, "status": status},
    )
    return payment


def delete_payment(s: "Session", payment: Payment, actor: User) -> None:
    """Soft delete; the row stays for the audit trail."""
    payment.is_deleted = True
    payment.deleted_at = datetime.utcnow()
    payment.deleted_by_user_id = actor.id
    record_event(
        s,
        actor=actor,
        action="PAYMENT_DELETE",
        target_type="Payment",
        target_id=payment.id,
        metadata={"status": payment.status, "amount": payment.amount, "type": payment.type},
    )


def payment_stats(s: "Session", *, association_id: int | None = None) -> dict[str, dict[str, float]]:
    stmt = (
        select(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.is_deleted.is_(False))
        .group_by(Payment.status)
    )
    if association_id:
        stmt = stmt.join(User, User.id == Payment.user_id).where(User.association_id == association_id)
    out = {status: {"count": 0, "totalAmount": 0.0} for status in ("pending", "approved", "rejected")}
    for status, count, total in s.execute(stmt).all():
        out[status] = {"count": int(count), "totalAmount": float(total or 0)}
    return out


def payment_to_dict(p: Payment) -> dict[str, Any]:
    payer = p.user
    return {
        "id": p.id,
        "userId": p.user_id,
        "user": (
            {
                "id": payer.id,
                "firstName": payer.first_name,
                "lastName": payer.last_name,
                "email": payer.email,
                "userCode": payer.user_code,
            }
            if payer
            else None
        ),
        "type": p.type,
        "amount": p.amount,
        "referenceNote": p.reference_note,
        "receiptUrl": p.receipt_url or (f"/api/payments/{p.id}/receipt-file" if p.receipt_storage_key else None),
        "fileMetadata": p.file_metadata,
        "provider": p.provider,
        "status": p.status,
        "verifiedBy": p.verified_by_user_id,
        "verifiedAt": iso(p.verified_at),
        "rejectionReason": p.rejection_reason,
        "createdAt": iso(p.created_at),
    }
