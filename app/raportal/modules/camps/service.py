from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from openpyxl import load_workbook
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from werkzeug.datastructures import FileStorage

from app.raportal.audit import record_event
from app.raportal.constants import CAMP_REGISTRATION_STATUSES, CAMP_TYPES, ROLE_SUPERADMIN
from app.raportal.errors import BadRequestError, ConflictError, NotFoundError
from app.raportal.models import User
from app.raportal.modules.camps.models import Camp, CampRegistration
from app.raportal.modules.notifications.service import notify
from app.raportal.modules.users.service import find_by_email
from app.raportal.uploads import SPREADSHEET, discard_upload, store_upload
from app.raportal.utils import iso, parse_date, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


# ---------- Camps ----------

def validate_camp_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    if (payload.get("type") or "").strip() not in CAMP_TYPES:
        errors.append(f"Invalid type. Must be one of: {', '.join(CAMP_TYPES)}")
    for key in ("year", "startDate", "endDate"):
        if not str(payload.get(key) or "").strip():
            errors.append(f"{key} is required.")
    return errors


def create_camp(s: "Session", payload: dict, user: User) -> Camp:
    errors = validate_camp_payload(payload)
    if errors:
        raise BadRequestError(" ".join(errors), details=errors)
    start = parse_date(str(payload.get("startDate")))
    end = parse_date(str(payload.get("endDate")))
    if start and end and end < start:
        raise BadRequestError("endDate must not be before startDate.")
    fee = parse_float(payload.get("fee") or 0, "fee")
    if fee < 0:
        raise BadRequestError("fee must not be negative.")
    camp = Camp(
        title=payload["title"].strip(),
        description=(payload.get("description") or "").strip() or None,
        year=parse_int(payload.get("year"), "year", minimum=2000),
        type=payload["type"].strip(),
        fee=fee,
        start_date=start,
        end_date=end,
        is_active=True,
        created_at=datetime.utcnow(),
        created_by_user_id=user.id,
    )
    s.add(camp)
    s.flush()
    record_event(s, actor=user, action="CAMP_CREATE", target_type="Camp", target_id=camp.id, metadata={"title": camp.title, "year": camp.year})
    return camp


def get_camp(s: "Session", camp_id: int) -> Camp:
    camp = s.get(Camp, camp_id)
    if not camp:
        raise NotFoundError("Camp not found.")
    return camp


def list_camps(s: "Session", *, active_only: bool = False) -> list[Camp]:
    stmt = select(Camp)
    if active_only:
        stmt = stmt.where(Camp.is_active.is_(True))
    return list(s.execute(stmt.order_by(Camp.start_date.desc(), Camp.id.desc())).scalars().all())


# ---------- Registrations ----------

def register_individual(s: "Session", camp_id: int, user: User) -> CampRegistration:
    camp = get_camp(s, camp_id)
    existing = (
        s.query(CampRegistration.id)
        .filter(CampRegistration.user_id == user.id, CampRegistration.camp_id == camp.id)
        .first()
    )
    if existing is not None:
        raise ConflictError("Already registered for this camp.")
    now = datetime.utcnow()
    reg = CampRegistration(
        user_id=user.id,
        camp_id=camp.id,
        registration_type="individual",
        status="pending",
        created_at=now,
        updated_at=now,
    )
    try:
        with s.begin_nested():
            s.add(reg)
    except IntegrityError as e:
        raise ConflictError("Already registered for this camp.") from e
    return reg


def _sheet_emails(data: bytes) -> list[tuple[int, str]]:
    """(row number, first-column text) for every data row; row 1 is the header."""
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise BadRequestError("Invalid Excel file.") from e
    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise BadRequestError("Invalid Excel file.")
        rows: list[tuple[int, str]] = []
        for row_number, row in enumerate(ws.iter_rows(min_row=2, max_col=1, values_only=True), start=2):
            value = row[0] if row else None
            rows.append((row_number, str(value).strip() if value is not None else ""))
        return rows
    finally:
        wb.close()


def bulk_register(s: "Session", camp_id: int, fs: FileStorage | None, user: User, roles: set[str]) -> dict[str, Any]:
    """
    Register users listed by email in an uploaded sheet.

    Rows are processed in order, each in its own savepoint: a failing row is
    reported in `errors` and does not undo rows that already succeeded.
    """
    camp = get_camp(s, camp_id)
    meta = store_upload(fs, SPREADSHEET)
    assert meta is not None and fs is not None
    fs.stream.seek(0)
    try:
        rows = _sheet_emails(fs.read())
    except BadRequestError:
        discard_upload(meta["storageKey"])
        raise

    restrict_association = None if ROLE_SUPERADMIN in roles else user.association_id
    success = 0
    errors: list[dict[str, Any]] = []
    for row_number, email in rows:
        if not email:
            continue
        target = find_by_email(s, email)
        if target is None:
            errors.append({"row": row_number, "error": f"User with email {email} not found"})
            continue
        if restrict_association is not None and target.association_id != restrict_association:
            errors.append({"row": row_number, "error": f"User {email} is not a member of your association"})
            continue
        already = (
            s.query(CampRegistration.id)
            .filter(CampRegistration.user_id == target.id, CampRegistration.camp_id == camp.id)
            .first()
        )
        if already is not None:
            errors.append({"row": row_number, "error": f"User {email} already registered"})
            continue
        now = datetime.utcnow()
        try:
            with s.begin_nested():
                s.add(
                    CampRegistration(
                        user_id=target.id,
                        camp_id=camp.id,
                        registration_type="bulk",
                        status="confirmed",
                        uploaded_by_user_id=user.id,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            errors.append({"row": row_number, "error": f"User {email} already registered"})
            continue
        success += 1

    record_event(
        s,
        actor=user,
        action="CAMP_UPLOAD",
        target_type="Camp",
        target_id=camp.id,
        metadata={"file": meta["originalFilename"], "storageKey": meta["storageKey"], "successCount": success, "errorCount": len(errors)},
    )
    logger.info("Camp bulk upload camp_id=%s success=%s errors=%s", camp.id, success, len(errors))
    return {"successCount": success, "errors": errors}


def registrations_for_camp(s: "Session", camp_id: int, *, association_id: int | None = None) -> list[CampRegistration]:
    get_camp(s, camp_id)
    stmt = select(CampRegistration).where(CampRegistration.camp_id == camp_id)
    if association_id is not None:
        stmt = stmt.join(User, User.id == CampRegistration.user_id).where(User.association_id == association_id)
    return list(s.execute(stmt.order_by(CampRegistration.created_at.asc(), CampRegistration.id.asc())).scalars().all())


def my_registrations(s: "Session", user: User) -> list[CampRegistration]:
    stmt = (
        select(CampRegistration)
        .where(CampRegistration.user_id == user.id)
        .order_by(CampRegistration.created_at.desc(), CampRegistration.id.desc())
    )
    return list(s.execute(stmt).scalars().all())


def override_status(s: "Session", registration_id: int, status: str, user: User) -> CampRegistration:
    status = (status or "").strip().lower()
    if status not in CAMP_REGISTRATION_STATUSES:
        raise BadRequestError(f"Invalid status. Must be one of: {', '.join(CAMP_REGISTRATION_STATUSES)}")
    reg = s.get(CampRegistration, registration_id)
    if not reg:
        raise NotFoundError("Registration not found.")
    previous = reg.status
    reg.status = status
    reg.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="CAMP_REGISTRATION_OVERRIDE",
        target_type="CampRegistration",
        target_id=reg.id,
        metadata={"previousStatus": previous, "newStatus": status, "campId": reg.camp_id, "userId": reg.user_id},
    )
    camp_title = reg.camp.title if reg.camp else "camp"
    notify(
        s,
        user_id=reg.user_id,
        type="camp_status",
        title="Camp registration updated",
        message=f"Your registration for {camp_title} is now {status}.",
        metadata={"registrationId": reg.id, "campId": reg.camp_id, "status": status},
    )
    return reg


# ---------- Serialisation ----------

def camp_to_dict(camp: Camp) -> dict[str, Any]:
    return {
        "id": camp.id,
        "title": camp.title,
        "description": camp.description,
        "year": camp.year,
        "type": camp.type,
        "fee": camp.fee,
        "startDate": iso(camp.start_date),
        "endDate": iso(camp.end_date),
        "isActive": camp.is_active,
    }


def registration_to_dict(reg: CampRegistration) -> dict[str, Any]:
    u = reg.user
    return {
        "id": reg.id,
        "campId": reg.camp_id,
        "camp": {"id": reg.camp.id, "title": reg.camp.title, "year": reg.camp.year, "type": reg.camp.type} if reg.camp else None,
        "userId": reg.user_id,
        "user": (
            {"id": u.id, "firstName": u.first_name, "lastName": u.last_name, "email": u.email, "userCode": u.user_code}
            if u
            else None
        ),
        "paymentId": reg.payment_id,
        "status": reg.status,
        "registrationType": reg.registration_type,
        "uploadedBy": reg.uploaded_by_user_id,
        "createdAt": iso(reg.created_at),
    }
