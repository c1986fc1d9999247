from __future__ import annotations

import io
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, time
from typing import TYPE_CHECKING, Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from sqlalchemy import select

from app.raportal.audit import record_event
from app.raportal.errors import BadRequestError
from app.raportal.models import User
from app.raportal.modules.associations.models import Association
from app.raportal.modules.camps.models import Camp, CampRegistration
from app.raportal.modules.exams.models import Exam, ExamResult
from app.raportal.modules.payments.models import Payment
from app.raportal.utils import parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from werkzeug.datastructures import MultiDict

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
RESULT_STATUSES = ("passed", "failed")


@dataclass(frozen=True)
class ExportFilters:
    start: datetime | None = None
    end: datetime | None = None
    status: str | None = None
    association_id: int | None = None
    camp_id: int | None = None
    exam_id: int | None = None

    def to_metadata(self) -> dict[str, Any]:
        return {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in asdict(self).items() if v is not None}


def filters_from_args(args: "MultiDict[str, str]", *, forced_association_id: int | None = None) -> ExportFilters:
    """
    Build filters from query args. `forced_association_id` overrides whatever
    association the caller asked for (presidents only see their own).
    """
    start = parse_date(args.get("startDate"))
    end = parse_date(args.get("endDate"))
    if start and end and end < start:
        raise BadRequestError("endDate must not be before startDate.")
    association_id = parse_int(args.get("associationId"), "associationId")
    if forced_association_id is not None:
        association_id = forced_association_id
    return ExportFilters(
        start=datetime.combine(start, time.min) if start else None,
        end=datetime.combine(end, time.max) if end else None,
        status=(args.get("status") or "").strip().lower() or None,
        association_id=association_id,
        camp_id=parse_int(args.get("campId"), "campId"),
        exam_id=parse_int(args.get("examId"), "examId"),
    )


def _date_window(stmt, column, f: ExportFilters):
    if f.start is not None:
        stmt = stmt.where(column >= f.start)
    if f.end is not None:
        stmt = stmt.where(column <= f.end)
    return stmt


def build_workbook(sheet_name: str, header: list[str], rows: list[list[Any]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name[:31]
    ws.append(header)

    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center")
    for col, label in enumerate(header, start=1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.alignment = center
        ws.column_dimensions[get_column_letter(col)].width = max(len(label) + 10, 16)
    ws.freeze_panes = "A2"

    for row in rows:
        ws.append(row)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _audit_export(s: "Session", actor: User, export_type: str, f: ExportFilters, row_count: int) -> None:
    record_event(
        s,
        actor=actor,
        action="DATA_EXPORT",
        target_type=export_type,
        target_id="system",
        metadata={"filters": f.to_metadata(), "rows": row_count},
    )
    logger.info("Data export type=%s rows=%s actor_id=%s", export_type, row_count, actor.id)


def export_users(s: "Session", f: ExportFilters, actor: User) -> bytes:
    stmt = select(User, Association.name).outerjoin(Association, Association.id == User.association_id)
    stmt = _date_window(stmt, User.created_at, f)
    if f.status:
        stmt = stmt.where(User.status == f.status)
    if f.association_id is not None:
        stmt = stmt.where(User.association_id == f.association_id)
    rows = [
        [u.first_name, u.last_name, u.email, u.phone, u.user_code, u.rank, assoc_name, u.status, u.created_at]
        for u, assoc_name in s.execute(stmt.order_by(User.created_at.asc(), User.id.asc())).all()
    ]
    _audit_export(s, actor, "Users", f, len(rows))
    return build_workbook(
        "Users",
        ["First Name", "Last Name", "Email", "Phone", "Unique ID", "Rank", "Association", "Status", "Joined Date"],
        rows,
    )


def export_payments(s: "Session", f: ExportFilters, actor: User) -> bytes:
    stmt = select(Payment, User).join(User, User.id == Payment.user_id).where(Payment.is_deleted.is_(False))
    stmt = _date_window(stmt, Payment.created_at, f)
    if f.status:
        stmt = stmt.where(Payment.status == f.status)
    if f.association_id is not None:
        stmt = stmt.where(User.association_id == f.association_id)
    rows = [
        [u.full_name, u.user_code, p.type, p.amount, p.status, p.reference_note, p.created_at]
        for p, u in s.execute(stmt.order_by(Payment.created_at.asc(), Payment.id.asc())).all()
    ]
    _audit_export(s, actor, "Payments", f, len(rows))
    return build_workbook("Payments", ["User", "Unique ID", "Type", "Amount", "Status", "Reference", "Date"], rows)


def export_exam_results(s: "Session", f: ExportFilters, actor: User) -> bytes:
    if f.status and f.status not in RESULT_STATUSES:
        raise BadRequestError(f"Invalid status. Must be one of: {', '.join(RESULT_STATUSES)}")
    stmt = (
        select(ExamResult, User, Exam.title)
        .join(User, User.id == ExamResult.user_id)
        .join(Exam, Exam.id == ExamResult.exam_id)
    )
    stmt = _date_window(stmt, ExamResult.created_at, f)
    if f.status:
        stmt = stmt.where(ExamResult.passed.is_(f.status == "passed"))
    if f.association_id is not None:
        stmt = stmt.where(User.association_id == f.association_id)
    if f.exam_id is not None:
        stmt = stmt.where(ExamResult.exam_id == f.exam_id)
    rows = [
        [u.full_name, u.user_code, title, r.score, "PASSED" if r.passed else "FAILED", "Yes" if r.is_published else "No", r.created_at]
        for r, u, title in s.execute(stmt.order_by(ExamResult.created_at.asc(), ExamResult.id.asc())).all()
    ]
    _audit_export(s, actor, "ExamResults", f, len(rows))
    return build_workbook("ExamResults", ["User", "ID", "Exam", "Score", "Result", "Published", "Date"], rows)


def export_camp_participants(s: "Session", f: ExportFilters, actor: User) -> bytes:
    stmt = (
        select(CampRegistration, User, Camp.title)
        .join(User, User.id == CampRegistration.user_id)
        .join(Camp, Camp.id == CampRegistration.camp_id)
    )
    stmt = _date_window(stmt, CampRegistration.created_at, f)
    if f.status:
        stmt = stmt.where(CampRegistration.status == f.status)
    if f.association_id is not None:
        stmt = stmt.where(User.association_id == f.association_id)
    if f.camp_id is not None:
        stmt = stmt.where(CampRegistration.camp_id == f.camp_id)
    rows = [
        [u.full_name, u.user_code, title, reg.registration_type, reg.status, reg.created_at]
        for reg, u, title in s.execute(stmt.order_by(CampRegistration.created_at.asc(), CampRegistration.id.asc())).all()
    ]
    _audit_export(s, actor, "CampParticipants", f, len(rows))
    return build_workbook("CampParticipants", ["Participant", "ID", "Camp", "Registration", "Status", "Date"], rows)
