from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.raportal.audit import audit_log_to_dict
from app.raportal.models import AuditLog, User
from app.raportal.modules.camps.models import CampRegistration
from app.raportal.modules.camps.service import registration_to_dict
from app.raportal.modules.exams.models import Exam, ExamApproval, ExamResult
from app.raportal.modules.exams.service import my_results, result_to_dict
from app.raportal.modules.notifications.service import unread_count
from app.raportal.modules.payments.models import Payment
from app.raportal.modules.payments.service import payment_stats, payment_to_dict, payments_query

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Select


def _count(s: "Session", stmt) -> int:
    return s.scalar(stmt) or 0


def superadmin_stats(s: "Session") -> dict[str, Any]:
    users_by_status = dict(s.execute(select(User.status, func.count(User.id)).group_by(User.status)).all())
    return {
        "totalUsers": sum(users_by_status.values()),
        "usersByStatus": users_by_status,
        "payments": payment_stats(s),
        "activeExams": _count(s, select(func.count(Exam.id)).where(Exam.is_active.is_(True))),
        "publishedResults": _count(s, select(func.count(ExamResult.id)).where(ExamResult.is_published.is_(True))),
        "campRegistrations": _count(s, select(func.count(CampRegistration.id))),
    }


def audit_logs_query(
    *,
    action: str | None = None,
    target_type: str | None = None,
    actor_id: int | None = None,
) -> "Select":
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if target_type:
        stmt = stmt.where(AuditLog.target_type == target_type)
    if actor_id is not None:
        stmt = stmt.where(AuditLog.actor_id == actor_id)
    return stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


def target_audit_logs(s: "Session", target_type: str, target_id: str) -> list[dict[str, Any]]:
    stmt = (
        select(AuditLog)
        .where(AuditLog.target_type == target_type, AuditLog.target_id == str(target_id))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    )
    return [audit_log_to_dict(ev) for ev in s.execute(stmt).scalars().all()]


def president_stats(s: "Session", association_id: int) -> dict[str, Any]:
    members = select(User.id).where(User.association_id == association_id)
    return {
        "associationId": association_id,
        "totalUsers": _count(s, select(func.count(User.id)).where(User.association_id == association_id)),
        "payments": payment_stats(s, association_id=association_id),
        "campRegistrations": _count(
            s, select(func.count(CampRegistration.id)).where(CampRegistration.user_id.in_(members))
        ),
        "passedResults": _count(
            s,
            select(func.count(ExamResult.id)).where(
                ExamResult.user_id.in_(members), ExamResult.passed.is_(True), ExamResult.is_published.is_(True)
            ),
        ),
        "pendingExamApprovals": _count(
            s,
            select(func.count(ExamApproval.id)).where(
                ExamApproval.association_id == association_id, ExamApproval.status == "pending"
            ),
        ),
    }


def members_query(association_id: int, *, search: str | None = None) -> "Select":
    stmt = select(User).where(User.association_id == association_id)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            User.first_name.ilike(like) | User.last_name.ilike(like) | User.email.ilike(like) | User.user_code.ilike(like)
        )
    return stmt.order_by(User.last_name.asc(), User.first_name.asc(), User.id.asc())


def ambassador_summary(s: "Session", user: User) -> dict[str, Any]:
    payments = s.execute(payments_query(user_id=user.id).limit(5)).scalars().all()
    pending = _count(
        s,
        select(func.count(Payment.id)).where(
            Payment.user_id == user.id, Payment.status == "pending", Payment.is_deleted.is_(False)
        ),
    )
    registrations = s.execute(
        select(CampRegistration)
        .where(CampRegistration.user_id == user.id)
        .order_by(CampRegistration.created_at.desc(), CampRegistration.id.desc())
    ).scalars().all()
    return {
        "rank": user.rank,
        "userCode": user.user_code,
        "recentPayments": [payment_to_dict(p) for p in payments],
        "pendingPayments": pending,
        "results": [result_to_dict(r) for r in my_results(s, user)],
        "campRegistrations": [registration_to_dict(r) for r in registrations],
        "unreadNotifications": unread_count(s, user.id),
    }
