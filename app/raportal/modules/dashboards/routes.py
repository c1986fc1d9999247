from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.raportal.audit import audit_log_to_dict
from app.raportal.constants import ROLE_AMBASSADOR, ROLE_PRESIDENT, ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.errors import ForbiddenError
from app.raportal.modules.dashboards.service import (
    ambassador_summary,
    audit_logs_query,
    members_query,
    president_stats,
    superadmin_stats,
    target_audit_logs,
)
from app.raportal.modules.users.service import user_to_dict
from app.raportal.rbac import current_user, require_roles
from app.raportal.utils import page_params, paginate, parse_int

bp = Blueprint("dashboards", __name__)


def _president_association_id() -> int:
    u = current_user()
    if not u.association_id:
        raise ForbiddenError("You are not attached to an association.")
    return u.association_id


# ---------- Superadmin ----------
@bp.get("/dashboard/superadmin/stats")
@require_roles(ROLE_SUPERADMIN)
def superadmin_dashboard_stats():
    return jsonify(superadmin_stats(db_session()))


@bp.get("/dashboard/superadmin/audit-logs")
@require_roles(ROLE_SUPERADMIN)
def superadmin_audit_logs():
    s = db_session()
    page, limit = page_params()
    stmt = audit_logs_query(
        action=(request.args.get("action") or "").strip() or None,
        target_type=(request.args.get("targetType") or "").strip() or None,
        actor_id=parse_int(request.args.get("actorId"), "actorId"),
    )
    return jsonify(paginate(s, stmt, page=page, limit=limit, serialize=audit_log_to_dict))


@bp.get("/dashboard/superadmin/audit-logs/<string:target_type>/<string:target_id>")
@require_roles(ROLE_SUPERADMIN)
def superadmin_target_audit_logs(target_type: str, target_id: str):
    return jsonify(target_audit_logs(db_session(), target_type, target_id))


# ---------- President ----------
@bp.get("/dashboard/president/stats")
@require_roles(ROLE_PRESIDENT)
def president_dashboard_stats():
    return jsonify(president_stats(db_session(), _president_association_id()))


@bp.get("/dashboard/president/users")
@require_roles(ROLE_PRESIDENT)
def president_dashboard_users():
    s = db_session()
    page, limit = page_params()
    stmt = members_query(_president_association_id(), search=(request.args.get("q") or "").strip() or None)
    return jsonify(paginate(s, stmt, page=page, limit=limit, serialize=user_to_dict))


# ---------- Ambassador ----------
@bp.get("/dashboard/ambassador/summary")
@require_roles(ROLE_AMBASSADOR)
def ambassador_dashboard_summary():
    return jsonify(ambassador_summary(db_session(), current_user()))
