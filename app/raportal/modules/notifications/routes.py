from __future__ import annotations

from flask import Blueprint, jsonify

from app.raportal.db import db_session
from app.raportal.modules.notifications.service import (
    mark_all_read,
    mark_read,
    notification_to_dict,
    notifications_query,
    unread_count,
)
from app.raportal.rbac import current_user, require_auth
from app.raportal.utils import page_params, paginate

bp = Blueprint("notifications", __name__)


@bp.get("/notifications")
@require_auth
def notifications_list():
    s = db_session()
    page, limit = page_params()
    return jsonify(paginate(s, notifications_query(current_user().id), page=page, limit=limit, serialize=notification_to_dict))


@bp.get("/notifications/unread-count")
@require_auth
def notifications_unread_count():
    s = db_session()
    return jsonify({"count": unread_count(s, current_user().id)})


@bp.patch("/notifications/<int:notification_id>/read")
@require_auth
def notification_mark_read(notification_id: int):
    s = db_session()
    n = mark_read(s, notification_id, current_user().id)
    s.commit()
    return jsonify(notification_to_dict(n))


@bp.patch("/notifications/read-all")
@require_auth
def notifications_mark_all_read():
    s = db_session()
    updated = mark_all_read(s, current_user().id)
    s.commit()
    return jsonify({"updated": updated})
