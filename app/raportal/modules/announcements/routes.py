from __future__ import annotations

from flask import Blueprint, jsonify

from app.raportal.constants import ROLE_PRESIDENT, ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.modules.announcements.service import (
    announcement_to_dict,
    create_announcement,
    delete_announcement,
    feed_for_user,
    get_announcement,
    list_all,
    mark_read,
    update_announcement,
)
from app.raportal.rbac import current_roles, current_user, require_auth, require_roles
from app.raportal.utils import iso, json_payload

bp = Blueprint("announcements", __name__)


@bp.get("/announcements/my")
@require_auth
def announcements_my():
    s = db_session()
    return jsonify([announcement_to_dict(a) for a in feed_for_user(s, current_user(), current_roles())])


@bp.post("/announcements/<int:announcement_id>/read")
@require_auth
def announcements_mark_read(announcement_id: int):
    s = db_session()
    read = mark_read(s, announcement_id, current_user())
    s.commit()
    return jsonify({"announcementId": read.announcement_id, "readAt": iso(read.read_at)})


@bp.post("/announcements")
@require_roles(ROLE_SUPERADMIN, ROLE_PRESIDENT)
def announcements_create():
    s = db_session()
    a = create_announcement(s, json_payload(), current_user(), current_roles())
    s.commit()
    return jsonify(announcement_to_dict(a)), 201


@bp.get("/announcements/admin/all")
@require_roles(ROLE_SUPERADMIN)
def announcements_admin_list():
    return jsonify([announcement_to_dict(a) for a in list_all(db_session())])


@bp.patch("/announcements/<int:announcement_id>")
@require_roles(ROLE_SUPERADMIN)
def announcements_update(announcement_id: int):
    s = db_session()
    a = update_announcement(s, get_announcement(s, announcement_id), json_payload(), current_user())
    s.commit()
    return jsonify(announcement_to_dict(a))


@bp.delete("/announcements/<int:announcement_id>")
@require_roles(ROLE_SUPERADMIN)
def announcements_delete(announcement_id: int):
    s = db_session()
    delete_announcement(s, get_announcement(s, announcement_id), current_user())
    s.commit()
    return jsonify({"message": "Announcement deleted."})
