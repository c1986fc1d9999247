from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.raportal.constants import ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.errors import BadRequestError
from app.raportal.modules.users.service import (
    admin_reset_password,
    change_rank,
    change_roles,
    change_status,
    get_user,
    update_profile,
    user_to_dict,
    users_query,
)
from app.raportal.rbac import current_user, require_auth, require_roles
from app.raportal.utils import json_payload, page_params, paginate, parse_int

bp = Blueprint("users", __name__)


@bp.get("/users/me")
@require_auth
def me_get():
    return jsonify(user_to_dict(current_user()))


@bp.patch("/users/me")
@require_auth
def me_patch():
    s = db_session()
    u = current_user()
    update_profile(s, u, json_payload())
    s.commit()
    return jsonify(user_to_dict(u))


@bp.get("/users")
@require_roles(ROLE_SUPERADMIN)
def users_list():
    s = db_session()
    page, limit = page_params()
    stmt = users_query(
        role=(request.args.get("role") or "").strip() or None,
        status=(request.args.get("status") or "").strip() or None,
        association_id=parse_int(request.args.get("associationId"), "associationId"),
        search=(request.args.get("q") or "").strip() or None,
    )
    return jsonify(paginate(s, stmt, page=page, limit=limit, serialize=user_to_dict))


@bp.get("/users/<int:user_id>")
@require_roles(ROLE_SUPERADMIN)
def user_detail(user_id: int):
    s = db_session()
    return jsonify(user_to_dict(get_user(s, user_id)))


@bp.put("/users/<int:user_id>/roles")
@require_roles(ROLE_SUPERADMIN)
def user_roles_put(user_id: int):
    s = db_session()
    payload = json_payload()
    roles = payload.get("roles")
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        raise BadRequestError("roles must be a list of role keys.")
    user = change_roles(s, get_user(s, user_id), roles, current_user())
    s.commit()
    return jsonify(user_to_dict(user))


@bp.put("/users/<int:user_id>/status")
@require_roles(ROLE_SUPERADMIN)
def user_status_put(user_id: int):
    s = db_session()
    payload = json_payload()
    user = change_status(s, get_user(s, user_id), payload.get("status") or "", current_user())
    s.commit()
    return jsonify(user_to_dict(user))


@bp.put("/users/<int:user_id>/rank")
@require_roles(ROLE_SUPERADMIN)
def user_rank_put(user_id: int):
    s = db_session()
    payload = json_payload()
    user = change_rank(s, get_user(s, user_id), (payload.get("rank") or "").strip(), current_user())
    s.commit()
    return jsonify(user_to_dict(user))


@bp.post("/users/<int:user_id>/reset-password")
@require_roles(ROLE_SUPERADMIN)
def user_reset_password(user_id: int):
    s = db_session()
    payload = json_payload()
    admin_reset_password(s, get_user(s, user_id), payload.get("newPassword") or "", current_user())
    s.commit()
    return jsonify({"message": "Password reset successful."})
