from __future__ import annotations

from flask import Blueprint, jsonify

from app.raportal.constants import OFFICIAL_RANKS, ROLE_PRESIDENT, ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.errors import BadRequestError, NotFoundError
from app.raportal.models import User
from app.raportal.modules.associations.service import (
    association_to_dict,
    get_association,
    list_associations,
    update_president,
)
from app.raportal.rbac import current_user, require_roles
from app.raportal.utils import json_payload, parse_int

bp = Blueprint("associations", __name__)


@bp.get("/associations")
def associations_list():
    s = db_session()
    return jsonify([association_to_dict(s, a) for a in list_associations(s)])


@bp.get("/associations/<int:association_id>")
def association_detail(association_id: int):
    s = db_session()
    return jsonify(association_to_dict(s, get_association(s, association_id)))


@bp.put("/associations/<int:association_id>/president")
@require_roles(ROLE_SUPERADMIN)
def association_set_president(association_id: int):
    s = db_session()
    u = current_user()
    payload = json_payload()
    user_id = parse_int(payload.get("userId"), "userId")
    if user_id is None:
        raise BadRequestError("userId is required.")
    assoc = get_association(s, association_id)
    president = s.get(User, user_id)
    if not president:
        raise NotFoundError("User not found.")
    if ROLE_PRESIDENT not in president.role_keys:
        raise BadRequestError("User does not hold the president role.")
    update_president(s, assoc, president, actor=u)
    s.commit()
    return jsonify(association_to_dict(s, assoc))


@bp.get("/ranks")
def ranks_list():
    return jsonify(list(OFFICIAL_RANKS))
