from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.raportal.constants import ROLE_AMBASSADOR, ROLE_PRESIDENT, ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.modules.camps.service import (
    bulk_register,
    camp_to_dict,
    create_camp,
    get_camp,
    list_camps,
    my_registrations,
    override_status,
    register_individual,
    registration_to_dict,
    registrations_for_camp,
)
from app.raportal.rbac import current_roles, current_user, require_auth, require_roles
from app.raportal.utils import json_payload

bp = Blueprint("camps", __name__)


# ---------- Camps ----------
@bp.post("/camps")
@require_roles(ROLE_SUPERADMIN)
def camps_create():
    s = db_session()
    camp = create_camp(s, json_payload(), current_user())
    s.commit()
    return jsonify(camp_to_dict(camp)), 201


@bp.get("/camps")
@require_auth
def camps_list():
    s = db_session()
    active_only = request.args.get("active") == "1"
    return jsonify([camp_to_dict(c) for c in list_camps(s, active_only=active_only)])


@bp.get("/camps/<int:camp_id>")
@require_auth
def camps_detail(camp_id: int):
    s = db_session()
    return jsonify(camp_to_dict(get_camp(s, camp_id)))


# ---------- Registrations ----------
@bp.post("/camps/<int:camp_id>/register")
@require_roles(ROLE_AMBASSADOR)
def camps_register(camp_id: int):
    s = db_session()
    reg = register_individual(s, camp_id, current_user())
    s.commit()
    return jsonify(registration_to_dict(reg)), 201


@bp.post("/camps/<int:camp_id>/bulk-upload")
@require_roles(ROLE_PRESIDENT, ROLE_SUPERADMIN)
def camps_bulk_upload(camp_id: int):
    s = db_session()
    result = bulk_register(s, camp_id, request.files.get("file"), current_user(), current_roles())
    s.commit()
    return jsonify(result)


@bp.get("/camps/<int:camp_id>/registrations")
@require_roles(ROLE_PRESIDENT, ROLE_SUPERADMIN)
def camps_registrations(camp_id: int):
    s = db_session()
    u = current_user()
    association_id = None if ROLE_SUPERADMIN in current_roles() else (u.association_id or -1)
    regs = registrations_for_camp(s, camp_id, association_id=association_id)
    return jsonify([registration_to_dict(r) for r in regs])


@bp.get("/camps/my-registrations")
@require_auth
def camps_my_registrations():
    s = db_session()
    return jsonify([registration_to_dict(r) for r in my_registrations(s, current_user())])


@bp.patch("/camps/registrations/<int:registration_id>/status")
@require_roles(ROLE_SUPERADMIN)
def camps_registration_status(registration_id: int):
    s = db_session()
    payload = json_payload()
    reg = override_status(s, registration_id, payload.get("status") or "", current_user())
    s.commit()
    return jsonify(registration_to_dict(reg))
