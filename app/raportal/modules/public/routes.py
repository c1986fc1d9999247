from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.raportal.constants import ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.modules.public.service import (
    active_ads,
    ad_to_dict,
    create_ad,
    create_media,
    create_section,
    delete_ad,
    delete_media,
    delete_section,
    get_ad,
    get_media,
    get_section,
    list_ads,
    list_media,
    list_sections,
    media_to_dict,
    section_to_dict,
    update_ad,
    update_media,
    update_section,
)
from app.raportal.rbac import current_user, require_roles
from app.raportal.utils import json_payload

bp = Blueprint("public", __name__)


# ---------- Homepage ----------
@bp.get("/public/homepage")
def homepage_sections():
    return jsonify([section_to_dict(x) for x in list_sections(db_session(), active_only=True)])


@bp.get("/public/homepage/admin")
@require_roles(ROLE_SUPERADMIN)
def homepage_sections_admin():
    return jsonify([section_to_dict(x) for x in list_sections(db_session(), active_only=False)])


@bp.post("/public/homepage")
@require_roles(ROLE_SUPERADMIN)
def homepage_section_create():
    s = db_session()
    section = create_section(s, json_payload(), current_user())
    s.commit()
    return jsonify(section_to_dict(section)), 201


@bp.patch("/public/homepage/<int:section_id>")
@require_roles(ROLE_SUPERADMIN)
def homepage_section_update(section_id: int):
    s = db_session()
    section = update_section(s, get_section(s, section_id), json_payload(), current_user())
    s.commit()
    return jsonify(section_to_dict(section))


@bp.delete("/public/homepage/<int:section_id>")
@require_roles(ROLE_SUPERADMIN)
def homepage_section_delete(section_id: int):
    s = db_session()
    delete_section(s, get_section(s, section_id), current_user())
    s.commit()
    return jsonify({"message": "Section deleted."})


# ---------- Ads ----------
@bp.get("/ads/active")
def ads_active():
    placement = (request.args.get("placement") or "").strip().lower() or None
    return jsonify([ad_to_dict(a) for a in active_ads(db_session(), placement=placement)])


@bp.get("/ads")
@require_roles(ROLE_SUPERADMIN)
def ads_list():
    return jsonify([ad_to_dict(a) for a in list_ads(db_session())])


@bp.post("/ads")
@require_roles(ROLE_SUPERADMIN)
def ads_create():
    s = db_session()
    ad = create_ad(s, json_payload(), request.files.get("image"), current_user())
    s.commit()
    return jsonify(ad_to_dict(ad)), 201


@bp.patch("/ads/<int:ad_id>")
@require_roles(ROLE_SUPERADMIN)
def ads_update(ad_id: int):
    s = db_session()
    ad = update_ad(s, get_ad(s, ad_id), json_payload(), request.files.get("image"), current_user())
    s.commit()
    return jsonify(ad_to_dict(ad))


@bp.delete("/ads/<int:ad_id>")
@require_roles(ROLE_SUPERADMIN)
def ads_delete(ad_id: int):
    s = db_session()
    delete_ad(s, get_ad(s, ad_id), current_user())
    s.commit()
    return jsonify({"message": "Ad deleted."})


# ---------- Media ----------
@bp.get("/media")
def media_public():
    mtype = (request.args.get("type") or "").strip().lower() or None
    return jsonify([media_to_dict(m) for m in list_media(db_session(), active_only=True, mtype=mtype)])


@bp.get("/media/all")
@require_roles(ROLE_SUPERADMIN)
def media_all():
    return jsonify([media_to_dict(m) for m in list_media(db_session(), active_only=False)])


@bp.post("/media")
@require_roles(ROLE_SUPERADMIN)
def media_create():
    s = db_session()
    item = create_media(s, json_payload(), current_user())
    s.commit()
    return jsonify(media_to_dict(item)), 201


@bp.patch("/media/<int:media_id>")
@require_roles(ROLE_SUPERADMIN)
def media_update(media_id: int):
    s = db_session()
    item = update_media(s, get_media(s, media_id), json_payload(), current_user())
    s.commit()
    return jsonify(media_to_dict(item))


@bp.delete("/media/<int:media_id>")
@require_roles(ROLE_SUPERADMIN)
def media_delete(media_id: int):
    s = db_session()
    delete_media(s, get_media(s, media_id), current_user())
    s.commit()
    return jsonify({"message": "Media deleted."})
