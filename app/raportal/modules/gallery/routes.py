from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.raportal.constants import ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.modules.gallery.service import (
    create_item,
    delete_item,
    get_item,
    item_to_dict,
    items_query,
    list_tags,
    update_item,
)
from app.raportal.rbac import current_user, require_roles
from app.raportal.utils import json_payload, page_params, paginate

bp = Blueprint("gallery", __name__)


@bp.get("/gallery")
def gallery_list():
    s = db_session()
    page, limit = page_params()
    stmt = items_query(
        tag=(request.args.get("eventTag") or "").strip() or None,
        search=(request.args.get("search") or "").strip() or None,
    )
    return jsonify(paginate(s, stmt, page=page, limit=limit, serialize=item_to_dict))


@bp.get("/gallery/tags")
def gallery_tags():
    return jsonify(list_tags(db_session()))


@bp.get("/gallery/<int:item_id>")
def gallery_detail(item_id: int):
    return jsonify(item_to_dict(get_item(db_session(), item_id)))


@bp.post("/gallery")
@require_roles(ROLE_SUPERADMIN)
def gallery_create():
    s = db_session()
    item = create_item(s, json_payload(), request.files.get("image"), current_user())
    s.commit()
    return jsonify(item_to_dict(item)), 201


@bp.patch("/gallery/<int:item_id>")
@require_roles(ROLE_SUPERADMIN)
def gallery_update(item_id: int):
    s = db_session()
    item = update_item(s, get_item(s, item_id), json_payload(), request.files.get("image"), current_user())
    s.commit()
    return jsonify(item_to_dict(item))


@bp.delete("/gallery/<int:item_id>")
@require_roles(ROLE_SUPERADMIN)
def gallery_delete(item_id: int):
    s = db_session()
    delete_item(s, get_item(s, item_id), current_user())
    s.commit()
    return jsonify({"message": "Gallery item deleted."})
