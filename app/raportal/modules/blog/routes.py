from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.raportal.constants import ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.modules.blog.service import (
    create_post,
    delete_post,
    get_post,
    post_to_dict,
    posts_query,
    update_post,
)
from app.raportal.rbac import current_roles, current_user, require_roles
from app.raportal.utils import json_payload, page_params, paginate

bp = Blueprint("blog", __name__)


def _is_admin() -> bool:
    user = getattr(g, "current_user", None)
    return bool(user and user.is_active and ROLE_SUPERADMIN in current_roles())


@bp.get("/blog")
def blog_list():
    s = db_session()
    page, limit = page_params()
    # drafts are only listed for superadmins
    status = (request.args.get("status") or "").strip().lower() or None
    if not _is_admin():
        status = "published"
    stmt = posts_query(status=status, search=(request.args.get("search") or "").strip() or None)
    return jsonify(paginate(s, stmt, page=page, limit=limit, serialize=lambda p: post_to_dict(p, include_content=False)))


@bp.get("/blog/<string:id_or_slug>")
def blog_detail(id_or_slug: str):
    s = db_session()
    return jsonify(post_to_dict(get_post(s, id_or_slug, published_only=not _is_admin())))


@bp.post("/blog")
@require_roles(ROLE_SUPERADMIN)
def blog_create():
    s = db_session()
    post = create_post(s, json_payload(), current_user(), request.files.get("coverImage"))
    s.commit()
    return jsonify(post_to_dict(post)), 201


@bp.patch("/blog/<int:post_id>")
@require_roles(ROLE_SUPERADMIN)
def blog_update(post_id: int):
    s = db_session()
    post = update_post(s, get_post(s, str(post_id)), json_payload(), current_user(), request.files.get("coverImage"))
    s.commit()
    return jsonify(post_to_dict(post))


@bp.delete("/blog/<int:post_id>")
@require_roles(ROLE_SUPERADMIN)
def blog_delete(post_id: int):
    s = db_session()
    delete_post(s, get_post(s, str(post_id)), current_user())
    s.commit()
    return jsonify({"message": "Blog post deleted."})
