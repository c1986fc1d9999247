from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_, select
from werkzeug.datastructures import FileStorage

from app.raportal.audit import record_event
from app.raportal.errors import BadRequestError, NotFoundError
from app.raportal.models import User
from app.raportal.modules.gallery.models import GalleryItem
from app.raportal.sanitize import strip_tags
from app.raportal.uploads import GALLERY_IMAGE, discard_upload, public_url, store_upload
from app.raportal.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Select


def normalize_tag(tag: str | None) -> str:
    return re.sub(r"\s+", "-", (tag or "").strip().lower())


def create_item(s: "Session", payload: dict, image: FileStorage | None, user: User) -> GalleryItem:
    title = strip_tags(payload.get("title"))
    tag = normalize_tag(payload.get("eventTag"))
    if not title:
        raise BadRequestError("Title is required.")
    if not tag:
        raise BadRequestError("eventTag is required.")
    meta = store_upload(image, GALLERY_IMAGE)
    assert meta is not None
    now = datetime.utcnow()
    item = GalleryItem(
        title=title,
        description=strip_tags(payload.get("description")) or None,
        event_tag=tag,
        image_key=meta["storageKey"],
        file_metadata=meta,
        uploaded_by_user_id=user.id,
        upload_date=now,
        updated_at=now,
    )
    s.add(item)
    s.flush()
    record_event(s, actor=user, action="GALLERY_CREATE", target_type="GalleryItem", target_id=item.id, metadata={"title": item.title, "eventTag": tag})
    return item


def get_item(s: "Session", item_id: int) -> GalleryItem:
    item = s.get(GalleryItem, item_id)
    if not item:
        raise NotFoundError("Gallery item not found.")
    return item


def items_query(*, tag: str | None = None, search: str | None = None) -> "Select":
    stmt = select(GalleryItem)
    if tag:
        stmt = stmt.where(GalleryItem.event_tag == normalize_tag(tag))
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(GalleryItem.title.ilike(like), GalleryItem.description.ilike(like)))
    return stmt.order_by(GalleryItem.upload_date.desc(), GalleryItem.id.desc())


def list_tags(s: "Session") -> list[str]:
    return list(s.execute(select(GalleryItem.event_tag).distinct().order_by(GalleryItem.event_tag)).scalars().all())


def update_item(s: "Session", item: GalleryItem, payload: dict, image: FileStorage | None, user: User) -> GalleryItem:
    if "title" in payload:
        title = strip_tags(payload.get("title"))
        if not title:
            raise BadRequestError("Title must not be empty.")
        item.title = title
    if "description" in payload:
        item.description = strip_tags(payload.get("description")) or None
    if "eventTag" in payload:
        tag = normalize_tag(payload.get("eventTag"))
        if not tag:
            raise BadRequestError("eventTag must not be empty.")
        item.event_tag = tag
    meta = store_upload(image, GALLERY_IMAGE, required=False)
    if meta:
        old_key = item.image_key
        item.image_key = meta["storageKey"]
        item.file_metadata = meta
        discard_upload(old_key)
    item.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="GALLERY_UPDATE", target_type="GalleryItem", target_id=item.id, metadata={"title": item.title})
    return item


def delete_item(s: "Session", item: GalleryItem, user: User) -> None:
    record_event(s, actor=user, action="GALLERY_DELETE", target_type="GalleryItem", target_id=item.id, metadata={"title": item.title})
    key = item.image_key
    s.delete(item)
    s.flush()
    discard_upload(key)


def item_to_dict(item: GalleryItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "title": item.title,
        "description": item.description,
        "eventTag": item.event_tag,
        "imageUrl": public_url(item.image_key),
        "uploadDate": iso(item.upload_date),
    }
