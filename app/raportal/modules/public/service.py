from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from werkzeug.datastructures import FileStorage

from app.raportal.audit import record_event
from app.raportal.constants import AD_PLACEMENTS, MEDIA_TYPES
from app.raportal.errors import BadRequestError, ConflictError, NotFoundError
from app.raportal.models import User
from app.raportal.modules.public.models import CorporateAd, HomepageSection, MediaItem
from app.raportal.sanitize import sanitize_html, strip_tags
from app.raportal.uploads import AD_IMAGE, discard_upload, public_url, store_upload
from app.raportal.utils import iso, parse_bool, parse_datetime, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def _http_url(raw: Any, field: str, *, required: bool = True) -> str | None:
    value = (raw or "").strip() if isinstance(raw, str) else ""
    if not value:
        if required:
            raise BadRequestError(f"{field} is required.")
        return None
    if not value.lower().startswith(("http://", "https://")):
        raise BadRequestError(f"{field} must be an http(s) URL.")
    return value


# ---------- Homepage sections ----------

def create_section(s: "Session", payload: dict, user: User) -> HomepageSection:
    key = (payload.get("key") or "").strip().lower()
    title = strip_tags(payload.get("title"))
    content = sanitize_html(payload.get("content"))
    if not key or not title or not content:
        raise BadRequestError("key, title and content are required.")
    if s.execute(select(HomepageSection.id).where(HomepageSection.key == key)).first() is not None:
        raise ConflictError(f"Section with key {key} already exists.")
    now = datetime.utcnow()
    section = HomepageSection(
        key=key,
        title=title,
        content=content,
        position=parse_int(payload.get("position"), "position", default=0),
        is_active=parse_bool(payload.get("isActive"), default=True),
        created_at=now,
        updated_at=now,
    )
    s.add(section)
    s.flush()
    record_event(s, actor=user, action="HOMEPAGE_SECTION_CREATE", target_type="HomepageSection", target_id=section.id, metadata={"key": key})
    return section


def get_section(s: "Session", section_id: int) -> HomepageSection:
    section = s.get(HomepageSection, section_id)
    if not section:
        raise NotFoundError("Section not found.")
    return section


def list_sections(s: "Session", *, active_only: bool) -> list[HomepageSection]:
    stmt = select(HomepageSection)
    if active_only:
        stmt = stmt.where(HomepageSection.is_active.is_(True))
    return list(s.execute(stmt.order_by(HomepageSection.position.asc(), HomepageSection.id.asc())).scalars().all())


def update_section(s: "Session", section: HomepageSection, payload: dict, user: User) -> HomepageSection:
    if "title" in payload:
        title = strip_tags(payload.get("title"))
        if not title:
            raise BadRequestError("Title must not be empty.")
        section.title = title
    if "content" in payload:
        content = sanitize_html(payload.get("content"))
        if not content:
            raise BadRequestError("Content must not be empty.")
        section.content = content
    if "position" in payload:
        section.position = parse_int(payload.get("position"), "position", default=0)
    if "isActive" in payload:
        section.is_active = parse_bool(payload.get("isActive"))
    section.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="HOMEPAGE_SECTION_UPDATE", target_type="HomepageSection", target_id=section.id, metadata={"key": section.key})
    return section


def delete_section(s: "Session", section: HomepageSection, user: User) -> None:
    record_event(s, actor=user, action="HOMEPAGE_SECTION_DELETE", target_type="HomepageSection", target_id=section.id, metadata={"key": section.key})
    s.delete(section)


def section_to_dict(section: HomepageSection) -> dict[str, Any]:
    return {
        "id": section.id,
        "key": section.key,
        "title": section.title,
        "content": section.content,
        "position": section.position,
        "isActive": section.is_active,
        "updatedAt": iso(section.updated_at),
    }


# ---------- Corporate ads ----------

def _ad_window(start: datetime | None, end: datetime | None) -> None:
    if start is None or end is None:
        raise BadRequestError("startDate and expiryDate are required.")
    if end < start:
        raise BadRequestError("expiryDate must not be before startDate.")


def create_ad(s: "Session", payload: dict, image: FileStorage | None, user: User) -> CorporateAd:
    placement = (payload.get("placement") or "").strip().lower()
    if placement not in AD_PLACEMENTS:
        raise BadRequestError(f"Invalid placement. Must be one of: {', '.join(AD_PLACEMENTS)}")
    click_url = _http_url(payload.get("clickUrl"), "clickUrl")
    start = parse_datetime(payload.get("startDate"))
    end = parse_datetime(payload.get("expiryDate"))
    _ad_window(start, end)
    image_url = _http_url(payload.get("imageUrl"), "imageUrl", required=False)
    meta = store_upload(image, AD_IMAGE, required=image_url is None)

    now = datetime.utcnow()
    ad = CorporateAd(
        title=strip_tags(payload.get("title")) or None,
        placement=placement,
        click_url=click_url,
        image_key=meta["storageKey"] if meta else None,
        image_url=None if meta else image_url,
        file_metadata=meta,
        start_date=start,
        expiry_date=end,
        is_active=parse_bool(payload.get("isActive"), default=True),
        created_at=now,
        updated_at=now,
    )
    s.add(ad)
    s.flush()
    record_event(s, actor=user, action="AD_CREATE", target_type="CorporateAd", target_id=ad.id, metadata={"placement": placement})
    return ad


def get_ad(s: "Session", ad_id: int) -> CorporateAd:
    ad = s.get(CorporateAd, ad_id)
    if not ad:
        raise NotFoundError("Ad not found.")
    return ad


def list_ads(s: "Session") -> list[CorporateAd]:
    return list(s.execute(select(CorporateAd).order_by(CorporateAd.start_date.desc(), CorporateAd.id.desc())).scalars().all())


def active_ads(s: "Session", *, placement: str | None = None, now: datetime | None = None) -> list[CorporateAd]:
    now = now or datetime.utcnow()
    stmt = select(CorporateAd).where(
        CorporateAd.is_active.is_(True),
        CorporateAd.start_date <= now,
        CorporateAd.expiry_date >= now,
    )
    if placement:
        stmt = stmt.where(CorporateAd.placement == placement)
    return list(s.execute(stmt.order_by(CorporateAd.start_date.desc(), CorporateAd.id.desc())).scalars().all())


def update_ad(s: "Session", ad: CorporateAd, payload: dict, image: FileStorage | None, user: User) -> CorporateAd:
    if "title" in payload:
        ad.title = strip_tags(payload.get("title")) or None
    if "placement" in payload:
        placement = (payload.get("placement") or "").strip().lower()
        if placement not in AD_PLACEMENTS:
            raise BadRequestError(f"Invalid placement. Must be one of: {', '.join(AD_PLACEMENTS)}")
        ad.placement = placement
    if "clickUrl" in payload:
        ad.click_url = _http_url(payload.get("clickUrl"), "clickUrl")
    if "startDate" in payload:
        ad.start_date = parse_datetime(payload.get("startDate"))
    if "expiryDate" in payload:
        ad.expiry_date = parse_datetime(payload.get("expiryDate"))
    _ad_window(ad.start_date, ad.expiry_date)
    if "isActive" in payload:
        ad.is_active = parse_bool(payload.get("isActive"))

    meta = store_upload(image, AD_IMAGE, required=False)
    if meta:
        old_key = ad.image_key
        ad.image_key = meta["storageKey"]
        ad.image_url = None
        ad.file_metadata = meta
        discard_upload(old_key)
    elif (payload.get("imageUrl") or "").strip():
        old_key = ad.image_key
        ad.image_url = _http_url(payload.get("imageUrl"), "imageUrl")
        ad.image_key = None
        ad.file_metadata = None
        discard_upload(old_key)

    ad.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="AD_UPDATE", target_type="CorporateAd", target_id=ad.id, metadata={"placement": ad.placement})
    return ad


def delete_ad(s: "Session", ad: CorporateAd, user: User) -> None:
    record_event(s, actor=user, action="AD_DELETE", target_type="CorporateAd", target_id=ad.id, metadata={"placement": ad.placement})
    key = ad.image_key
    s.delete(ad)
    s.flush()
    discard_upload(key)


def ad_to_dict(ad: CorporateAd) -> dict[str, Any]:
    return {
        "id": ad.id,
        "title": ad.title,
        "placement": ad.placement,
        "imageUrl": public_url(ad.image_key) or ad.image_url,
        "clickUrl": ad.click_url,
        "startDate": iso(ad.start_date),
        "expiryDate": iso(ad.expiry_date),
        "isActive": ad.is_active,
    }


# ---------- Media center ----------

def _media_type(raw: Any) -> str:
    mtype = (str(raw or "")).strip().lower()
    if mtype not in MEDIA_TYPES:
        raise BadRequestError(f"Invalid type. Must be one of: {', '.join(MEDIA_TYPES)}")
    return mtype


def create_media(s: "Session", payload: dict, user: User) -> MediaItem:
    title = strip_tags(payload.get("title"))
    if not title:
        raise BadRequestError("Title is required.")
    now = datetime.utcnow()
    item = MediaItem(
        title=title,
        description=strip_tags(payload.get("description")) or None,
        type=_media_type(payload.get("type")),
        url=_http_url(payload.get("url"), "url"),
        thumbnail_url=_http_url(payload.get("thumbnailUrl"), "thumbnailUrl", required=False),
        is_active=parse_bool(payload.get("isActive"), default=True),
        created_at=now,
        updated_at=now,
    )
    s.add(item)
    s.flush()
    record_event(s, actor=user, action="MEDIA_CREATE", target_type="MediaItem", target_id=item.id, metadata={"title": title})
    return item


def get_media(s: "Session", media_id: int) -> MediaItem:
    item = s.get(MediaItem, media_id)
    if not item:
        raise NotFoundError("Media not found.")
    return item


def list_media(s: "Session", *, active_only: bool, mtype: str | None = None) -> list[MediaItem]:
    stmt = select(MediaItem)
    if active_only:
        stmt = stmt.where(MediaItem.is_active.is_(True))
    if mtype:
        stmt = stmt.where(MediaItem.type == mtype)
    return list(s.execute(stmt.order_by(MediaItem.created_at.desc(), MediaItem.id.desc())).scalars().all())


def update_media(s: "Session", item: MediaItem, payload: dict, user: User) -> MediaItem:
    if "title" in payload:
        title = strip_tags(payload.get("title"))
        if not title:
            raise BadRequestError("Title must not be empty.")
        item.title = title
    if "description" in payload:
        item.description = strip_tags(payload.get("description")) or None
    if "type" in payload:
        item.type = _media_type(payload.get("type"))
    if "url" in payload:
        item.url = _http_url(payload.get("url"), "url")
    if "thumbnailUrl" in payload:
        item.thumbnail_url = _http_url(payload.get("thumbnailUrl"), "thumbnailUrl", required=False)
    if "isActive" in payload:
        item.is_active = parse_bool(payload.get("isActive"))
    item.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="MEDIA_UPDATE", target_type="MediaItem", target_id=item.id, metadata={"title": item.title})
    return item


def delete_media(s: "Session", item: MediaItem, user: User) -> None:
    record_event(s, actor=user, action="MEDIA_DELETE", target_type="MediaItem", target_id=item.id, metadata={"title": item.title})
    s.delete(item)


def media_to_dict(item: MediaItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "title": item.title,
        "description": item.description,
        "type": item.type,
        "url": item.url,
        "thumbnailUrl": item.thumbnail_url,
        "isActive": item.is_active,
        "createdAt": iso(item.created_at),
    }
