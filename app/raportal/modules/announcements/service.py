"""
Announcements and per-user read tracking.

An announcement reaches a user when it is active, not expired, and either
global, aimed at the user's association, or aimed at one of the user's roles.
Targeting by role is matched in Python because role keys live in a JSON list.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from app.raportal.audit import record_event
from app.raportal.constants import ROLE_SUPERADMIN, SYSTEM_ROLES
from app.raportal.errors import BadRequestError, ForbiddenError, NotFoundError
from app.raportal.models import User
from app.raportal.modules.announcements.models import Announcement, AnnouncementRead
from app.raportal.modules.associations.models import Association
from app.raportal.sanitize import sanitize_html, strip_tags
from app.raportal.utils import iso, parse_bool, parse_datetime, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def _target_roles(raw: Any) -> list[str]:
    if raw in (None, ""):
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        raise BadRequestError("targetRoles must be a list of role keys.")
    roles = sorted({str(r).strip().lower() for r in raw if str(r).strip()})
    unknown = [r for r in roles if r not in SYSTEM_ROLES]
    if unknown:
        raise BadRequestError(f"Unknown role(s): {', '.join(unknown)}")
    return roles


def _target_association(s: "Session", raw: Any) -> int | None:
    association_id = parse_int(raw, "targetAssociationId")
    if association_id is not None and s.get(Association, association_id) is None:
        raise BadRequestError("Target association not found.")
    return association_id


def create_announcement(s: "Session", payload: dict, user: User, roles: set[str]) -> Announcement:
    title = strip_tags(payload.get("title"))
    content = sanitize_html(payload.get("content"))
    if not title:
        raise BadRequestError("Title is required.")
    if not content:
        raise BadRequestError("Content is required.")

    if ROLE_SUPERADMIN in roles:
        is_global = parse_bool(payload.get("isGlobal"))
        association_id = _target_association(s, payload.get("targetAssociationId"))
        target_roles = _target_roles(payload.get("targetRoles"))
    else:
        # presidents can only address their own association
        if not user.association_id:
            raise ForbiddenError("You are not attached to an association.")
        is_global = False
        association_id = user.association_id
        target_roles = []
    if not (is_global or association_id or target_roles):
        raise BadRequestError("An announcement must be global or have a target association or roles.")

    now = datetime.utcnow()
    a = Announcement(
        title=title,
        content=content,
        is_global=is_global,
        target_association_id=association_id,
        target_roles=target_roles or None,
        expires_at=parse_datetime(payload.get("expiresAt")),
        is_active=parse_bool(payload.get("isActive"), default=True),
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(a)
    s.flush()
    record_event(s, actor=user, action="ANNOUNCEMENT_CREATE", target_type="Announcement", target_id=a.id, metadata={"title": a.title})
    return a


def get_announcement(s: "Session", announcement_id: int) -> Announcement:
    a = s.get(Announcement, announcement_id)
    if not a:
        raise NotFoundError("Announcement not found.")
    return a


def list_all(s: "Session") -> list[Announcement]:
    stmt = select(Announcement).order_by(Announcement.created_at.desc(), Announcement.id.desc())
    return list(s.execute(stmt).scalars().all())


def feed_for_user(s: "Session", user: User, roles: set[str], *, now: datetime | None = None) -> list[Announcement]:
    """Active, unexpired, targeted announcements the user has not read yet."""
    now = now or datetime.utcnow()
    read_ids = select(AnnouncementRead.announcement_id).where(AnnouncementRead.user_id == user.id)
    stmt = (
        select(Announcement)
        .where(
            Announcement.is_active.is_(True),
            or_(Announcement.expires_at.is_(None), Announcement.expires_at >= now),
            Announcement.id.not_in(read_ids),
        )
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
    )
    out = []
    for a in s.execute(stmt).scalars().all():
        if a.is_global:
            out.append(a)
        elif user.association_id and a.target_association_id == user.association_id:
            out.append(a)
        elif roles & set(a.target_roles or []):
            out.append(a)
    return out


def mark_read(s: "Session", announcement_id: int, user: User) -> AnnouncementRead:
    get_announcement(s, announcement_id)
    existing = s.execute(
        select(AnnouncementRead).where(
            AnnouncementRead.announcement_id == announcement_id, AnnouncementRead.user_id == user.id
        )
    ).scalars().first()
    if existing is not None:
        existing.read_at = datetime.utcnow()
        return existing
    read = AnnouncementRead(announcement_id=announcement_id, user_id=user.id, read_at=datetime.utcnow())
    try:
        with s.begin_nested():
            s.add(read)
    except IntegrityError:
        # concurrent mark-read from another request
        return s.execute(
            select(AnnouncementRead).where(
                AnnouncementRead.announcement_id == announcement_id, AnnouncementRead.user_id == user.id
            )
        ).scalars().one()
    return read


def update_announcement(s: "Session", a: Announcement, payload: dict, user: User) -> Announcement:
    if "title" in payload:
        title = strip_tags(payload.get("title"))
        if not title:
            raise BadRequestError("Title must not be empty.")
        a.title = title
    if "content" in payload:
        content = sanitize_html(payload.get("content"))
        if not content:
            raise BadRequestError("Content must not be empty.")
        a.content = content
    if "isGlobal" in payload:
        a.is_global = parse_bool(payload.get("isGlobal"))
    if "targetAssociationId" in payload:
        a.target_association_id = _target_association(s, payload.get("targetAssociationId"))
    if "targetRoles" in payload:
        a.target_roles = _target_roles(payload.get("targetRoles")) or None
    if "expiresAt" in payload:
        a.expires_at = parse_datetime(payload.get("expiresAt"))
    if "isActive" in payload:
        a.is_active = parse_bool(payload.get("isActive"))
    a.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="ANNOUNCEMENT_UPDATE", target_type="Announcement", target_id=a.id, metadata={"fields": sorted(payload.keys())})
    return a


def delete_announcement(s: "Session", a: Announcement, user: User) -> None:
    record_event(s, actor=user, action="ANNOUNCEMENT_DELETE", target_type="Announcement", target_id=a.id, metadata={"title": a.title})
    s.delete(a)


def announcement_to_dict(a: Announcement) -> dict[str, Any]:
    creator = a.created_by
    return {
        "id": a.id,
        "title": a.title,
        "content": a.content,
        "isGlobal": a.is_global,
        "targetAssociationId": a.target_association_id,
        "targetRoles": a.target_roles or [],
        "expiresAt": iso(a.expires_at),
        "isActive": a.is_active,
        "createdBy": {"id": creator.id, "firstName": creator.first_name, "lastName": creator.last_name} if creator else None,
        "createdAt": iso(a.created_at),
    }
