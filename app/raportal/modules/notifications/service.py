from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update

from app.raportal.constants import NOTIFICATION_TYPES
from app.raportal.errors import NotFoundError
from app.raportal.modules.notifications.models import Notification
from app.raportal.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Select


def notify(
    s: "Session",
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> Notification:
    """Queue an in-app notification in the caller's transaction."""
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    n = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        metadata_json=metadata or None,
        is_read=False,
        created_at=datetime.utcnow(),
    )
    s.add(n)
    return n


def notifications_query(user_id: int) -> "Select":
    return (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )


def unread_count(s: "Session", user_id: int) -> int:
    return s.scalar(
        select(func.count(Notification.id)).where(Notification.user_id == user_id, Notification.is_read.is_(False))
    ) or 0


def mark_read(s: "Session", notification_id: int, user_id: int) -> Notification:
    n = s.get(Notification, notification_id)
    if not n or n.user_id != user_id:
        raise NotFoundError("Notification not found.")
    n.is_read = True
    return n


def mark_all_read(s: "Session", user_id: int) -> int:
    res = s.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0


def notification_to_dict(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "isRead": n.is_read,
        "metadata": n.metadata_json,
        "createdAt": iso(n.created_at),
    }
