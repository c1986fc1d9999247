from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.raportal.models import AuditLog, User


def _primary_role(actor: User | None) -> str | None:
    if actor is None:
        return None
    keys = actor.role_keys
    for key in ("superadmin", "president", "ambassador"):
        if key in keys:
            return key
    return keys[0] if keys else None


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    target_type: str,
    target_id: str | int,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditLog:
    """
    Append-only audit event helper. Added to the caller's transaction.
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    user_agent = None
    if in_request:
        user_agent = (request.headers.get("User-Agent") or "")[:512] or None
    ev = AuditLog(
        request_id=rid,
        action=action,
        actor_id=actor.id if actor else None,
        actor_email=actor.email if actor else None,
        actor_role=_primary_role(actor),
        target_type=target_type,
        target_id=str(target_id),
        metadata_json=metadata or None,
        client_ip=request.remote_addr if in_request else None,
        user_agent=user_agent,
    )
    s.add(ev)
    return ev


def audit_log_to_dict(ev: AuditLog) -> dict[str, Any]:
    return {
        "id": ev.id,
        "action": ev.action,
        "actorId": ev.actor_id,
        "actorEmail": ev.actor_email,
        "actorRole": ev.actor_role,
        "targetType": ev.target_type,
        "targetId": ev.target_id,
        "metadata": ev.metadata_json,
        "requestId": ev.request_id,
        "ipAddress": ev.client_ip,
        "userAgent": ev.user_agent,
        "createdAt": ev.created_at.isoformat() if ev.created_at else None,
    }
