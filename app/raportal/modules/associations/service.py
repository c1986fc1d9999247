from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update

from app.raportal.audit import record_event
from app.raportal.constants import OFFICIAL_ASSOCIATIONS, SYSTEM_ROLES
from app.raportal.errors import NotFoundError
from app.raportal.models import Role, User
from app.raportal.modules.associations.models import Association

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def ensure_roles(s: "Session") -> dict[str, Role]:
    """Create the system roles if missing. Idempotent."""
    out: dict[str, Role] = {}
    for key, name in SYSTEM_ROLES.items():
        role = s.query(Role).filter(Role.key == key).one_or_none()
        if not role:
            role = Role(key=key, name=name)
            s.add(role)
        out[key] = role
    s.flush()
    return out


def ensure_associations(s: "Session") -> int:
    """Create any missing official associations. Returns how many were added."""
    added = 0
    for index, name in enumerate(OFFICIAL_ASSOCIATIONS, start=1):
        exists = s.query(Association).filter(Association.name == name).one_or_none()
        if exists:
            continue
        s.add(
            Association(
                name=name,
                code=f"ASSOC-{index:02d}",
                type="conference" if "Conference" in name else "association",
                status="active",
            )
        )
        added += 1
    s.flush()
    if added:
        logger.info("Seeded %s associations", added)
    return added


def seed_reference_data(s: "Session") -> None:
    ensure_roles(s)
    ensure_associations(s)


def list_associations(s: "Session") -> list[Association]:
    return list(s.execute(select(Association).order_by(Association.name.asc())).scalars().all())


def get_association(s: "Session", association_id: int) -> Association:
    assoc = s.get(Association, association_id)
    if not assoc:
        raise NotFoundError("Association not found.")
    return assoc


def find_by_name(s: "Session", name: str) -> Association | None:
    name = (name or "").strip()
    if not name:
        return None
    return s.query(Association).filter(Association.name == name).one_or_none()


def update_president(s: "Session", association: Association, president: User, actor: User | None = None) -> Association:
    """
    Make `president` the association's current president. The previous holder
    (if any) loses the flag, and no other association keeps pointing at the user.
    """
    previous_id = association.president_user_id
    if previous_id and previous_id != president.id:
        s.execute(update(User).where(User.id == previous_id).values(is_current_president=False))

    s.execute(
        update(Association)
        .where(Association.president_user_id == president.id, Association.id != association.id)
        .values(president_user_id=None)
    )

    association.president_user_id = president.id
    association.updated_at = datetime.utcnow()
    president.association_id = association.id
    president.is_current_president = True
    president.status = "active"
    s.flush()

    logger.info(
        "Association president changed association_id=%s previous=%s new=%s",
        association.id,
        previous_id,
        president.id,
    )
    if actor is not None:
        record_event(
            s,
            actor=actor,
            action="ASSOCIATION_PRESIDENT_TRANSFER",
            target_type="Association",
            target_id=association.id,
            metadata={"previousPresidentId": previous_id, "newPresidentId": president.id},
        )
    return association


def association_to_dict(s: "Session", assoc: Association) -> dict[str, Any]:
    president = s.get(User, assoc.president_user_id) if assoc.president_user_id else None
    return {
        "id": assoc.id,
        "name": assoc.name,
        "code": assoc.code,
        "type": assoc.type,
        "description": assoc.description,
        "status": assoc.status,
        "president": (
            {
                "id": president.id,
                "firstName": president.first_name,
                "lastName": president.last_name,
                "email": president.email,
            }
            if president
            else None
        ),
    }
