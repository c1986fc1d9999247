from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import current_app
from sqlalchemy import or_, select

from app.raportal.audit import record_event
from app.raportal.constants import INITIAL_RANK, OFFICIAL_RANKS, SYSTEM_ROLES, USER_STATUSES
from app.raportal.errors import BadRequestError, ConflictError, NotFoundError
from app.raportal.models import Counter, Role, User
from app.raportal.security import hash_password
from app.raportal.utils import iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Select

logger = logging.getLogger(__name__)

USER_CODE_COUNTER = "global_user_id"
MIN_PASSWORD_LENGTH = 6

# Fields an owner may change on their own profile.
PROFILE_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "phone": "phone",
    "church": "church",
    "address": "address",
    "bio": "bio",
}


def next_user_code(s: "Session") -> str:
    """
    Allocate the next sequential user code. The counter row is locked for the
    rest of the transaction so concurrent registrations never share a code.
    """
    counter = s.execute(
        select(Counter).where(Counter.key == USER_CODE_COUNTER).with_for_update()
    ).scalar_one_or_none()
    if counter is None:
        counter = Counter(key=USER_CODE_COUNTER, seq=0)
        s.add(counter)
    counter.seq = (counter.seq or 0) + 1
    s.flush()
    prefix = (current_app.config.get("USER_CODE_PREFIX") or "RA/OGBC").rstrip("/")
    return f"{prefix}/{counter.seq:04d}"


def find_by_email(s: "Session", email: str) -> User | None:
    email = (email or "").strip().lower()
    if not email:
        return None
    return s.query(User).filter(User.email == email).one_or_none()


def find_by_identifier(s: "Session", identifier: str) -> User | None:
    """Look a user up by email (case-insensitive) or user code."""
    ident = (identifier or "").strip()
    if not ident:
        return None
    return (
        s.query(User)
        .filter(or_(User.email == ident.lower(), User.user_code == ident.upper()))
        .one_or_none()
    )


def validate_password(password: str | None) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return password


def create_user(
    s: "Session",
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role_key: str,
    association_id: int | None,
    extra: dict[str, Any] | None = None,
) -> User:
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise BadRequestError("A valid email is required.")
    validate_password(password)
    if s.query(User.id).filter(User.email == email).first() is not None:
        raise ConflictError("Email already exists.")

    role = s.query(Role).filter(Role.key == role_key).one_or_none()
    if role is None:
        role = Role(key=role_key, name=SYSTEM_ROLES.get(role_key, role_key))
        s.add(role)

    extra = extra or {}
    now = datetime.utcnow()
    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=(first_name or "").strip(),
        last_name=(last_name or "").strip(),
        phone=(extra.get("phone") or "").strip() or None,
        church=(extra.get("church") or "").strip() or None,
        age=parse_int(extra.get("age"), "age", minimum=0),
        user_code=next_user_code(s),
        rank=INITIAL_RANK,
        status="active",
        association_id=association_id,
        created_at=now,
        updated_at=now,
    )
    user.roles.append(role)
    s.add(user)
    s.flush()
    logger.info("Created user id=%s code=%s role=%s", user.id, user.user_code, role_key)
    return user


def get_user(s: "Session", user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        raise NotFoundError("User not found.")
    return user


def update_profile(s: "Session", user: User, payload: dict) -> User:
    for key, attr in PROFILE_FIELDS.items():
        if key in payload:
            value = payload.get(key)
            value = (str(value).strip() if value is not None else "") or None
            if attr in ("first_name", "last_name"):
                if not value:
                    raise BadRequestError(f"{key} cannot be empty.")
            setattr(user, attr, value)
    if "age" in payload:
        user.age = parse_int(payload.get("age"), "age", minimum=0)
    if "email" in payload:
        new_email = (payload.get("email") or "").strip().lower()
        if not new_email or "@" not in new_email:
            raise BadRequestError("A valid email is required.")
        if new_email != user.email:
            if s.query(User.id).filter(User.email == new_email).first() is not None:
                raise ConflictError("Email already exists.")
            user.email = new_email
    user.updated_at = datetime.utcnow()
    s.flush()
    return user


def users_query(
    *,
    role: str | None = None,
    status: str | None = None,
    association_id: int | None = None,
    search: str | None = None,
) -> "Select":
    stmt = select(User)
    if role:
        stmt = stmt.where(User.roles.any(Role.key == role))
    if status:
        stmt = stmt.where(User.status == status)
    if association_id:
        stmt = stmt.where(User.association_id == association_id)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                User.email.ilike(like),
                User.first_name.ilike(like),
                User.last_name.ilike(like),
                User.user_code.ilike(like),
            )
        )
    return stmt.order_by(User.created_at.desc(), User.id.desc())


def change_roles(s: "Session", user: User, role_keys: list[str], actor: User) -> User:
    if not role_keys:
        raise BadRequestError("At least one role is required.")
    unknown = [k for k in role_keys if k not in SYSTEM_ROLES]
    if unknown:
        raise BadRequestError(f"Unknown role(s): {', '.join(unknown)}")
    previous = user.role_keys
    roles = s.query(Role).filter(Role.key.in_(role_keys)).all()
    user.roles = roles
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="USER_ROLE_CHANGE",
        target_type="User",
        target_id=user.id,
        metadata={"previousRoles": previous, "newRoles": sorted(role_keys)},
    )
    return user


def change_status(s: "Session", user: User, status: str, actor: User) -> User:
    status = (status or "").strip().lower()
    if status not in USER_STATUSES:
        raise BadRequestError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")
    previous = user.status
    user.status = status
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="USER_STATUS_CHANGE",
        target_type="User",
        target_id=user.id,
        metadata={"previousStatus": previous, "newStatus": status},
    )
    return user


def change_rank(s: "Session", user: User, rank: str, actor: User) -> User:
    if rank not in OFFICIAL_RANKS:
        raise BadRequestError("Unknown rank.")
    previous = user.rank
    user.rank = rank
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="USER_RANK_CHANGE",
        target_type="User",
        target_id=user.id,
        metadata={"previousRank": previous, "newRank": rank},
    )
    return user


def admin_reset_password(s: "Session", user: User, new_password: str, actor: User) -> None:
    user.password_hash = hash_password(validate_password(new_password))
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="USER_PASSWORD_RESET_ADMIN",
        target_type="User",
        target_id=user.id,
    )


def user_to_dict(user: User) -> dict[str, Any]:
    assoc = user.association
    return {
        "id": user.id,
        "email": user.email,
        "userCode": user.user_code,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "phone": user.phone,
        "church": user.church,
        "age": user.age,
        "address": user.address,
        "bio": user.bio,
        "rank": user.rank,
        "status": user.status,
        "roles": user.role_keys,
        "associationId": user.association_id,
        "association": {"id": assoc.id, "name": assoc.name} if assoc else None,
        "isCurrentPresident": user.is_current_president,
        "createdAt": iso(user.created_at),
    }
