from __future__ import annotations

import hmac
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import delete

from app.raportal.audit import record_event
from app.raportal.constants import (
    PASSCODE_ROLES,
    ROLE_AMBASSADOR,
    ROLE_PRESIDENT,
    ROLE_SUPERADMIN,
    SYSTEM_ROLES,
)
from app.raportal.db import db_session
from app.raportal.errors import BadRequestError, ForbiddenError, ServiceError, UnauthorizedError
from app.raportal.models import RefreshToken, User
from app.raportal.modules.associations.service import find_by_name, update_president
from app.raportal.modules.users.service import create_user, find_by_identifier, user_to_dict
from app.raportal.rbac import current_user, require_auth
from app.raportal.security import (
    ACCESS,
    REFRESH,
    access_token_ttl,
    create_token,
    decode_token,
    refresh_token_ttl,
    token_digest,
    verify_password,
)
from app.raportal.utils import json_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


class TooManyAttemptsError(ServiceError):
    status_code = 429
    kind = "too_many_requests"


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_current_user() -> None:
    """
    Loads g.current_user from the bearer access token.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.token_claims = None
    if request.path.startswith(("/health", "/healthz", "/uploads/")):
        return

    token = _bearer_token()
    if not token:
        return
    try:
        claims = decode_token(token, ACCESS)
    except UnauthorizedError as e:
        current_app.logger.info("Rejected bearer token (request_id=%s): %s", g.request_id, e.message)
        return

    try:
        s = db_session()
        user = s.get(User, int(claims["sub"]))
    except Exception as e:
        current_app.logger.error("load_current_user DB error: %s", e)
        return
    if not user or not user.is_active:
        return
    g.current_user = user
    g.token_claims = claims


def _passcode_for(role_key: str) -> str:
    if role_key == ROLE_SUPERADMIN:
        return current_app.config.get("SUPERADMIN_PASSCODE") or ""
    if role_key == ROLE_PRESIDENT:
        return current_app.config.get("PRESIDENT_PASSCODE") or ""
    return ""


def check_passcode(role_key: str, supplied: str | None) -> None:
    """Forbidden unless the supplied passcode matches the configured one for a privileged role."""
    if role_key not in PASSCODE_ROLES:
        return
    expected = _passcode_for(role_key)
    if not expected or not hmac.compare_digest(expected.encode("utf-8"), (supplied or "").encode("utf-8")):
        raise ForbiddenError(f"Invalid {role_key} passcode.")


def _privileged_role(user: User) -> str | None:
    keys = user.role_keys
    if ROLE_SUPERADMIN in keys:
        return ROLE_SUPERADMIN
    if ROLE_PRESIDENT in keys:
        return ROLE_PRESIDENT
    return None


def issue_tokens(s, user: User) -> dict[str, Any]:
    """New access/refresh pair; the refresh token is remembered by digest."""
    now = datetime.utcnow()
    s.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id, RefreshToken.expires_at <= now))
    access, _ = create_token(user, ACCESS, access_token_ttl())
    refresh, refresh_exp = create_token(user, REFRESH, refresh_token_ttl())
    s.add(RefreshToken(user_id=user.id, token_digest=token_digest(refresh), expires_at=refresh_exp, created_at=now))
    s.flush()
    return {
        "accessToken": access,
        "refreshToken": refresh,
        "user": user_to_dict(user),
    }


@bp.post("/register")
def register():
    s = db_session()
    payload = json_payload()
    role = (payload.get("role") or ROLE_AMBASSADOR).strip().lower()
    if role not in SYSTEM_ROLES:
        raise BadRequestError("Invalid role.")
    check_passcode(role, payload.get("passcode"))

    association_name = (payload.get("associationName") or "").strip()
    association = find_by_name(s, association_name)
    if association is None:
        raise BadRequestError(f"Invalid association name: {association_name}")

    user = create_user(
        s,
        email=payload.get("email") or "",
        password=payload.get("password") or "",
        first_name=payload.get("firstName") or "",
        last_name=payload.get("lastName") or "",
        role_key=role,
        association_id=association.id,
        extra=payload,
    )
    if role == ROLE_PRESIDENT:
        update_president(s, association, user)

    record_event(s, actor=user, action="USER_REGISTER", target_type="User", target_id=user.id, metadata={"role": role})
    body = issue_tokens(s, user)
    s.commit()
    current_app.logger.info("Registered user id=%s role=%s association_id=%s", user.id, role, association.id)
    return jsonify(body), 201


@bp.post("/login")
def login():
    payload = json_payload()
    identifier = (payload.get("email") or payload.get("identifier") or "").strip()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        raise TooManyAttemptsError("Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = find_by_identifier(s, identifier)
    if not user or not user.is_active or not verify_password(user.password_hash, password):
        current_app.logger.warning("Login failed identifier=%s request_id=%s", identifier, g.request_id)
        raise UnauthorizedError("Invalid credentials.")

    privileged = _privileged_role(user)
    if privileged:
        check_passcode(privileged, payload.get("passcode"))

    _login_attempts[ip].clear()
    body = issue_tokens(s, user)
    s.commit()
    return jsonify(body)


@bp.post("/refresh")
def refresh():
    s = db_session()
    payload = json_payload()
    token = (payload.get("refreshToken") or "").strip()
    if not token:
        raise UnauthorizedError("Refresh token required.")
    claims = decode_token(token, REFRESH)

    user = s.get(User, int(claims["sub"]))
    if not user or not user.is_active:
        raise UnauthorizedError("User not found.")

    row = s.query(RefreshToken).filter(RefreshToken.token_digest == token_digest(token)).one_or_none()
    if row is None or row.user_id != user.id:
        # a signed token that is no longer stored has already been rotated or revoked
        s.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
        s.commit()
        current_app.logger.warning("Refresh token reuse detected user_id=%s request_id=%s", user.id, g.request_id)
        raise UnauthorizedError("Refresh token reuse detected. All sessions invalidated.")

    s.delete(row)
    body = issue_tokens(s, user)
    s.commit()
    return jsonify(body)


@bp.post("/logout")
@require_auth
def logout():
    s = db_session()
    u = current_user()
    payload = json_payload()
    token = (payload.get("refreshToken") or "").strip()
    if token:
        s.execute(
            delete(RefreshToken).where(RefreshToken.user_id == u.id, RefreshToken.token_digest == token_digest(token))
        )
    s.commit()
    return jsonify({"message": "Logged out successfully."})


@bp.get("/me")
@require_auth
def me():
    return jsonify(user_to_dict(current_user()))
