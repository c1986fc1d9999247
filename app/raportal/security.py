"""
Password hashing and JWT helpers.

Access and refresh tokens are HS256 JWTs. Refresh tokens are additionally
tracked by SHA-256 digest in the refresh_tokens table so they can be rotated
and revoked.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt
from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from app.raportal.errors import UnauthorizedError

if TYPE_CHECKING:
    from app.raportal.models import User


ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _claims_for(user: "User") -> dict[str, Any]:
    return {
        "sub": str(user.id),
        "email": user.email,
        "userCode": user.user_code,
        "roles": user.role_keys,
        "associationId": user.association_id,
    }


def create_token(user: "User", token_type: str, expires_delta: timedelta) -> tuple[str, datetime]:
    """Encode a signed token of the given type; returns (token, expires_at)."""
    now = datetime.utcnow()
    expires_at = now + expires_delta
    payload = _claims_for(user)
    payload.update(
        {
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": expires_at,
        }
    )
    cfg = current_app.config
    token = jwt.encode(payload, cfg["JWT_SECRET"], algorithm=cfg.get("JWT_ALGORITHM") or "HS256")
    return token, expires_at


def access_token_ttl() -> timedelta:
    return timedelta(minutes=int(current_app.config.get("ACCESS_TOKEN_EXPIRES_MINUTES") or 60))


def refresh_token_ttl() -> timedelta:
    return timedelta(days=int(current_app.config.get("REFRESH_TOKEN_EXPIRES_DAYS") or 7))


def decode_token(token: str, expected_type: str) -> dict[str, Any]:
    cfg = current_app.config
    try:
        payload = jwt.decode(token, cfg["JWT_SECRET"], algorithms=[cfg.get("JWT_ALGORITHM") or "HS256"])
    except jwt.ExpiredSignatureError as e:
        raise UnauthorizedError("Token has expired.") from e
    except jwt.InvalidTokenError as e:
        raise UnauthorizedError("Invalid token.") from e
    if payload.get("type") != expected_type:
        raise UnauthorizedError("Invalid token type.")
    if not payload.get("sub") or not payload.get("jti"):
        raise UnauthorizedError("Invalid token.")
    return payload
