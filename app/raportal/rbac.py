from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g

from app.raportal.errors import ForbiddenError, UnauthorizedError
from app.raportal.models import User


def current_roles() -> set[str]:
    claims = getattr(g, "token_claims", None) or {}
    return set(claims.get("roles") or [])


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            raise UnauthorizedError("Authentication required.")
        return fn(*args, **kwargs)

    return wrapped


def require_roles(*role_keys: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Authenticated caller whose token role claims include at least one of role_keys.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                raise UnauthorizedError("Authentication required.")
            if not (current_roles() & set(role_keys)):
                current_app.logger.warning(
                    "Forbidden: user_id=%s required_roles=%s request_id=%s",
                    user.id,
                    ",".join(role_keys),
                    getattr(g, "request_id", None),
                )
                raise ForbiddenError("You do not have permission to perform this action.")
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise UnauthorizedError("Authentication required.")
    return u
