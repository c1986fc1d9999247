from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime, timezone
from typing import Any, Callable

from flask import request
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.raportal.errors import BadRequestError

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


def json_payload() -> dict[str, Any]:
    """Request body as a dict: JSON when sent, otherwise form fields."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            raise BadRequestError("Malformed JSON body.")
        if not isinstance(data, dict):
            raise BadRequestError("JSON body must be an object.")
        return data
    return request.form.to_dict()


def parse_int(raw: Any, field: str, *, default: int | None = None, minimum: int | None = None) -> int | None:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise BadRequestError(f"{field} must be an integer.") from e
    if minimum is not None and value < minimum:
        raise BadRequestError(f"{field} must be >= {minimum}.")
    return value


def parse_float(raw: Any, field: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as e:
        raise BadRequestError(f"{field} must be a number.") from e
    # "nan" and "inf" parse but cannot be stored or sent as JSON
    if not math.isfinite(value):
        raise BadRequestError(f"{field} must be a finite number.")
    return value


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD date string."""
    if not s:
        return None
    s = s.strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError as e:
        raise BadRequestError(f"Invalid date '{s}'; expected YYYY-MM-DD.") from e


def parse_datetime(s: str | None) -> datetime | None:
    if not s:
        return None
    s = s.strip()
    if not s:
        return None
    try:
        value = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError as e:
        raise BadRequestError(f"Invalid datetime '{s}'.") from e
    if value.tzinfo is not None:
        # stored naive UTC
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_bool(raw: Any, default: bool = False) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


def page_params() -> tuple[int, int]:
    page = parse_int(request.args.get("page"), "page", default=1)
    limit = parse_int(request.args.get("limit"), "limit", default=DEFAULT_PAGE_LIMIT)
    if page is None or page < 1:
        raise BadRequestError("page must be >= 1.")
    if limit is None or limit < 1 or limit > MAX_PAGE_LIMIT:
        raise BadRequestError(f"limit must be between 1 and {MAX_PAGE_LIMIT}.")
    return page, limit


def paginate(
    s: Session,
    stmt: Select,
    *,
    page: int,
    limit: int,
    serialize: Callable[[Any], dict],
) -> dict[str, Any]:
    total = s.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = s.execute(stmt.limit(limit).offset((page - 1) * limit)).scalars().all()
    return {
        "items": [serialize(r) for r in rows],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


def slugify(value: str) -> str:
    value = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^\w\s-]", "", value.lower())
    value = re.sub(r"[-\s_]+", "-", value).strip("-")
    return value


def iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None
