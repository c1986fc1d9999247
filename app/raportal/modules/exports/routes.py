from __future__ import annotations

import io
from datetime import datetime

from flask import Blueprint, request, send_file

from app.raportal.constants import ROLE_PRESIDENT, ROLE_SUPERADMIN
from app.raportal.db import db_session
from app.raportal.errors import NotFoundError
from app.raportal.modules.exports.service import (
    XLSX_MIMETYPE,
    export_camp_participants,
    export_exam_results,
    export_payments,
    export_users,
    filters_from_args,
)
from app.raportal.rbac import current_roles, current_user, require_roles

bp = Blueprint("exports", __name__)

EXPORTERS = {
    "users": export_users,
    "payments": export_payments,
    "exams": export_exam_results,
    "camps": export_camp_participants,
}


@bp.get("/exports/<string:kind>")
@require_roles(ROLE_SUPERADMIN, ROLE_PRESIDENT)
def exports_download(kind: str):
    exporter = EXPORTERS.get(kind)
    if exporter is None:
        raise NotFoundError(f"Unknown export '{kind}'.")
    s = db_session()
    u = current_user()
    forced = None if ROLE_SUPERADMIN in current_roles() else (u.association_id or -1)
    data = exporter(s, filters_from_args(request.args, forced_association_id=forced), u)
    s.commit()
    return send_file(
        io.BytesIO(data),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"{kind}-export-{datetime.utcnow():%Y%m%d-%H%M%S}.xlsx",
    )
