from flask import Blueprint, abort, current_app, send_file

from app.raportal.storage import StorageError, storage_from_config
from app.raportal.uploads import is_public_key

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/uploads/<path:key>")
def public_upload(key: str):
    """Public content files (gallery images, blog covers, ads). Receipts are never served here."""
    if not is_public_key(key):
        abort(404)
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    return send_file(fobj, download_name=key.rsplit("/", 1)[-1], max_age=3600)
