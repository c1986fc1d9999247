"""
Upload validation and storage for receipts, images and spreadsheets.

Each upload kind has an allow-list of MIME types and a size cap. Accepted files
are written to the configured Storage under a deterministic key and described
by a small metadata dict that is persisted alongside the owning row.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from app.raportal.errors import BadRequestError
from app.raportal.storage import storage_from_config

MB = 1024 * 1024


@dataclass(frozen=True)
class UploadPolicy:
    kind: str
    prefix: str
    mime_types: frozenset[str]
    max_bytes: int


RECEIPT = UploadPolicy(
    kind="receipt",
    prefix="receipts",
    mime_types=frozenset({"image/jpeg", "image/png", "application/pdf"}),
    max_bytes=5 * MB,
)
BLOG_COVER = UploadPolicy(
    kind="blog cover",
    prefix="blog",
    mime_types=frozenset({"image/jpeg", "image/png", "image/webp"}),
    max_bytes=5 * MB,
)
GALLERY_IMAGE = UploadPolicy(
    kind="gallery image",
    prefix="gallery",
    mime_types=frozenset({"image/jpeg", "image/png", "image/webp"}),
    max_bytes=10 * MB,
)
AD_IMAGE = UploadPolicy(
    kind="ad image",
    prefix="ads",
    mime_types=frozenset({"image/jpeg", "image/png", "image/webp"}),
    max_bytes=5 * MB,
)
SPREADSHEET = UploadPolicy(
    kind="spreadsheet",
    prefix="camp-uploads",
    mime_types=frozenset(
        {
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            # some clients send xlsx as a generic binary
            "application/octet-stream",
        }
    ),
    max_bytes=10 * MB,
)

# Prefixes served without authentication at /uploads/<key>.
PUBLIC_PREFIXES = (GALLERY_IMAGE.prefix + "/", BLOG_COVER.prefix + "/", AD_IMAGE.prefix + "/")


def file_digest_and_bytes(fs: FileStorage) -> tuple[str, bytes]:
    data = fs.read()
    return hashlib.sha256(data).hexdigest(), data


def build_storage_key(policy: UploadPolicy, filename: str, when: datetime | None = None) -> str:
    when = when or datetime.utcnow()
    safe_filename = secure_filename(filename) or "upload.bin"
    return f"{policy.prefix}/{when:%Y/%m}/{uuid.uuid4().hex[:12]}-{safe_filename}"


def validate_upload(fs: FileStorage | None, policy: UploadPolicy, *, required: bool = True) -> bool:
    """Raise BadRequestError when the file breaks the policy. Returns False when absent and optional."""
    if fs is None or not fs.filename:
        if required:
            raise BadRequestError(f"A {policy.kind} file is required.")
        return False
    mimetype = (fs.mimetype or "").lower()
    if mimetype not in policy.mime_types:
        raise BadRequestError(
            f"Invalid {policy.kind} file type '{mimetype or 'unknown'}'. "
            f"Allowed: {', '.join(sorted(policy.mime_types))}."
        )
    if policy is SPREADSHEET and not fs.filename.lower().endswith(".xlsx"):
        raise BadRequestError("Spreadsheet must be an .xlsx file.")
    return True


def store_upload(fs: FileStorage | None, policy: UploadPolicy, *, required: bool = True) -> dict[str, Any] | None:
    """
    Validate and persist an uploaded file. Returns the stored file metadata, or
    None for an absent optional file.
    """
    if not validate_upload(fs, policy, required=required):
        return None
    assert fs is not None
    sha256, data = file_digest_and_bytes(fs)
    if not data:
        raise BadRequestError(f"The {policy.kind} file is empty.")
    if len(data) > policy.max_bytes:
        raise BadRequestError(f"The {policy.kind} file exceeds {policy.max_bytes // MB} MB.")

    key = build_storage_key(policy, fs.filename or "upload.bin")
    storage = storage_from_config(current_app.config)
    storage.put_bytes(key, data, content_type=fs.mimetype)
    current_app.logger.info("Stored %s upload key=%s bytes=%s", policy.kind, key, len(data))
    return {
        "storageKey": key,
        "originalFilename": fs.filename,
        "contentType": fs.mimetype,
        "sha256": sha256,
        "sizeBytes": len(data),
    }


def public_url(storage_key: str | None) -> str | None:
    if not storage_key:
        return None
    return f"/uploads/{storage_key}"


def is_public_key(storage_key: str) -> bool:
    return storage_key.startswith(PUBLIC_PREFIXES) and ".." not in storage_key


def discard_upload(storage_key: str | None) -> None:
    if not storage_key:
        return
    try:
        storage_from_config(current_app.config).delete(storage_key)
    except Exception as e:
        current_app.logger.warning("Could not delete stored file key=%s: %s", storage_key, e)
