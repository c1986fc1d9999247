from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_, select
from werkzeug.datastructures import FileStorage

from app.raportal.audit import record_event
from app.raportal.constants import BLOG_STATUSES
from app.raportal.errors import BadRequestError, ConflictError, NotFoundError
from app.raportal.models import User
from app.raportal.modules.blog.models import BlogPost
from app.raportal.sanitize import sanitize_html, strip_tags
from app.raportal.uploads import BLOG_COVER, discard_upload, public_url, store_upload
from app.raportal.utils import iso, slugify

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Select


def _slug_taken(s: "Session", slug: str, exclude_id: int | None = None) -> bool:
    stmt = select(BlogPost.id).where(BlogPost.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(BlogPost.id != exclude_id)
    return s.execute(stmt).first() is not None


def _status(raw: Any, default: str = "draft") -> str:
    status = (str(raw or "") or default).strip().lower()
    if status not in BLOG_STATUSES:
        raise BadRequestError(f"Invalid status. Must be one of: {', '.join(BLOG_STATUSES)}")
    return status


def create_post(s: "Session", payload: dict, author: User, cover: FileStorage | None = None) -> BlogPost:
    """
    Create a post. A slug given by the caller must be free (409 otherwise);
    a slug derived from the title gets a timestamp suffix when it collides.
    """
    title = strip_tags(payload.get("title"))
    content = sanitize_html(payload.get("content"))
    if not title:
        raise BadRequestError("Title is required.")
    if not content:
        raise BadRequestError("Content is required.")
    status = _status(payload.get("status"))

    explicit = (payload.get("slug") or "").strip()
    slug = slugify(explicit or title)
    if not slug:
        raise BadRequestError("Could not derive a slug from the title.")
    if _slug_taken(s, slug):
        if explicit:
            raise ConflictError("Slug already exists.")
        slug = f"{slug}-{int(time.time() * 1000)}"

    meta = store_upload(cover, BLOG_COVER, required=False)
    now = datetime.utcnow()
    post = BlogPost(
        title=title,
        slug=slug,
        excerpt=strip_tags(payload.get("excerpt")) or None,
        content=content,
        status=status,
        cover_image_key=meta["storageKey"] if meta else None,
        cover_image_metadata=meta,
        author_id=author.id,
        published_at=now if status == "published" else None,
        created_at=now,
        updated_at=now,
    )
    s.add(post)
    s.flush()
    record_event(s, actor=author, action="BLOG_CREATE", target_type="BlogPost", target_id=post.id, metadata={"title": post.title, "slug": post.slug})
    return post


def get_post(s: "Session", id_or_slug: str, *, published_only: bool = False) -> BlogPost:
    stmt = select(BlogPost)
    if id_or_slug.isdigit():
        stmt = stmt.where(or_(BlogPost.id == int(id_or_slug), BlogPost.slug == id_or_slug))
    else:
        stmt = stmt.where(BlogPost.slug == id_or_slug)
    post = s.execute(stmt).scalars().first()
    if not post or (published_only and post.status != "published"):
        raise NotFoundError("Blog post not found.")
    return post


def posts_query(*, status: str | None = None, search: str | None = None) -> "Select":
    stmt = select(BlogPost)
    if status:
        stmt = stmt.where(BlogPost.status == status)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(BlogPost.title.ilike(like), BlogPost.excerpt.ilike(like), BlogPost.content.ilike(like)))
    return stmt.order_by(BlogPost.published_at.desc(), BlogPost.created_at.desc(), BlogPost.id.desc())


def update_post(s: "Session", post: BlogPost, payload: dict, actor: User, cover: FileStorage | None = None) -> BlogPost:
    changed: list[str] = []
    if "title" in payload:
        title = strip_tags(payload.get("title"))
        if not title:
            raise BadRequestError("Title must not be empty.")
        post.title = title
        changed.append("title")
    if "content" in payload:
        content = sanitize_html(payload.get("content"))
        if not content:
            raise BadRequestError("Content must not be empty.")
        post.content = content
        changed.append("content")
    if "excerpt" in payload:
        post.excerpt = strip_tags(payload.get("excerpt")) or None
        changed.append("excerpt")
    if (payload.get("slug") or "").strip():
        slug = slugify(payload["slug"])
        if not slug:
            raise BadRequestError("Invalid slug.")
        if _slug_taken(s, slug, exclude_id=post.id):
            raise ConflictError("Slug already exists.")
        post.slug = slug
        changed.append("slug")
    if "status" in payload:
        status = _status(payload.get("status"))
        # published_at keeps the first publication date
        if status == "published" and post.published_at is None:
            post.published_at = datetime.utcnow()
        post.status = status
        changed.append("status")

    meta = store_upload(cover, BLOG_COVER, required=False)
    if meta:
        old_key = post.cover_image_key
        post.cover_image_key = meta["storageKey"]
        post.cover_image_metadata = meta
        discard_upload(old_key)
        changed.append("coverImage")

    post.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="BLOG_UPDATE", target_type="BlogPost", target_id=post.id, metadata={"fields": changed})
    return post


def delete_post(s: "Session", post: BlogPost, actor: User) -> None:
    record_event(s, actor=actor, action="BLOG_DELETE", target_type="BlogPost", target_id=post.id, metadata={"title": post.title})
    key = post.cover_image_key
    s.delete(post)
    s.flush()
    discard_upload(key)


def post_to_dict(post: BlogPost, *, include_content: bool = True) -> dict[str, Any]:
    a = post.author
    d = {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "excerpt": post.excerpt,
        "status": post.status,
        "coverImageUrl": public_url(post.cover_image_key),
        "author": {"id": a.id, "firstName": a.first_name, "lastName": a.last_name} if a else None,
        "publishedAt": iso(post.published_at),
        "createdAt": iso(post.created_at),
        "updatedAt": iso(post.updated_at),
    }
    if include_content:
        d["content"] = post.content
    return d
