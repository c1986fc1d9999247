"""Blog, gallery, announcements and the public homepage, ads and media surfaces."""
import io
from datetime import datetime, timedelta

import pytest

from app.raportal import create_app
from app.raportal.auth import _login_attempts
from app.raportal.db import session_scope
from app.raportal.models import AuditLog, Base
from app.raportal.modules.associations.service import find_by_name, seed_reference_data
from app.raportal.modules.users.service import create_user
from app.raportal.security import ACCESS, access_token_ttl, create_token

ASSOC_A = "Abeokuta Baptist Association"
ASSOC_B = "Egba Baptist Association"
PNG = b"\x89PNG\r\n\x1a\nfake-image-bytes"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("SEED_ON_START", raising=False)
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    _login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        seed_reference_data(s)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _make_user(app, email, role, association=ASSOC_A):
    with app.app_context(), session_scope(app) as s:
        assoc = find_by_name(s, association)
        u = create_user(
            s,
            email=email,
            password="secret123",
            first_name="Test",
            last_name=role.title(),
            role_key=role,
            association_id=assoc.id,
        )
        token, _ = create_token(u, ACCESS, access_token_ttl())
        uid = u.id
    return uid, {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin(app):
    return _make_user(app, "admin@example.com", "superadmin")[1]


# ---------- Blog ----------

def test_blog_slug_from_title_gets_suffix_on_collision(client, admin):
    r1 = client.post("/api/blog", json={"title": "Camp Recap!", "content": "<p>Great</p>", "status": "published"}, headers=admin)
    r2 = client.post("/api/blog", json={"title": "Camp Recap", "content": "<p>Again</p>"}, headers=admin)
    assert r1.status_code == 201 and r2.status_code == 201
    assert r1.json["slug"] == "camp-recap"
    assert r2.json["slug"].startswith("camp-recap-")
    assert r1.json["publishedAt"] and r2.json["publishedAt"] is None


def test_blog_explicit_slug_conflicts(client, admin):
    client.post("/api/blog", json={"title": "One", "slug": "news", "content": "x"}, headers=admin)
    r = client.post("/api/blog", json={"title": "Two", "slug": "news", "content": "y"}, headers=admin)
    assert r.status_code == 409


def test_blog_content_is_sanitised(client, admin):
    r = client.post(
        "/api/blog",
        json={"title": "<b>Hello</b>", "content": '<p onclick="x()">Hi</p><script>alert(1)</script>'},
        headers=admin,
    )
    assert r.json["title"] == "Hello"
    assert "<script" not in r.json["content"]
    assert "onclick" not in r.json["content"]
    assert "<p>Hi</p>" in r.json["content"]


def test_blog_drafts_hidden_from_public(client, admin):
    draft = client.post("/api/blog", json={"title": "Draft", "content": "d"}, headers=admin).json
    pub = client.post("/api/blog", json={"title": "Live", "content": "l", "status": "published"}, headers=admin).json

    listing = client.get("/api/blog").json
    assert [p["slug"] for p in listing["items"]] == ["live"]
    assert "content" not in listing["items"][0]
    assert client.get(f"/api/blog/{draft['slug']}").status_code == 404
    assert client.get(f"/api/blog/{pub['slug']}").json["content"] == "l"
    assert client.get("/api/blog?status=draft", headers=admin).json["total"] == 1


def test_blog_publish_keeps_first_date(client, admin):
    post = client.post("/api/blog", json={"title": "Later", "content": "c"}, headers=admin).json
    first = client.patch(f"/api/blog/{post['id']}", json={"status": "published"}, headers=admin).json["publishedAt"]
    client.patch(f"/api/blog/{post['id']}", json={"status": "draft"}, headers=admin)
    again = client.patch(f"/api/blog/{post['id']}", json={"status": "published"}, headers=admin).json["publishedAt"]
    assert first and again == first


def test_blog_cover_is_public_and_delete_audited(client, app, admin):
    r = client.post(
        "/api/blog",
        data={"title": "With Cover", "content": "c", "status": "published", "coverImage": (io.BytesIO(PNG), "cover.png", "image/png")},
        headers=admin,
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    cover = r.json["coverImageUrl"]
    assert cover.startswith("/uploads/blog/")
    assert client.get(cover).data == PNG

    assert client.delete(f"/api/blog/{r.json['id']}", headers=admin).status_code == 200
    assert client.get(cover).status_code == 404
    with session_scope(app) as s:
        assert s.query(AuditLog).filter(AuditLog.action == "BLOG_DELETE").count() == 1


def test_blog_writes_need_superadmin(client, app):
    _, amb = _make_user(app, "amb@example.com", "ambassador")
    assert client.post("/api/blog", json={"title": "x", "content": "y"}, headers=amb).status_code == 403
    assert client.post("/api/blog", json={"title": "x", "content": "y"}).status_code == 401


# ---------- Gallery ----------

def _gallery(client, headers, title, tag):
    return client.post(
        "/api/gallery",
        data={"title": title, "eventTag": tag, "image": (io.BytesIO(PNG), "photo.png", "image/png")},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_gallery_tags_are_normalised_and_filterable(client, admin):
    assert _gallery(client, admin, "Opening", "Annual Camp 2026").status_code == 201
    assert _gallery(client, admin, "Closing", "annual camp  2026").status_code == 201
    assert _gallery(client, admin, "Retreat", "Retreat").status_code == 201

    assert client.get("/api/gallery/tags").json == ["annual-camp-2026", "retreat"]
    r = client.get("/api/gallery", query_string={"eventTag": "Annual Camp 2026"}).json
    assert r["total"] == 2
    assert {i["title"] for i in r["items"]} == {"Opening", "Closing"}


def test_gallery_requires_image(client, admin):
    r = client.post("/api/gallery", data={"title": "No image", "eventTag": "x"}, headers=admin, content_type="multipart/form-data")
    assert r.status_code == 400
    r = client.post(
        "/api/gallery",
        data={"title": "Wrong", "eventTag": "x", "image": (io.BytesIO(b"GIF89a"), "a.gif", "image/gif")},
        headers=admin,
        content_type="multipart/form-data",
    )
    assert r.status_code == 400


# ---------- Announcements ----------

def test_announcement_targeting_and_read_tracking(client, app, admin):
    _, amb_a = _make_user(app, "a@example.com", "ambassador")
    _, amb_b = _make_user(app, "b@example.com", "ambassador", association=ASSOC_B)
    with session_scope(app) as s:
        assoc_a = find_by_name(s, ASSOC_A).id

    g = client.post("/api/announcements", json={"title": "All", "content": "Hello all", "isGlobal": True}, headers=admin).json
    client.post("/api/announcements", json={"title": "A only", "content": "Hi A", "targetAssociationId": assoc_a}, headers=admin)
    client.post("/api/announcements", json={"title": "Leaders", "content": "Hi", "targetRoles": ["president"]}, headers=admin)
    past = (datetime.utcnow() - timedelta(days=1)).isoformat()
    client.post("/api/announcements", json={"title": "Old", "content": "x", "isGlobal": True, "expiresAt": past}, headers=admin)

    assert {a["title"] for a in client.get("/api/announcements/my", headers=amb_a).json} == {"All", "A only"}
    assert {a["title"] for a in client.get("/api/announcements/my", headers=amb_b).json} == {"All"}

    assert client.post(f"/api/announcements/{g['id']}/read", headers=amb_a).status_code == 200
    # marking twice is harmless
    assert client.post(f"/api/announcements/{g['id']}/read", headers=amb_a).status_code == 200
    assert {a["title"] for a in client.get("/api/announcements/my", headers=amb_a).json} == {"A only"}
    assert {a["title"] for a in client.get("/api/announcements/my", headers=amb_b).json} == {"All"}


def test_announcement_needs_a_target(client, admin):
    r = client.post("/api/announcements", json={"title": "Nobody", "content": "x"}, headers=admin)
    assert r.status_code == 400
    r = client.post("/api/announcements", json={"title": "Bad", "content": "x", "targetRoles": ["pastor"]}, headers=admin)
    assert r.status_code == 400


def test_president_announcement_is_scoped_to_own_association(client, app):
    _, pres = _make_user(app, "pres@example.com", "president")
    _, amb_b = _make_user(app, "b@example.com", "ambassador", association=ASSOC_B)
    r = client.post("/api/announcements", json={"title": "Meeting", "content": "Friday", "isGlobal": True}, headers=pres)
    assert r.status_code == 201
    assert r.json["isGlobal"] is False
    assert r.json["targetAssociationId"] is not None
    assert client.get("/api/announcements/my", headers=amb_b).json == []
    assert client.get("/api/announcements/admin/all", headers=pres).status_code == 403


def test_inactive_announcement_hidden(client, app, admin):
    _, amb = _make_user(app, "a@example.com", "ambassador")
    a = client.post("/api/announcements", json={"title": "Soon", "content": "x", "isGlobal": True}, headers=admin).json
    client.patch(f"/api/announcements/{a['id']}", json={"isActive": False}, headers=admin)
    assert client.get("/api/announcements/my", headers=amb).json == []
    assert client.delete(f"/api/announcements/{a['id']}", headers=admin).status_code == 200
    assert client.get("/api/announcements/admin/all", headers=admin).json == []


# ---------- Homepage, ads, media ----------

def test_homepage_sections_public_and_ordered(client, admin):
    client.post("/api/public/homepage", json={"key": "about", "title": "About", "content": "<p>RA</p>", "position": 2}, headers=admin)
    client.post("/api/public/homepage", json={"key": "hero", "title": "Welcome", "content": "<p>Hi</p>", "position": 1}, headers=admin)
    hidden = client.post(
        "/api/public/homepage", json={"key": "draft", "title": "Draft", "content": "x", "isActive": False}, headers=admin
    ).json

    assert [x["key"] for x in client.get("/api/public/homepage").json] == ["hero", "about"]
    assert len(client.get("/api/public/homepage/admin", headers=admin).json) == 3
    r = client.post("/api/public/homepage", json={"key": "hero", "title": "Dup", "content": "x"}, headers=admin)
    assert r.status_code == 409
    assert client.delete(f"/api/public/homepage/{hidden['id']}", headers=admin).status_code == 200


def test_active_ads_respect_window_and_placement(client, admin):
    now = datetime.utcnow()
    live = {
        "placement": "homepage",
        "clickUrl": "https://sponsor.example.com",
        "imageUrl": "https://cdn.example.com/ad.png",
        "startDate": (now - timedelta(days=1)).isoformat(),
        "expiryDate": (now + timedelta(days=1)).isoformat(),
    }
    assert client.post("/api/ads", json=live, headers=admin).status_code == 201
    expired = dict(live, startDate=(now - timedelta(days=5)).isoformat(), expiryDate=(now - timedelta(days=2)).isoformat())
    assert client.post("/api/ads", json=expired, headers=admin).status_code == 201
    assert client.post("/api/ads", json=dict(live, placement="dashboard"), headers=admin).status_code == 201

    assert len(client.get("/api/ads/active").json) == 2
    homepage = client.get("/api/ads/active?placement=homepage").json
    assert len(homepage) == 1
    assert homepage[0]["imageUrl"] == "https://cdn.example.com/ad.png"
    assert len(client.get("/api/ads", headers=admin).json) == 3


def test_ad_validation(client, admin):
    now = datetime.utcnow()
    base = {
        "placement": "homepage",
        "clickUrl": "https://sponsor.example.com",
        "startDate": now.isoformat(),
        "expiryDate": (now + timedelta(days=1)).isoformat(),
    }
    # neither an upload nor an image URL
    assert client.post("/api/ads", json=base, headers=admin).status_code == 400
    with_image = dict(base, imageUrl="https://cdn.example.com/ad.png")
    assert client.post("/api/ads", json=dict(with_image, placement="sidebar"), headers=admin).status_code == 400
    assert client.post("/api/ads", json=dict(with_image, clickUrl="javascript:alert(1)"), headers=admin).status_code == 400
    swapped = dict(with_image, startDate=base["expiryDate"], expiryDate=base["startDate"])
    assert client.post("/api/ads", json=swapped, headers=admin).status_code == 400


def test_media_listing_filters_type_and_inactive(client, admin):
    client.post("/api/media", json={"title": "Anthem", "type": "video", "url": "https://video.example.com/1"}, headers=admin)
    client.post("/api/media", json={"title": "Handbook", "type": "document", "url": "https://docs.example.com/h.pdf"}, headers=admin)
    off = client.post(
        "/api/media", json={"title": "Old", "type": "video", "url": "https://video.example.com/0", "isActive": False}, headers=admin
    ).json

    assert {m["title"] for m in client.get("/api/media").json} == {"Anthem", "Handbook"}
    assert [m["title"] for m in client.get("/api/media?type=video").json] == ["Anthem"]
    assert len(client.get("/api/media/all", headers=admin).json) == 3
    assert client.post("/api/media", json={"title": "X", "type": "podcast", "url": "https://x.example.com"}, headers=admin).status_code == 400
    assert client.delete(f"/api/media/{off['id']}", headers=admin).status_code == 200
