from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from app.raportal.modules.associations.models import Association


class Base(DeclarativeBase):
    pass


# JSONB on Postgres, plain JSON elsewhere (sqlite in dev/tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class UserRole(Base):
    __tablename__ = "user_roles"
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_association", "association_id"),
        Index("idx_users_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # e.g. "RA/OGBC/0001"; allocated from the counters table
    user_code: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)

    first_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    church: Mapped[str | None] = mapped_column(String(255), nullable=True)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_image: Mapped[str | None] = mapped_column(String(512), nullable=True)
    rank: Mapped[str] = mapped_column(String(64), nullable=False, default="Candidate")

    # active | inactive | suspended
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    association_id: Mapped[int | None] = mapped_column(
        ForeignKey("associations.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_current_president: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    roles: Mapped[list["Role"]] = relationship(
        secondary="user_roles",
        back_populates="users",
        lazy="selectin",
    )
    association: Mapped["Association | None"] = relationship(
        "Association",
        foreign_keys=[association_id],
        lazy="selectin",
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def role_keys(self) -> list[str]:
        return sorted(r.key for r in self.roles)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # e.g. "superadmin"
    name: Mapped[str] = mapped_column(String(128), nullable=False)  # display name
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    users: Mapped[list[User]] = relationship(secondary="user_roles", back_populates="roles", lazy="selectin")


class Counter(Base):
    """Named monotonically increasing sequence (user codes)."""

    __tablename__ = "counters"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class RefreshToken(Base):
    """
    Refresh tokens currently valid for a user. Only the SHA-256 digest is kept.
    Rotation deletes the presented row; a token without a row is rejected.
    """

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("idx_refresh_tokens_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_digest: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class AuditLog(Base):
    """
    Append-only audit trail of privileged actions.
    Rows are never updated or deleted by the application.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_logs_action", "action"),
        Index("idx_audit_logs_actor", "actor_id"),
        Index("idx_audit_logs_target", "target_type", "target_id"),
        Index("idx_audit_logs_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "PAYMENT_APPROVED"

    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(64), nullable=True)

    target_type: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "Payment"
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)  # string for flexibility ("system", ids)

    metadata_json: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.raportal.modules.associations.models import Association  # noqa: E402,F401,F811
from app.raportal.modules.exams.models import Exam, ExamAttempt, ExamResult, Question  # noqa: E402,F401
from app.raportal.modules.payments.models import Payment  # noqa: E402,F401
from app.raportal.modules.camps.models import Camp, CampRegistration  # noqa: E402,F401
from app.raportal.modules.notifications.models import Notification  # noqa: E402,F401
from app.raportal.modules.blog.models import BlogPost  # noqa: E402,F401
from app.raportal.modules.gallery.models import GalleryItem  # noqa: E402,F401
from app.raportal.modules.announcements.models import Announcement, AnnouncementRead  # noqa: E402,F401
from app.raportal.modules.public.models import CorporateAd, HomepageSection, MediaItem  # noqa: E402,F401
