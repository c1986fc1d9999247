from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.raportal.models import Base, JSONType, User


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payments_user", "user_id"),
        Index("idx_payments_status", "status"),
        Index("idx_payments_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # dues | exam | camp
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    reference_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Either an external URL or a stored file (receipt_storage_key + file_metadata)
    receipt_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    receipt_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_metadata: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending | approved | rejected
    verified_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    deleted_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship("User", foreign_keys=[user_id], lazy="selectin")
