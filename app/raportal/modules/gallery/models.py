from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.raportal.models import Base, JSONType


class GalleryItem(Base):
    __tablename__ = "gallery_items"
    __table_args__ = (
        Index("idx_gallery_items_event_tag", "event_tag"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_tag: Mapped[str] = mapped_column(String(128), nullable=False)
    image_key: Mapped[str] = mapped_column(Text, nullable=False)
    file_metadata: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    uploaded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    upload_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
