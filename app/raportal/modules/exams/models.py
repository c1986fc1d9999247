from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.raportal.models import Base, JSONType, User

ATTEMPT_IN_PROGRESS = "in-progress"
ATTEMPT_SUBMITTED = "submitted"
ATTEMPT_GRADED = "graded"
ATTEMPT_AUTO_SUBMITTED = "auto-submitted"


class Exam(Base):
    __tablename__ = "exams"
    __table_args__ = (
        Index("idx_exams_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_rank: Mapped[str | None] = mapped_column(String(64), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    pass_score: Mapped[float] = mapped_column(Float, nullable=False, default=50.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    questions: Mapped[list["Question"]] = relationship(
        "Question",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="Question.position",
        lazy="selectin",
    )


class Question(Base):
    __tablename__ = "exam_questions"
    __table_args__ = (
        Index("idx_exam_questions_exam", "exam_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    exam_id: Mapped[int] = mapped_column(ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    correct_answer: Mapped[int] = mapped_column(Integer, nullable=False)  # index into options
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    exam: Mapped[Exam] = relationship("Exam", back_populates="questions")


class ExamAttempt(Base):
    """
    One sitting of an exam. At most one attempt per (user, exam) is in progress;
    once it leaves in-progress it is never modified again.
    """

    __tablename__ = "exam_attempts"
    __table_args__ = (
        Index("idx_exam_attempts_user_exam", "user_id", "exam_id"),
        Index("idx_exam_attempts_status", "status"),
        Index(
            "uq_exam_attempts_in_progress",
            "user_id",
            "exam_id",
            unique=True,
            postgresql_where=text("status = 'in-progress'"),
            sqlite_where=text("status = 'in-progress'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    exam_id: Mapped[int] = mapped_column(ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)

    # question id (as string) -> selected option index
    answers: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=dict)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=ATTEMPT_IN_PROGRESS)
    late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)


class ExamResult(Base):
    __tablename__ = "exam_results"
    __table_args__ = (
        Index("idx_exam_results_user", "user_id"),
        Index("idx_exam_results_exam", "exam_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attempt_id: Mapped[int] = mapped_column(ForeignKey("exam_attempts.id", ondelete="CASCADE"), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    exam_id: Mapped[int] = mapped_column(ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)

    score: Mapped[float] = mapped_column(Float, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)

    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    exam: Mapped[Exam] = relationship("Exam", lazy="selectin")
    attempt: Mapped[ExamAttempt] = relationship("ExamAttempt", lazy="selectin")


class ExamApproval(Base):
    """An ambassador's request to be cleared for the next rank's exam."""

    __tablename__ = "exam_approvals"
    __table_args__ = (
        UniqueConstraint("ambassador_id", "next_rank", name="uq_exam_approvals_ambassador_rank"),
        Index("idx_exam_approvals_association_status", "association_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ambassador_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    association_id: Mapped[int] = mapped_column(ForeignKey("associations.id", ondelete="CASCADE"), nullable=False)
    current_rank: Mapped[str] = mapped_column(String(64), nullable=False)
    next_rank: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    ambassador: Mapped[User] = relationship("User", foreign_keys=[ambassador_id], lazy="selectin")
