"""add exam_approvals and one in-progress attempt per user and exam

Revision ID: b2d4f6a8c0e2
Revises: a1c3e5f7b9d0
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "b2d4f6a8c0e2"
down_revision: Union[str, Sequence[str], None] = "a1c3e5f7b9d0"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

IN_PROGRESS = sa.text("status = 'in-progress'")


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)

    idx_names = {ix.get("name") for ix in insp.get_indexes("exam_attempts")}
    if "uq_exam_attempts_in_progress" not in idx_names:
        op.create_index(
            "uq_exam_attempts_in_progress",
            "exam_attempts",
            ["user_id", "exam_id"],
            unique=True,
            postgresql_where=IN_PROGRESS,
            sqlite_where=IN_PROGRESS,
        )

    if "exam_approvals" not in insp.get_table_names():
        op.create_table(
            "exam_approvals",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("ambassador_id", sa.Integer(), nullable=False),
            sa.Column("association_id", sa.Integer(), nullable=False),
            sa.Column("current_rank", sa.String(64), nullable=False),
            sa.Column("next_rank", sa.String(64), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["ambassador_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["association_id"], ["associations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["approved_by_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("ambassador_id", "next_rank", name="uq_exam_approvals_ambassador_rank"),
        )
        op.create_index(
            "idx_exam_approvals_association_status", "exam_approvals", ["association_id", "status"]
        )


def downgrade() -> None:
    op.drop_index("idx_exam_approvals_association_status", table_name="exam_approvals")
    op.drop_table("exam_approvals")
    op.drop_index("uq_exam_attempts_in_progress", table_name="exam_attempts")
