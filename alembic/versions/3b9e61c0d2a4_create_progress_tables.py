"""create progress tracking tables

Revision ID: 3b9e61c0d2a4
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e61c0d2a4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
    )
    op.create_table(
        "enrollments",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("course_id", sa.String(length=255), nullable=False),
        sa.Column("progress_percent", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("enrolled_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("current_lesson_id", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("user_id", "course_id"),
    )
    op.create_table(
        "enrollment_lessons",
        sa.Column(
            "enrollment_id",
            sa.String(length=64),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("lesson_id", sa.String(length=255), primary_key=True),
        sa.Column("completed_at", sa.Integer(), nullable=False),
    )
    op.create_table(
        "lesson_progress",
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("course_id", sa.String(length=255), primary_key=True),
        sa.Column("lesson_id", sa.String(length=255), primary_key=True),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("position_seconds", sa.Integer(), nullable=False),
        sa.Column("duration_percent", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.Integer(), nullable=False),
    )
    op.create_table(
        "certificates",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("course_id", sa.String(length=255), nullable=False),
        sa.Column("issued_at", sa.Integer(), nullable=False),
        sa.Column("certificate_number", sa.String(length=32), nullable=False),
        sa.Column("verification_code", sa.String(length=32), nullable=False),
        sa.Column("student_name", sa.String(length=255), nullable=False),
        sa.Column("course_name", sa.String(length=500), nullable=False),
        sa.Column("instructor_name", sa.String(length=255), nullable=False),
        sa.Column("grade", sa.String(length=32), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("completion_time_hours", sa.Integer(), nullable=False),
        sa.Column("achievements", postgresql.ARRAY(sa.String()), nullable=False),
        sa.Column("is_valid", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("certificate_number"),
        sa.UniqueConstraint("user_id", "course_id"),
    )


def downgrade() -> None:
    op.drop_table("certificates")
    op.drop_table("lesson_progress")
    op.drop_table("enrollment_lessons")
    op.drop_table("enrollments")
    op.drop_table("users")
