"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in coursetrack/models/.
Repos convert between rows and dataclasses; nothing outside
coursetrack/repos/ touches a row object.

Identifiers coming from outside this service (user ids from the JWT
`sub`, course and lesson ids from the catalog) are opaque strings.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from coursetrack.db.engine import Base


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)


# --- Enrollment ---


class EnrollmentRow(Base):
    __tablename__ = "enrollments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    course_id: Mapped[str] = mapped_column(String(255), nullable=False)
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active"
    )  # active|completed
    enrolled_at: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_lesson_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (UniqueConstraint("user_id", "course_id"),)


class EnrollmentLessonRow(Base):
    """Completed-lesson set of an enrollment, one row per lesson."""

    __tablename__ = "enrollment_lessons"

    enrollment_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("enrollments.id", ondelete="CASCADE"), primary_key=True
    )
    lesson_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    completed_at: Mapped[int] = mapped_column(Integer, nullable=False)


# --- Per-lesson progress (video/activity) ---


class LessonProgressRow(Base):
    __tablename__ = "lesson_progress"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    lesson_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)


# --- Certificates ---


class CertificateRow(Base):
    __tablename__ = "certificates"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    course_id: Mapped[str] = mapped_column(String(255), nullable=False)
    issued_at: Mapped[int] = mapped_column(Integer, nullable=False)
    certificate_number: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False
    )
    verification_code: Mapped[str] = mapped_column(String(32), nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    course_name: Mapped[str] = mapped_column(String(500), nullable=False)
    instructor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    grade: Mapped[str] = mapped_column(String(32), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    completion_time_hours: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    achievements: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=[]
    )
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # At most one certificate per learner per course.  Concurrent create
    # attempts from separate sessions collide here.
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)
