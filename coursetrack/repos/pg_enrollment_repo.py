"""PostgreSQL implementation of EnrollmentStore.

The completed-lesson set is a child table keyed by
(enrollment_id, lesson_id), so marking a lesson is a plain
INSERT ... ON CONFLICT DO NOTHING and concurrent marks of the same
lesson cannot duplicate it.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.core.clock import utc_now_ts
from coursetrack.db.engine import session_scope
from coursetrack.db.tables import EnrollmentLessonRow, EnrollmentRow
from coursetrack.models.enrollment import STATUS_ACTIVE, STATUS_COMPLETED, Enrollment
from coursetrack.repos.enrollment_repo import clamp_percent
from coursetrack.services.errors import (
    AlreadyEnrolledError,
    EnrollmentNotFoundError,
    NotEnrolledError,
    TransientSyncError,
)

logger = logging.getLogger(__name__)


class PgEnrollmentStore:
    """Satisfies the EnrollmentStore Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def enroll(self, user_id: str, course_id: str) -> Enrollment:
        enrollment = Enrollment.new(
            user_id=user_id, course_id=course_id, enrolled_at=utc_now_ts()
        )
        try:
            async with session_scope(self._sessions, "enroll") as session:
                session.add(
                    EnrollmentRow(
                        id=enrollment.id,
                        user_id=user_id,
                        course_id=course_id,
                        progress_percent=0,
                        status=STATUS_ACTIVE,
                        enrolled_at=enrollment.enrolled_at,
                    )
                )
                await session.flush()
        except IntegrityError:
            raise AlreadyEnrolledError(user_id, course_id) from None
        return enrollment

    async def get_user_enrollment(
        self, user_id: str, course_id: str
    ) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id
        )
        async with session_scope(self._sessions, "get_user_enrollment") as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            return await _load(session, row)

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        async with session_scope(self._sessions, "get_enrollment") as session:
            row = await session.get(EnrollmentRow, enrollment_id)
            if row is None:
                return None
            return await _load(session, row)

    async def list_user_enrollments(self, user_id: str) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.user_id == user_id)
            .order_by(EnrollmentRow.enrolled_at.desc())
        )
        async with session_scope(self._sessions, "list_user_enrollments") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [await _load(session, r) for r in rows]

    async def mark_lesson_completed(self, enrollment_id: str, lesson_id: str) -> None:
        async with session_scope(self._sessions, "mark_lesson_completed") as session:
            row = await session.get(EnrollmentRow, enrollment_id)
            if row is None:
                raise EnrollmentNotFoundError(enrollment_id)
            result = await session.execute(
                insert(EnrollmentLessonRow)
                .values(
                    enrollment_id=enrollment_id,
                    lesson_id=lesson_id,
                    completed_at=utc_now_ts(),
                )
                .on_conflict_do_nothing(
                    index_elements=[
                        EnrollmentLessonRow.enrollment_id,
                        EnrollmentLessonRow.lesson_id,
                    ]
                )
            )
            if result.rowcount:
                row.current_lesson_id = lesson_id

    async def update_enrollment_progress(
        self, enrollment_id: str, percent: int, last_lesson_id: str | None = None
    ) -> None:
        values: dict[str, object] = {"progress_percent": clamp_percent(percent)}
        if last_lesson_id:
            values["current_lesson_id"] = last_lesson_id
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(**values)
        )
        async with session_scope(
            self._sessions, "update_enrollment_progress"
        ) as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise EnrollmentNotFoundError(enrollment_id)

    async def complete_enrollment(self, user_id: str, course_id: str) -> Enrollment:
        # Conditional update: only the first caller flips the status and
        # stamps completed_at; later callers see the terminal row as-is.
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.user_id == user_id,
                EnrollmentRow.course_id == course_id,
                EnrollmentRow.status != STATUS_COMPLETED,
            )
            .values(status=STATUS_COMPLETED, completed_at=utc_now_ts())
        )
        async with session_scope(self._sessions, "complete_enrollment") as session:
            result = await session.execute(stmt)
            if result.rowcount:
                logger.info(
                    "Enrollment completed user=%s course=%s",
                    user_id,
                    course_id,
                    extra={"user_id": user_id, "course_id": course_id},
                )
        enrollment = await self.get_user_enrollment(user_id, course_id)
        if enrollment is None:
            raise NotEnrolledError(user_id, course_id)
        return enrollment

    async def has_access_to_course(self, user_id: str, course_id: str) -> bool:
        try:
            return await self.get_user_enrollment(user_id, course_id) is not None
        except TransientSyncError:
            logger.warning(
                "Access check failed, denying user=%s course=%s", user_id, course_id
            )
            return False


async def _load(session: AsyncSession, row: EnrollmentRow) -> Enrollment:
    lessons = (
        await session.execute(
            select(EnrollmentLessonRow.lesson_id).where(
                EnrollmentLessonRow.enrollment_id == row.id
            )
        )
    ).scalars()
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        enrolled_at=row.enrolled_at,
        completed_lessons=frozenset(lessons),
        progress_percent=row.progress_percent,
        status=row.status,
        completed_at=row.completed_at,
        current_lesson_id=row.current_lesson_id,
    )
