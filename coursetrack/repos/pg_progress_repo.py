"""PostgreSQL implementation of RemoteProgressSource."""

from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.core.clock import utc_now_ts
from coursetrack.db.engine import session_scope
from coursetrack.db.tables import LessonProgressRow
from coursetrack.models.progress import LessonProgress


class PgProgressSource:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> list[LessonProgress]:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.course_id == course_id,
        )
        async with session_scope(self._sessions, "get_course_progress") as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_progress(r) for r in rows]

    async def save_progress(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        position_seconds: int,
        duration_percent: int,
        completed: bool,
    ) -> None:
        position = max(0, position_seconds)
        percent = max(0, min(100, duration_percent))
        now = utc_now_ts()
        stmt = insert(LessonProgressRow).values(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            completed=completed,
            position_seconds=position,
            duration_percent=percent,
            updated_at=now,
        )
        # completed is sticky: OR the stored flag with the incoming one
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                LessonProgressRow.user_id,
                LessonProgressRow.course_id,
                LessonProgressRow.lesson_id,
            ],
            set_={
                "completed": or_(LessonProgressRow.completed, stmt.excluded.completed),
                "position_seconds": position,
                "duration_percent": percent,
                "updated_at": now,
            },
        )
        async with session_scope(self._sessions, "save_progress") as session:
            await session.execute(stmt)


def _row_to_progress(row: LessonProgressRow) -> LessonProgress:
    return LessonProgress(
        user_id=row.user_id,
        course_id=row.course_id,
        lesson_id=row.lesson_id,
        completed=row.completed,
        position_seconds=row.position_seconds,
        duration_percent=row.duration_percent,
        updated_at=row.updated_at,
    )
