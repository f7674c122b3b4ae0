from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from coursetrack.core.clock import utc_now_ts
from coursetrack.models.progress import LessonProgress


class RemoteProgressSource(Protocol):
    """Authoritative per-lesson progress keyed by (user, course, lesson)."""

    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> list[LessonProgress]: ...

    async def save_progress(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        position_seconds: int,
        duration_percent: int,
        completed: bool,
    ) -> None: ...


def merge_progress(
    existing: LessonProgress | None,
    *,
    user_id: str,
    course_id: str,
    lesson_id: str,
    position_seconds: int,
    duration_percent: int,
    completed: bool,
    now: int,
) -> LessonProgress:
    """Apply a save on top of the stored record.

    `completed` is sticky: a later save with completed=False (a learner
    re-watching a finished video) never clears it.
    """
    if existing is None:
        return LessonProgress(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            completed=completed,
            position_seconds=max(0, position_seconds),
            duration_percent=max(0, min(100, duration_percent)),
            updated_at=now,
        )
    return replace(
        existing,
        completed=existing.completed or completed,
        position_seconds=max(0, position_seconds),
        duration_percent=max(0, min(100, duration_percent)),
        updated_at=now,
    )


class InMemoryProgressSource:
    def __init__(self) -> None:
        self._store: dict[tuple[str, str, str], LessonProgress] = {}

    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> list[LessonProgress]:
        return [
            p
            for (uid, cid, _), p in self._store.items()
            if uid == user_id and cid == course_id
        ]

    async def save_progress(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        position_seconds: int,
        duration_percent: int,
        completed: bool,
    ) -> None:
        key = (user_id, course_id, lesson_id)
        self._store[key] = merge_progress(
            self._store.get(key),
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            position_seconds=position_seconds,
            duration_percent=duration_percent,
            completed=completed,
            now=utc_now_ts(),
        )
