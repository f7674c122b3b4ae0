from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from coursetrack.core.clock import utc_now_ts
from coursetrack.models.enrollment import STATUS_COMPLETED, Enrollment
from coursetrack.services.errors import (
    AlreadyEnrolledError,
    EnrollmentNotFoundError,
    NotEnrolledError,
)


class EnrollmentStore(Protocol):
    """Per (user, course) record of completed lessons, percent and status."""

    async def enroll(self, user_id: str, course_id: str) -> Enrollment: ...
    async def get_user_enrollment(
        self, user_id: str, course_id: str
    ) -> Enrollment | None: ...
    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None: ...
    async def list_user_enrollments(self, user_id: str) -> list[Enrollment]: ...
    async def mark_lesson_completed(
        self, enrollment_id: str, lesson_id: str
    ) -> None: ...
    async def update_enrollment_progress(
        self, enrollment_id: str, percent: int, last_lesson_id: str | None = None
    ) -> None: ...
    async def complete_enrollment(self, user_id: str, course_id: str) -> Enrollment: ...
    async def has_access_to_course(self, user_id: str, course_id: str) -> bool: ...


def clamp_percent(percent: int) -> int:
    return max(0, min(100, percent))


class InMemoryEnrollmentStore:
    def __init__(self) -> None:
        self._by_id: dict[str, Enrollment] = {}
        self._by_key: dict[tuple[str, str], str] = {}

    async def enroll(self, user_id: str, course_id: str) -> Enrollment:
        key = (user_id, course_id)
        if key in self._by_key:
            raise AlreadyEnrolledError(user_id, course_id)
        enrollment = Enrollment.new(
            user_id=user_id, course_id=course_id, enrolled_at=utc_now_ts()
        )
        self._by_id[enrollment.id] = enrollment
        self._by_key[key] = enrollment.id
        return enrollment

    async def get_user_enrollment(
        self, user_id: str, course_id: str
    ) -> Enrollment | None:
        enrollment_id = self._by_key.get((user_id, course_id))
        if enrollment_id is None:
            return None
        return self._by_id[enrollment_id]

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def list_user_enrollments(self, user_id: str) -> list[Enrollment]:
        return sorted(
            (e for e in self._by_id.values() if e.user_id == user_id),
            key=lambda e: e.enrolled_at,
            reverse=True,
        )

    async def mark_lesson_completed(self, enrollment_id: str, lesson_id: str) -> None:
        e = self._require(enrollment_id)
        if lesson_id in e.completed_lessons:
            return
        self._by_id[enrollment_id] = replace(
            e,
            completed_lessons=e.completed_lessons | {lesson_id},
            current_lesson_id=lesson_id,
        )

    async def update_enrollment_progress(
        self, enrollment_id: str, percent: int, last_lesson_id: str | None = None
    ) -> None:
        e = self._require(enrollment_id)
        self._by_id[enrollment_id] = replace(
            e,
            progress_percent=clamp_percent(percent),
            current_lesson_id=last_lesson_id or e.current_lesson_id,
        )

    async def complete_enrollment(self, user_id: str, course_id: str) -> Enrollment:
        e = await self.get_user_enrollment(user_id, course_id)
        if e is None:
            raise NotEnrolledError(user_id, course_id)
        if e.is_completed:
            return e
        updated = replace(e, status=STATUS_COMPLETED, completed_at=utc_now_ts())
        self._by_id[e.id] = updated
        return updated

    async def has_access_to_course(self, user_id: str, course_id: str) -> bool:
        return (user_id, course_id) in self._by_key

    def _require(self, enrollment_id: str) -> Enrollment:
        e = self._by_id.get(enrollment_id)
        if e is None:
            raise EnrollmentNotFoundError(enrollment_id)
        return e
