from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class Enrollment:
    """One learner's enrollment in one course.

    `completed_lessons` only ever grows.  `status` moves from active to
    completed once and stays there; `completed_at` is stamped on that
    transition.
    """

    id: str
    user_id: str
    course_id: str
    enrolled_at: int
    completed_lessons: frozenset[str] = frozenset()
    progress_percent: int = 0
    status: str = STATUS_ACTIVE  # active|completed
    completed_at: int | None = None
    current_lesson_id: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @staticmethod
    def new(*, user_id: str, course_id: str, enrolled_at: int) -> Enrollment:
        return Enrollment(
            id=str(uuid4()),
            user_id=user_id,
            course_id=course_id,
            enrolled_at=enrolled_at,
        )
