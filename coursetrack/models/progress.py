from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """Remote per-lesson video/activity progress for (user, course, lesson)."""

    user_id: str
    course_id: str
    lesson_id: str
    completed: bool = False
    position_seconds: int = 0
    duration_percent: int = 0
    updated_at: int | None = None


@dataclass(frozen=True, slots=True)
class LocalCacheEntry:
    """Client-side mirror for one course: completed lessons and saved code."""

    course_id: str
    completed_lessons: frozenset[str] = frozenset()
    saved_code: dict[str, str] = field(default_factory=dict)
