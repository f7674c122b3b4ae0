from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Lesson:
    id: str
    title: str
    position: int
    is_preview: bool = False


@dataclass(frozen=True, slots=True)
class CourseModule:
    id: str
    title: str
    position: int
    lessons: tuple[Lesson, ...] = ()
    is_preview: bool = False


@dataclass(frozen=True, slots=True)
class Course:
    """Catalog read model; content itself lives in the content service."""

    id: str
    slug: str
    title: str
    instructor_name: str = "Instructor"
    status: str = "published"  # draft|published|retired
    modules: tuple[CourseModule, ...] = ()

    def lesson_ids(self) -> tuple[str, ...]:
        """All lesson ids in course order (module position, then lesson)."""
        return tuple(
            lesson.id
            for module in sorted(self.modules, key=lambda m: m.position)
            for lesson in sorted(module.lessons, key=lambda l: l.position)
        )

    def preview_lesson_ids(self) -> tuple[str, ...]:
        """Lessons visible without an enrollment (preview modules only)."""
        return tuple(
            lesson.id
            for module in sorted(self.modules, key=lambda m: m.position)
            if module.is_preview
            for lesson in sorted(module.lessons, key=lambda l: l.position)
        )
