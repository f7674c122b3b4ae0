from __future__ import annotations

from typing import Protocol

from coursetrack.models.course import Course, CourseModule, Lesson


class CourseCatalog(Protocol):
    async def get(self, course_id: str) -> Course | None: ...
    async def list_published(self) -> list[Course]: ...


class InMemoryCourseCatalog:
    """Catalog backed by a dict; course content itself is not stored here."""

    def __init__(self) -> None:
        self._by_id: dict[str, Course] = {}

    async def get(self, course_id: str) -> Course | None:
        return self._by_id.get(course_id)

    async def list_published(self) -> list[Course]:
        return [c for c in self._by_id.values() if c.status == "published"]

    def add(self, course: Course) -> None:
        if course.id in self._by_id:
            raise ValueError("course already exists")
        self._by_id[course.id] = course

    def is_empty(self) -> bool:
        return not self._by_id


def build_course(
    course_id: str,
    title: str,
    lessons_per_module: list[int],
    *,
    instructor_name: str = "Instructor",
    preview_modules: int = 0,
) -> Course:
    """Build a catalog entry with generated module and lesson ids.

    Lesson ids follow `{course_id}-m{n}-l{k}`; the first `preview_modules`
    modules are marked as preview.
    """
    modules = []
    for m_index, lesson_count in enumerate(lessons_per_module, start=1):
        module_id = f"{course_id}-m{m_index}"
        lessons = tuple(
            Lesson(
                id=f"{module_id}-l{l_index}",
                title=f"Lesson {m_index}.{l_index}",
                position=l_index,
                is_preview=m_index <= preview_modules,
            )
            for l_index in range(1, lesson_count + 1)
        )
        modules.append(
            CourseModule(
                id=module_id,
                title=f"Module {m_index}",
                position=m_index,
                lessons=lessons,
                is_preview=m_index <= preview_modules,
            )
        )
    return Course(
        id=course_id,
        slug=course_id,
        title=title,
        instructor_name=instructor_name,
        modules=tuple(modules),
    )


def seed_sample_courses(catalog: InMemoryCourseCatalog) -> None:
    """Seed the sample courses used in development and tests."""
    if catalog.is_empty():
        catalog.add(
            build_course(
                "python-basics",
                "Python Basics",
                [2, 3],
                instructor_name="Ada Lovelace",
                preview_modules=1,
            )
        )
        catalog.add(
            build_course(
                "prompt-engineering",
                "Prompt Engineering",
                [3, 3, 2],
                instructor_name="Grace Hopper",
            )
        )
