"""Pure reconciliation of the three progress views.

    local        completed set in the client cache
    remote       per-lesson records in the progress store
    enrollment   completed set on the enrollment record

Reconciliation never removes a lesson from any view.  It computes the
union and reports, for each store, what must be added to reach it.
Nothing here awaits or performs I/O, so the orchestrator can apply the
result step by step and recover from a failed write on the next load.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from coursetrack.models.progress import LessonProgress


@dataclass(frozen=True, slots=True)
class EnrollmentPatch:
    lessons_to_mark: tuple[str, ...]
    progress_percent: int


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    merged: frozenset[str]
    remote_backfill: frozenset[str]
    enrollment_patch: EnrollmentPatch | None


def completion_percent(completed: Iterable[str], all_lessons: Sequence[str]) -> int:
    """Percent of the course completed, rounded half up.

    Lessons that are not part of the course are ignored.  A course with no
    lessons is at 0.
    """
    total = len(set(all_lessons))
    if total == 0:
        return 0
    done = len(set(completed) & set(all_lessons))
    return (200 * done + total) // (2 * total)


def is_course_complete(completed: Iterable[str], all_lessons: Sequence[str]) -> bool:
    if not all_lessons:
        return False
    return set(all_lessons) <= set(completed)


def reconcile(
    local: Iterable[str],
    remote: Iterable[LessonProgress],
    enrollment_lessons: Iterable[str] | None,
    all_lessons: Sequence[str],
    *,
    enrollment_percent: int | None = None,
) -> ReconcileResult:
    """Union local and remote completions and diff against each store.

    enrollment_lessons is None when the user is not enrolled, and no
    patch is produced.  When enrollment_percent is given and the
    enrollment already holds every merged lesson at that percent, the
    patch is None as well.
    """
    remote_completed = frozenset(p.lesson_id for p in remote if p.completed)
    merged = frozenset(local) | remote_completed
    remote_backfill = merged - remote_completed

    patch = None
    if enrollment_lessons is not None:
        on_enrollment = frozenset(enrollment_lessons)
        order = {lesson_id: i for i, lesson_id in enumerate(all_lessons)}
        lessons_to_mark = tuple(
            sorted(merged - on_enrollment, key=lambda l: (order.get(l, len(order)), l))
        )
        percent = completion_percent(merged | on_enrollment, all_lessons)
        if lessons_to_mark or percent != enrollment_percent:
            patch = EnrollmentPatch(
                lessons_to_mark=lessons_to_mark, progress_percent=percent
            )

    return ReconcileResult(
        merged=merged, remote_backfill=remote_backfill, enrollment_patch=patch
    )
