"""Server-side progress backfill for one learner.

Brings every enrollment of a user in line with the remote progress
store, outside any client session:

  1. union remote completed lessons into the enrollment
  2. recompute and store the percent
  3. complete the enrollment once every lesson is covered
  4. issue the completion certificate if a completed enrollment has none

Runs from the `progress_backfill` queue (see coursetrack.worker).  A
failure on one course is logged and reported in its outcome; the other
courses are still processed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from coursetrack.core.metrics import COMPLETION_SEQUENCES, LESSON_COMPLETIONS
from coursetrack.models.enrollment import Enrollment
from coursetrack.repos.course_repo import CourseCatalog
from coursetrack.repos.enrollment_repo import EnrollmentStore
from coursetrack.repos.progress_repo import RemoteProgressSource
from coursetrack.services.certificate_issuer import CertificateIssuer
from coursetrack.services.errors import ProgressError
from coursetrack.services.reconcile import is_course_complete, reconcile

logger = logging.getLogger(__name__)

BACKFILL_QUEUE = "progress_backfill"


@dataclass(frozen=True, slots=True)
class BackfillOutcome:
    course_id: str
    lessons_marked: int = 0
    progress_percent: int = 0
    completed: bool = False
    certificate_id: str | None = None
    error: str | None = None


async def sync_user_progress(
    user_id: str,
    *,
    progress: RemoteProgressSource,
    enrollments: EnrollmentStore,
    catalog: CourseCatalog,
    certificates: CertificateIssuer,
) -> list[BackfillOutcome]:
    outcomes = []
    for enrollment in await enrollments.list_user_enrollments(user_id):
        try:
            outcome = await _sync_enrollment(
                enrollment,
                progress=progress,
                enrollments=enrollments,
                catalog=catalog,
                certificates=certificates,
            )
        except ProgressError as e:
            logger.warning(
                "Backfill failed for course=%s: %s",
                enrollment.course_id,
                e.message,
                extra={"user_id": user_id, "course_id": enrollment.course_id},
            )
            outcome = BackfillOutcome(
                course_id=enrollment.course_id,
                progress_percent=enrollment.progress_percent,
                completed=enrollment.is_completed,
                error=e.code,
            )
        outcomes.append(outcome)

    logger.info(
        "Backfill finished user=%s courses=%d failed=%d",
        user_id,
        len(outcomes),
        sum(1 for o in outcomes if o.error is not None),
        extra={"user_id": user_id},
    )
    return outcomes


async def _sync_enrollment(
    enrollment: Enrollment,
    *,
    progress: RemoteProgressSource,
    enrollments: EnrollmentStore,
    catalog: CourseCatalog,
    certificates: CertificateIssuer,
) -> BackfillOutcome:
    user_id, course_id = enrollment.user_id, enrollment.course_id
    course = await catalog.get(course_id)
    if course is None:
        return BackfillOutcome(
            course_id=course_id,
            progress_percent=enrollment.progress_percent,
            completed=enrollment.is_completed,
            error="course_not_found",
        )
    all_lessons = course.lesson_ids()

    remote = await progress.get_course_progress(user_id, course_id)
    result = reconcile(
        (),
        remote,
        enrollment.completed_lessons,
        all_lessons,
        enrollment_percent=enrollment.progress_percent,
    )
    percent = enrollment.progress_percent
    marked = 0
    patch = result.enrollment_patch
    if patch is not None:
        for lesson_id in patch.lessons_to_mark:
            await enrollments.mark_lesson_completed(enrollment.id, lesson_id)
            marked += 1
        await enrollments.update_enrollment_progress(
            enrollment.id, patch.progress_percent
        )
        percent = patch.progress_percent
        if marked:
            LESSON_COMPLETIONS.labels(path="reconcile").inc(marked)

    completed = enrollment.is_completed
    if not completed and is_course_complete(
        result.merged | enrollment.completed_lessons, all_lessons
    ):
        COMPLETION_SEQUENCES.labels(trigger="backfill").inc()
        updated = await enrollments.complete_enrollment(user_id, course_id)
        completed = updated.is_completed

    certificate_id = None
    if completed:
        existing = await certificates.get_user_course_certificate(user_id, course_id)
        if existing is not None:
            certificate_id = existing.id
        else:
            certificate_id = (
                await certificates.generate_certificate_for_course_completion(
                    user_id, course_id
                )
            )

    return BackfillOutcome(
        course_id=course_id,
        lessons_marked=marked,
        progress_percent=percent,
        completed=completed,
        certificate_id=certificate_id,
    )
