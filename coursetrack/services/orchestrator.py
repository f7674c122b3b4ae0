"""Per-session progress orchestration for one (user, course).

A course session has three views of completion: the local cache, the
remote per-lesson progress store and the enrollment record.  This
module keeps them converging and decides when the course is done.

ENTRY POINTS
-------------
  on_course_entered()         load path: adopt an existing certificate,
                              or reconcile all three views and complete
                              the course if the merged set covers it
  on_lesson_completed(id)     user action: record locally, push to both
                              remote stores, complete if this was the
                              last lesson
  on_certificate_requested()  manual issuance with richer metadata
  save_code(...)              local only
  close()                     teardown

STATE MACHINE
--------------
    idle -> loading -> reconciled -> active
                                  -> completion_pending
                                  -> completed -> certificate_issuing
                                                   -> certificate_issued
                                                   -> certificate_failed

  certificate_revoked is terminal: the course was completed and its
  certificate revoked.  Neither the load path nor the completion sequence
  reissues it.

  completion_pending means every lesson is complete locally but the
  remote writes did not all land.  The completion sequence is left to
  the next load, which backfills the remote stores first.

EXACTLY ONCE PER SESSION
-------------------------
Every await is a point where another handler may run.  The completion
predicate is evaluated and `has_checked_completion` is flipped in the
same synchronous stretch, before the first await of the completion
sequence, so two handlers finishing together cannot both start it.
Two sessions (two tabs) racing each other are resolved below us by
CertificateRepo.insert_if_absent.

FAILURES
---------
Collaborators raise TransientSyncError for anything network- or
storage-shaped.  It is logged, counted, and the session carries on with
the local cache as the source of truth for the UI.  No failure here is
fatal to a session.  Only the manual certificate path surfaces an error
(CertificateGenerationError) so the UI can offer a retry.

After close() in-flight awaits are allowed to finish, but nothing they
return is applied to the session and no events are emitted.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Sequence

from coursetrack.core.metrics import (
    COMPLETION_SEQUENCES,
    LESSON_COMPLETIONS,
    PROGRESS_SYNC_FAILURES,
)
from coursetrack.models.certificate import Certificate, CertificateParams
from coursetrack.models.enrollment import Enrollment
from coursetrack.models.session_events import (
    CompletionDetected,
    ProgressUpdated,
    SessionEvent,
)
from coursetrack.repos.course_repo import CourseCatalog
from coursetrack.repos.enrollment_repo import EnrollmentStore
from coursetrack.repos.progress_repo import RemoteProgressSource
from coursetrack.services.certificate_issuer import CertificateIssuer
from coursetrack.services.errors import (
    CertificateGenerationError,
    CourseNotFoundError,
    EnrollmentNotFoundError,
    NotEnrolledError,
    TransientSyncError,
)
from coursetrack.services.local_cache import LocalProgressCache
from coursetrack.services.reconcile import (
    completion_percent,
    is_course_complete,
    reconcile,
)

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionEvent], None]


class SessionState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    RECONCILED = "reconciled"
    ACTIVE = "active"
    COMPLETION_PENDING = "completion_pending"
    COMPLETED = "completed"
    CERTIFICATE_ISSUING = "certificate_issuing"
    CERTIFICATE_ISSUED = "certificate_issued"
    CERTIFICATE_FAILED = "certificate_failed"
    CERTIFICATE_REVOKED = "certificate_revoked"


class ProgressOrchestrator:
    def __init__(
        self,
        *,
        user_id: str,
        course_id: str,
        all_lessons: Sequence[str],
        local: LocalProgressCache,
        progress: RemoteProgressSource,
        enrollments: EnrollmentStore,
        certificates: CertificateIssuer,
        listener: SessionListener | None = None,
    ) -> None:
        self.user_id = user_id
        self.course_id = course_id
        self.all_lessons = tuple(all_lessons)
        self._local = local
        self._progress = progress
        self._enrollments = enrollments
        self._certificates = certificates
        self._listener = listener

        self._state = SessionState.IDLE
        self._percent = completion_percent(self.completed_lessons, self.all_lessons)
        self._enrollment: Enrollment | None = None
        self._certificate: Certificate | None = None
        self._has_checked_completion = False
        self._closed = False

    # -- read-only view for the UI ------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def progress_percent(self) -> int:
        return self._percent

    @property
    def completed_lessons(self) -> frozenset[str]:
        return self._local.get(self.course_id).completed_lessons

    @property
    def saved_code(self) -> dict[str, str]:
        return self._local.get(self.course_id).saved_code

    @property
    def certificate(self) -> Certificate | None:
        return self._certificate

    @property
    def enrollment(self) -> Enrollment | None:
        return self._enrollment

    @property
    def has_checked_completion(self) -> bool:
        return self._has_checked_completion

    @property
    def closed(self) -> bool:
        return self._closed

    # -- load path --------------------------------------------------------------

    async def on_course_entered(self) -> None:
        if self._closed:
            return
        self._set_state(SessionState.LOADING)

        try:
            existing = await self._certificates.get_user_course_certificate(
                self.user_id, self.course_id, include_revoked=True
            )
        except TransientSyncError as e:
            self._sync_failed(e)
            existing = None
        if self._closed:
            return
        if existing is not None and not existing.is_valid:
            self._has_checked_completion = True
            self._certificate = existing
            self._set_state(SessionState.CERTIFICATE_REVOKED)
            logger.info(
                "Certificate revoked, completion not re-run id=%s",
                existing.id,
                extra=self._log_extra(certificate_id=existing.id),
            )
            return
        if existing is not None:
            self._has_checked_completion = True
            self._certificate = existing
            self._set_state(SessionState.CERTIFICATE_ISSUED)
            logger.info(
                "Existing certificate adopted id=%s",
                existing.id,
                extra=self._log_extra(certificate_id=existing.id),
            )
            return

        try:
            remote = await self._progress.get_course_progress(
                self.user_id, self.course_id
            )
        except TransientSyncError as e:
            self._sync_failed(e)
            remote = None
        if self._closed:
            return

        try:
            enrollment = await self._enrollments.get_user_enrollment(
                self.user_id, self.course_id
            )
        except TransientSyncError as e:
            self._sync_failed(e)
            enrollment = None
        if self._closed:
            return
        self._enrollment = enrollment

        before = self.completed_lessons
        result = reconcile(
            before,
            remote or (),
            enrollment.completed_lessons if enrollment is not None else None,
            self.all_lessons,
            enrollment_percent=(
                enrollment.progress_percent if enrollment is not None else None
            ),
        )
        merged = self._local.merge_completed(self.course_id, result.merged)
        gained = len(merged - before)
        if gained:
            LESSON_COMPLETIONS.labels(path="reconcile").inc(gained)
        self._set_state(SessionState.RECONCILED)
        self._set_percent(completion_percent(merged, self.all_lessons))

        # Without the remote view every local lesson looks missing remotely.
        synced = False
        if remote is not None:
            synced = await self._backfill_remote(result.remote_backfill)
        if self._closed:
            return

        if enrollment is None:
            logger.info(
                "Not enrolled, skipping completion checks",
                extra=self._log_extra(),
            )
            self._set_state(SessionState.ACTIVE)
            return

        patch = result.enrollment_patch
        if patch is not None:
            try:
                for lesson_id in patch.lessons_to_mark:
                    await self._enrollments.mark_lesson_completed(
                        enrollment.id, lesson_id
                    )
                await self._enrollments.update_enrollment_progress(
                    enrollment.id, patch.progress_percent
                )
            except TransientSyncError as e:
                self._sync_failed(e)
                synced = False
            except EnrollmentNotFoundError:
                self._enrollment = None
                self._set_state(SessionState.ACTIVE)
                return
        if self._closed:
            return

        await self._evaluate_completion(
            is_new_completion=False, trigger="load", synced=synced
        )

    async def _backfill_remote(self, lesson_ids: frozenset[str]) -> bool:
        """Re-save completions the remote store is missing."""
        synced = True
        order = {l: i for i, l in enumerate(self.all_lessons)}
        ordered = sorted(lesson_ids, key=lambda l: (order.get(l, len(order)), l))
        for lesson_id in ordered:
            try:
                await self._progress.save_progress(
                    self.user_id, self.course_id, lesson_id, 0, 100, True
                )
            except TransientSyncError as e:
                self._sync_failed(e, lesson_id=lesson_id)
                synced = False
        return synced

    # -- user action path ----------------------------------------------------

    async def on_lesson_completed(self, lesson_id: str) -> bool:
        """Record a lesson as complete; False if it already was."""
        if self._closed:
            return False
        if not self._local.mark_complete(self.course_id, lesson_id):
            return False
        LESSON_COMPLETIONS.labels(path="user_action").inc()
        percent = completion_percent(self.completed_lessons, self.all_lessons)
        self._set_percent(percent)

        synced = True
        try:
            await self._progress.save_progress(
                self.user_id, self.course_id, lesson_id, 0, 100, True
            )
        except TransientSyncError as e:
            self._sync_failed(e, lesson_id=lesson_id)
            synced = False

        try:
            enrollment = self._enrollment
            if enrollment is None:
                enrollment = await self._enrollments.get_user_enrollment(
                    self.user_id, self.course_id
                )
                if enrollment is None:
                    raise NotEnrolledError(self.user_id, self.course_id)
                if not self._closed:
                    self._enrollment = enrollment
            await self._enrollments.mark_lesson_completed(enrollment.id, lesson_id)
            # Recomputed: other handlers may have added lessons meanwhile.
            await self._enrollments.update_enrollment_progress(
                enrollment.id,
                completion_percent(self.completed_lessons, self.all_lessons),
                last_lesson_id=lesson_id,
            )
        except TransientSyncError as e:
            self._sync_failed(e, lesson_id=lesson_id)
            synced = False
        except (NotEnrolledError, EnrollmentNotFoundError):
            logger.info(
                "Lesson recorded locally only, not enrolled",
                extra=self._log_extra(lesson_id=lesson_id),
            )
            if not self._closed:
                self._enrollment = None
                self._set_state(SessionState.ACTIVE)
            return True
        if self._closed:
            return True

        await self._evaluate_completion(
            is_new_completion=True, trigger="user_action", synced=synced
        )
        return True

    # -- completion ----------------------------------------------------------

    async def _evaluate_completion(
        self, *, is_new_completion: bool, trigger: str, synced: bool
    ) -> None:
        # Predicate check and guard flip run without an await in between.
        if not is_course_complete(self.completed_lessons, self.all_lessons):
            if self._state not in _TERMINAL_STATES:
                self._set_state(SessionState.ACTIVE)
            return
        if self._has_checked_completion:
            return
        if not synced:
            self._set_state(SessionState.COMPLETION_PENDING)
            return
        self._has_checked_completion = True
        await self._run_completion_sequence(is_new_completion, trigger)

    async def _run_completion_sequence(
        self, is_new_completion: bool, trigger: str
    ) -> None:
        COMPLETION_SEQUENCES.labels(trigger=trigger).inc()
        logger.info(
            "Course completion detected trigger=%s new=%s",
            trigger,
            is_new_completion,
            extra=self._log_extra(),
        )
        try:
            enrollment = await self._enrollments.complete_enrollment(
                self.user_id, self.course_id
            )
        except TransientSyncError as e:
            self._sync_failed(e)
            self._set_state(SessionState.COMPLETION_PENDING)
            return
        except NotEnrolledError:
            self._set_state(SessionState.ACTIVE)
            return
        if self._closed:
            return
        self._enrollment = enrollment
        self._set_state(SessionState.COMPLETED)

        self._set_state(SessionState.CERTIFICATE_ISSUING)
        self._emit(
            CompletionDetected(
                certificate=None, issuing=True, is_new_completion=is_new_completion
            )
        )

        certificate: Certificate | None = None
        try:
            certificate = await self._certificates.get_user_course_certificate(
                self.user_id, self.course_id, include_revoked=True
            )
            if certificate is None:
                issuer = self._certificates
                certificate_id = (
                    await issuer.generate_certificate_for_course_completion(
                        self.user_id, self.course_id
                    )
                )
                if certificate_id is not None:
                    certificate = await self._certificates.get_certificate_by_id(
                        certificate_id
                    )
        except TransientSyncError as e:
            self._sync_failed(e)
        except CertificateGenerationError as e:
            logger.warning(
                "Certificate generation failed: %s",
                e.message,
                extra=self._log_extra(),
            )
        if self._closed:
            return

        if certificate is None or not certificate.is_valid:
            if certificate is None:
                self._set_state(SessionState.CERTIFICATE_FAILED)
            else:
                self._certificate = certificate
                self._set_state(SessionState.CERTIFICATE_REVOKED)
            self._emit(
                CompletionDetected(
                    certificate=None, failed=True, is_new_completion=is_new_completion
                )
            )
            return

        self._certificate = certificate
        self._set_state(SessionState.CERTIFICATE_ISSUED)
        self._emit(
            CompletionDetected(
                certificate=certificate, is_new_completion=is_new_completion
            )
        )

    # -- manual path --------------------------------------------------------

    async def on_certificate_requested(
        self,
        *,
        student_name: str,
        course_name: str,
        instructor_name: str,
        score: int = 100,
        grade: str | None = None,
        completion_time_hours: int = 0,
        achievements: Sequence[str] = (),
    ) -> Certificate:
        """Create or fetch the certificate with caller-supplied details.

        Runs regardless of has_checked_completion.  Raises
        CertificateGenerationError when nothing could be issued.
        """
        params = CertificateParams(
            user_id=self.user_id,
            course_id=self.course_id,
            student_name=student_name,
            course_name=course_name,
            instructor_name=instructor_name,
            score=score,
            grade=grade,
            completion_time_hours=completion_time_hours,
            achievements=tuple(achievements),
        )
        self._set_state(SessionState.CERTIFICATE_ISSUING)
        try:
            certificate_id = await self._certificates.generate_certificate(params)
            certificate = await self._certificates.get_certificate_by_id(
                certificate_id
            )
        except TransientSyncError as e:
            self._sync_failed(e)
            self._set_state(SessionState.CERTIFICATE_FAILED)
            raise CertificateGenerationError(e.message) from e
        except CertificateGenerationError:
            self._set_state(SessionState.CERTIFICATE_FAILED)
            raise
        if certificate is None:
            self._set_state(SessionState.CERTIFICATE_FAILED)
            raise CertificateGenerationError(
                f"certificate {certificate_id} missing after issuance"
            )
        if not certificate.is_valid:
            if not self._closed:
                self._certificate = certificate
                self._set_state(SessionState.CERTIFICATE_REVOKED)
            raise CertificateGenerationError(
                f"certificate {certificate_id} has been revoked"
            )

        if not self._closed:
            self._certificate = certificate
            self._set_state(SessionState.CERTIFICATE_ISSUED)
        return certificate

    # -- local only ---------------------------------------------------------

    def save_code(self, assignment_id: str, code: str) -> None:
        self._local.save_code(self.course_id, assignment_id, code)

    def close(self) -> None:
        self._closed = True

    # -- helpers -------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if self._closed or state is self._state:
            return
        logger.debug(
            "Session state %s -> %s",
            self._state.value,
            state.value,
            extra=self._log_extra(session_state=state.value),
        )
        self._state = state

    def _set_percent(self, percent: int) -> None:
        if self._closed:
            return
        self._percent = percent
        self._emit(ProgressUpdated(percent=percent))

    def _emit(self, event: SessionEvent) -> None:
        if self._closed or self._listener is None:
            return
        self._listener(event)

    def _sync_failed(self, error: TransientSyncError, **extra: str) -> None:
        PROGRESS_SYNC_FAILURES.labels(operation=error.operation).inc()
        logger.warning(
            "Remote sync failed, keeping local progress: %s",
            error.message,
            extra=self._log_extra(**extra),
        )

    def _log_extra(self, **extra: str) -> dict[str, str]:
        return {"user_id": self.user_id, "course_id": self.course_id, **extra}


_TERMINAL_STATES = frozenset(
    {
        SessionState.COMPLETED,
        SessionState.CERTIFICATE_ISSUING,
        SessionState.CERTIFICATE_ISSUED,
        SessionState.CERTIFICATE_FAILED,
        SessionState.CERTIFICATE_REVOKED,
    }
)


async def open_session(
    *,
    user_id: str,
    course_id: str,
    catalog: CourseCatalog,
    local: LocalProgressCache,
    progress: RemoteProgressSource,
    enrollments: EnrollmentStore,
    certificates: CertificateIssuer,
    listener: SessionListener | None = None,
) -> ProgressOrchestrator:
    """Build an orchestrator for a catalog course (does not load it)."""
    course = await catalog.get(course_id)
    if course is None:
        raise CourseNotFoundError(course_id)
    return ProgressOrchestrator(
        user_id=user_id,
        course_id=course_id,
        all_lessons=course.lesson_ids(),
        local=local,
        progress=progress,
        enrollments=enrollments,
        certificates=certificates,
        listener=listener,
    )
