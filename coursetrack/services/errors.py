"""Error taxonomy for progress tracking and certification.

Collaborator implementations (in-memory, PostgreSQL, HTTP) translate
their library-level failures into these types so the orchestrator can
decide what to recover from without knowing which backend it talks to.
"""

from __future__ import annotations


class ProgressError(Exception):
    """Base error for this subsystem."""

    code = "progress_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TransientSyncError(ProgressError):
    """A remote read or write failed (network, timeout, storage outage).

    Recovered locally: the local cache stays authoritative for the UI and
    the next course load reconciles again.
    """

    code = "transient_sync"

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        message = f"{operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NotEnrolledError(ProgressError):
    """No enrollment exists for (user, course), e.g. preview mode."""

    code = "not_enrolled"

    def __init__(self, user_id: str, course_id: str) -> None:
        self.user_id = user_id
        self.course_id = course_id
        super().__init__(f"user {user_id} is not enrolled in course {course_id}")


class AlreadyEnrolledError(ProgressError):
    code = "already_enrolled"

    def __init__(self, user_id: str, course_id: str) -> None:
        super().__init__(f"user {user_id} is already enrolled in course {course_id}")


class EnrollmentNotFoundError(ProgressError):
    code = "enrollment_not_found"

    def __init__(self, enrollment_id: str) -> None:
        self.enrollment_id = enrollment_id
        super().__init__(f"enrollment {enrollment_id} not found")


class CourseNotFoundError(ProgressError):
    code = "course_not_found"

    def __init__(self, course_id: str) -> None:
        self.course_id = course_id
        super().__init__(f"course {course_id} not found")


class CertificateGenerationError(ProgressError):
    """Certificate issuance failed; the user may retry manually."""

    code = "certificate_generation_failed"
