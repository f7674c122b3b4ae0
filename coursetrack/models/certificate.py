from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Certificate:
    """Issued certificate of completion, at most one per (user, course)."""

    id: str
    user_id: str
    course_id: str
    issued_at: int
    certificate_number: str
    verification_code: str
    student_name: str
    course_name: str
    instructor_name: str
    grade: str
    score: int
    completion_time_hours: int = 0
    achievements: tuple[str, ...] = ()
    is_valid: bool = True

    @property
    def title(self) -> str:
        return f"Certificate of Completion - {self.course_name}"


@dataclass(frozen=True, slots=True)
class CertificateParams:
    """Input for issuing a certificate (manual or completion-driven)."""

    user_id: str
    course_id: str
    student_name: str
    course_name: str
    instructor_name: str
    score: int = 100
    grade: str | None = None  # derived from score when None
    completion_time_hours: int = 0
    achievements: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CertificateVerification:
    is_valid: bool
    message: str
    certificate: Certificate | None = None
