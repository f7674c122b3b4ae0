"""Certificate issuance.

IDENTIFIERS
------------
  id                  12 upper-case hex characters, used in verify URLs
  certificate_number  CERT-YYYYMM-XXXXXXXX, printed on the certificate
  verification_code   first 16 hex chars of HMAC-SHA256(secret, id)

The verification code lets a third party confirm a certificate without
a database lookup on our side leaking anything beyond the id.

AT MOST ONE PER (USER, COURSE)
-------------------------------
Every create path runs check-then-create: look for an existing
certificate, otherwise build a candidate and hand it to
CertificateRepo.insert_if_absent.  The check is only a fast path.  The
repo's atomic insert is what makes two racing sessions (two tabs
finishing the last lesson together) end with one record: the loser
gets the winner's certificate back and its candidate is dropped.
Duplicate attempts are counted and logged, never raised.
"""

from __future__ import annotations

import datetime
import hashlib
import hmac
import logging
import secrets
from typing import Protocol

from coursetrack.core.clock import utc_now_ts
from coursetrack.core.metrics import CERTIFICATE_DUPLICATE_ATTEMPTS, CERTIFICATES_ISSUED
from coursetrack.models.certificate import (
    Certificate,
    CertificateParams,
    CertificateVerification,
)
from coursetrack.repos.certificate_repo import CertificateRepo
from coursetrack.repos.course_repo import CourseCatalog
from coursetrack.repos.enrollment_repo import EnrollmentStore
from coursetrack.repos.user_repo import UserRepo
from coursetrack.services.errors import CertificateGenerationError, TransientSyncError

logger = logging.getLogger(__name__)

COMPLETION_ACHIEVEMENTS = ("Course Completed", "All Lessons Finished")
DEFAULT_STUDENT_NAME = "Student"

_GRADE_TABLE = (
    (95, "A+"),
    (90, "A"),
    (85, "B+"),
    (80, "B"),
    (75, "C+"),
    (70, "C"),
    (65, "D"),
)


class CertificateIssuer(Protocol):
    async def get_user_course_certificate(
        self, user_id: str, course_id: str, *, include_revoked: bool = False
    ) -> Certificate | None: ...
    async def generate_certificate_for_course_completion(
        self, user_id: str, course_id: str
    ) -> str | None: ...
    async def generate_certificate(self, params: CertificateParams) -> str: ...
    async def get_certificate_by_id(self, certificate_id: str) -> Certificate | None: ...


def grade_for_score(score: int) -> str:
    for threshold, grade in _GRADE_TABLE:
        if score >= threshold:
            return grade
    return "F"


def verification_code_for(certificate_id: str, secret: str) -> str:
    digest = hmac.new(
        secret.encode(), certificate_id.encode(), hashlib.sha256
    ).hexdigest()
    return digest[:16].upper()


class CertificateService:
    """Server-side CertificateIssuer backed by a CertificateRepo."""

    def __init__(
        self,
        repo: CertificateRepo,
        enrollments: EnrollmentStore,
        catalog: CourseCatalog,
        users: UserRepo,
        *,
        secret: str,
    ) -> None:
        self._repo = repo
        self._enrollments = enrollments
        self._catalog = catalog
        self._users = users
        self._secret = secret

    async def get_user_course_certificate(
        self, user_id: str, course_id: str, *, include_revoked: bool = False
    ) -> Certificate | None:
        cert = await self._repo.get_for_user_course(user_id, course_id)
        if cert is None or not (cert.is_valid or include_revoked):
            return None
        return cert

    async def get_certificate_by_id(self, certificate_id: str) -> Certificate | None:
        return await self._repo.get_by_id(certificate_id)

    async def generate_certificate_for_course_completion(
        self, user_id: str, course_id: str
    ) -> str | None:
        """Issue the completion certificate.

        None if the course isn't completed or its certificate was revoked.
        """
        existing = await self._repo.get_for_user_course(user_id, course_id)
        if existing is not None and not existing.is_valid:
            logger.info(
                "Completion certificate refused, revoked id=%s",
                existing.id,
                extra={
                    "user_id": user_id,
                    "course_id": course_id,
                    "certificate_id": existing.id,
                },
            )
            return None
        if existing is not None:
            CERTIFICATE_DUPLICATE_ATTEMPTS.inc()
            return existing.id

        enrollment = await self._enrollments.get_user_enrollment(user_id, course_id)
        if enrollment is None or not enrollment.is_completed:
            logger.info(
                "Completion certificate refused, course not completed user=%s course=%s",
                user_id,
                course_id,
                extra={"user_id": user_id, "course_id": course_id},
            )
            return None

        course = await self._catalog.get(course_id)
        if course is None:
            raise CertificateGenerationError(f"course {course_id} not found")

        completion_time_hours = 0
        if enrollment.completed_at is not None:
            completion_time_hours = max(
                0, (enrollment.completed_at - enrollment.enrolled_at) // 3600
            )

        params = CertificateParams(
            user_id=user_id,
            course_id=course_id,
            student_name=await self._student_name(user_id),
            course_name=course.title,
            instructor_name=course.instructor_name,
            score=100,
            grade="Completed",
            completion_time_hours=completion_time_hours,
            achievements=COMPLETION_ACHIEVEMENTS,
        )
        return await self._issue(params, path="completion")

    async def generate_certificate(self, params: CertificateParams) -> str:
        """Manual path: create or return the (user, course) certificate."""
        existing = await self._repo.get_for_user_course(
            params.user_id, params.course_id
        )
        if existing is not None:
            CERTIFICATE_DUPLICATE_ATTEMPTS.inc()
            return existing.id
        return await self._issue(params, path="manual")

    async def verify_certificate(
        self, certificate_id: str, verification_code: str | None = None
    ) -> CertificateVerification:
        cert = await self._repo.get_by_id(certificate_id)
        if cert is None:
            return CertificateVerification(
                is_valid=False, message="Certificate not found"
            )
        if verification_code is not None and not hmac.compare_digest(
            verification_code.strip().upper(),
            verification_code_for(cert.id, self._secret),
        ):
            return CertificateVerification(
                is_valid=False, message="Verification code does not match"
            )
        if not cert.is_valid:
            return CertificateVerification(
                is_valid=False,
                message="Certificate has been revoked",
                certificate=cert,
            )
        return CertificateVerification(
            is_valid=True,
            message="Certificate is valid and authentic",
            certificate=cert,
        )

    async def revoke_certificate(self, certificate_id: str) -> bool:
        revoked = await self._repo.set_valid(certificate_id, False)
        if revoked:
            logger.info(
                "Certificate revoked id=%s",
                certificate_id,
                extra={"certificate_id": certificate_id},
            )
        return revoked

    async def _student_name(self, user_id: str) -> str:
        user = await self._users.get_by_id(user_id)
        if user is None or not user.display_name:
            return DEFAULT_STUDENT_NAME
        return user.display_name

    def _build(self, params: CertificateParams) -> Certificate:
        now = utc_now_ts()
        issued = datetime.datetime.fromtimestamp(now, datetime.UTC)
        certificate_id = secrets.token_hex(6).upper()
        return Certificate(
            id=certificate_id,
            user_id=params.user_id,
            course_id=params.course_id,
            issued_at=now,
            certificate_number=f"CERT-{issued:%Y%m}-{secrets.token_hex(4).upper()}",
            verification_code=verification_code_for(certificate_id, self._secret),
            student_name=params.student_name or DEFAULT_STUDENT_NAME,
            course_name=params.course_name,
            instructor_name=params.instructor_name,
            grade=params.grade or grade_for_score(params.score),
            score=params.score,
            completion_time_hours=params.completion_time_hours,
            achievements=tuple(params.achievements),
        )

    async def _issue(self, params: CertificateParams, *, path: str) -> str:
        candidate = self._build(params)
        try:
            stored, created = await self._repo.insert_if_absent(candidate)
        except TransientSyncError as e:
            raise CertificateGenerationError(str(e)) from e

        log_extra = {
            "user_id": params.user_id,
            "course_id": params.course_id,
            "certificate_id": stored.id,
        }
        if created:
            CERTIFICATES_ISSUED.labels(path=path).inc()
            logger.info(
                "Certificate issued id=%s path=%s user=%s course=%s",
                stored.id,
                path,
                params.user_id,
                params.course_id,
                extra=log_extra,
            )
        else:
            CERTIFICATE_DUPLICATE_ATTEMPTS.inc()
            logger.info(
                "Duplicate certificate attempt absorbed, returning id=%s",
                stored.id,
                extra=log_extra,
            )
        return stored.id
