"""httpx implementations of the session collaborators.

These let a ProgressOrchestrator run in a client process against the
coursetrack API instead of in-process stores:

    client = build_client(token)
    session = ProgressOrchestrator(
        ...,
        progress=HttpProgressSource(client),
        enrollments=HttpEnrollmentStore(client),
        certificates=HttpCertificateIssuer(client),
    )

The bearer token identifies the learner; the user_id arguments of the
collaborator methods are only used to fill in returned records.

Transport failures, timeouts and 5xx answers become TransientSyncError.
Expected 404/409 answers map onto the domain errors or None.  Any other
4xx is a client bug and raises httpx.HTTPStatusError.
"""

from __future__ import annotations

import logging

import httpx

from coursetrack.core.config import SETTINGS
from coursetrack.models.certificate import (
    Certificate,
    CertificateParams,
    CertificateVerification,
)
from coursetrack.models.enrollment import Enrollment
from coursetrack.models.progress import LessonProgress
from coursetrack.services.errors import (
    AlreadyEnrolledError,
    CertificateGenerationError,
    CourseNotFoundError,
    EnrollmentNotFoundError,
    NotEnrolledError,
    TransientSyncError,
)

logger = logging.getLogger(__name__)


def build_client(
    token: str,
    *,
    base_url: str | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """AsyncClient with the bearer token, base URL and timeout applied."""
    return httpx.AsyncClient(
        base_url=base_url or SETTINGS.api_base_url,
        headers={"Authorization": f"Bearer {token}"},
        timeout=timeout or SETTINGS.http_timeout_seconds,
        transport=transport,
    )


class _ApiCollaborator:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        allow: tuple[int, ...] = (),
        **kwargs,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise TransientSyncError(operation, type(e).__name__) from e
        if response.status_code >= 500:
            raise TransientSyncError(operation, f"HTTP {response.status_code}")
        if response.status_code in allow:
            return response
        response.raise_for_status()
        return response


class HttpProgressSource(_ApiCollaborator):
    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> list[LessonProgress]:
        response = await self._request(
            "get_course_progress", "GET", f"/v1/progress/{course_id}"
        )
        return [
            LessonProgress(
                user_id=user_id,
                course_id=course_id,
                lesson_id=item["lesson_id"],
                completed=item["completed"],
                position_seconds=item["position_seconds"],
                duration_percent=item["duration_percent"],
                updated_at=item.get("updated_at"),
            )
            for item in response.json()
        ]

    async def save_progress(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        position_seconds: int,
        duration_percent: int,
        completed: bool,
    ) -> None:
        await self._request(
            "save_progress",
            "PUT",
            f"/v1/progress/{course_id}/lessons/{lesson_id}",
            json={
                "position_seconds": position_seconds,
                "duration_percent": duration_percent,
                "completed": completed,
            },
        )


def _enrollment_from_json(data: dict) -> Enrollment:
    return Enrollment(
        id=data["id"],
        user_id=data["user_id"],
        course_id=data["course_id"],
        enrolled_at=data["enrolled_at"],
        completed_lessons=frozenset(data["completed_lessons"]),
        progress_percent=data["progress_percent"],
        status=data["status"],
        completed_at=data.get("completed_at"),
        current_lesson_id=data.get("current_lesson_id"),
    )


class HttpEnrollmentStore(_ApiCollaborator):
    async def enroll(self, user_id: str, course_id: str) -> Enrollment:
        response = await self._request(
            "enroll", "POST", f"/v1/courses/{course_id}/enroll", allow=(404, 409)
        )
        if response.status_code == 404:
            raise CourseNotFoundError(course_id)
        if response.status_code == 409:
            raise AlreadyEnrolledError(user_id, course_id)
        return _enrollment_from_json(response.json())

    async def get_user_enrollment(
        self, user_id: str, course_id: str
    ) -> Enrollment | None:
        response = await self._request(
            "get_user_enrollment",
            "GET",
            f"/v1/enrollments/course/{course_id}",
            allow=(404,),
        )
        if response.status_code == 404:
            return None
        return _enrollment_from_json(response.json())

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        response = await self._request(
            "get_enrollment", "GET", f"/v1/enrollments/{enrollment_id}", allow=(404,)
        )
        if response.status_code == 404:
            return None
        return _enrollment_from_json(response.json())

    async def list_user_enrollments(self, user_id: str) -> list[Enrollment]:
        response = await self._request(
            "list_user_enrollments", "GET", "/v1/enrollments"
        )
        return [_enrollment_from_json(item) for item in response.json()]

    async def mark_lesson_completed(self, enrollment_id: str, lesson_id: str) -> None:
        response = await self._request(
            "mark_lesson_completed",
            "POST",
            f"/v1/enrollments/{enrollment_id}/lessons/{lesson_id}",
            allow=(404,),
        )
        if response.status_code == 404:
            raise EnrollmentNotFoundError(enrollment_id)

    async def update_enrollment_progress(
        self, enrollment_id: str, percent: int, last_lesson_id: str | None = None
    ) -> None:
        response = await self._request(
            "update_enrollment_progress",
            "PATCH",
            f"/v1/enrollments/{enrollment_id}/progress",
            json={"progress_percent": percent, "last_lesson_id": last_lesson_id},
            allow=(404,),
        )
        if response.status_code == 404:
            raise EnrollmentNotFoundError(enrollment_id)

    async def complete_enrollment(self, user_id: str, course_id: str) -> Enrollment:
        response = await self._request(
            "complete_enrollment",
            "POST",
            f"/v1/enrollments/course/{course_id}/complete",
            allow=(404,),
        )
        if response.status_code == 404:
            raise NotEnrolledError(user_id, course_id)
        return _enrollment_from_json(response.json())

    async def has_access_to_course(self, user_id: str, course_id: str) -> bool:
        try:
            response = await self._request(
                "has_access_to_course", "GET", f"/v1/courses/{course_id}/access"
            )
        except TransientSyncError:
            logger.warning(
                "Access check failed, denying user=%s course=%s", user_id, course_id
            )
            return False
        return bool(response.json()["has_access"])


def _certificate_from_json(data: dict) -> Certificate:
    return Certificate(
        id=data["id"],
        user_id=data["user_id"],
        course_id=data["course_id"],
        issued_at=data["issued_at"],
        certificate_number=data["certificate_number"],
        verification_code=data["verification_code"],
        student_name=data["student_name"],
        course_name=data["course_name"],
        instructor_name=data["instructor_name"],
        grade=data["grade"],
        score=data["score"],
        completion_time_hours=data["completion_time_hours"],
        achievements=tuple(data["achievements"]),
        is_valid=data["is_valid"],
    )


class HttpCertificateIssuer(_ApiCollaborator):
    async def get_user_course_certificate(
        self, user_id: str, course_id: str, *, include_revoked: bool = False
    ) -> Certificate | None:
        response = await self._request(
            "get_user_course_certificate",
            "GET",
            f"/v1/certificates/course/{course_id}",
            params={"include_revoked": "true"} if include_revoked else None,
        )
        data = response.json()
        return _certificate_from_json(data) if data is not None else None

    async def generate_certificate_for_course_completion(
        self, user_id: str, course_id: str
    ) -> str | None:
        try:
            response = await self._request(
                "generate_certificate_for_course_completion",
                "POST",
                f"/v1/certificates/course/{course_id}/completion",
            )
        except TransientSyncError as e:
            raise CertificateGenerationError(e.message) from e
        return response.json()["certificate_id"]

    async def generate_certificate(self, params: CertificateParams) -> str:
        try:
            response = await self._request(
                "generate_certificate",
                "POST",
                "/v1/certificates",
                json={
                    "course_id": params.course_id,
                    "student_name": params.student_name,
                    "course_name": params.course_name,
                    "instructor_name": params.instructor_name,
                    "score": params.score,
                    "grade": params.grade,
                    "completion_time_hours": params.completion_time_hours,
                    "achievements": list(params.achievements),
                },
                allow=(403, 404),
            )
        except TransientSyncError as e:
            raise CertificateGenerationError(e.message) from e
        if response.status_code in (403, 404):
            raise CertificateGenerationError(response.json().get("detail", ""))
        return response.json()["certificate_id"]

    async def get_certificate_by_id(self, certificate_id: str) -> Certificate | None:
        response = await self._request(
            "get_certificate_by_id",
            "GET",
            f"/v1/certificates/{certificate_id}",
            allow=(404,),
        )
        if response.status_code == 404:
            return None
        return _certificate_from_json(response.json())

    async def verify_certificate(
        self, certificate_id: str, verification_code: str | None = None
    ) -> CertificateVerification:
        params = {"code": verification_code} if verification_code else None
        response = await self._request(
            "verify_certificate",
            "GET",
            f"/v1/certificates/{certificate_id}/verify",
            params=params,
        )
        data = response.json()
        cert = data.get("certificate")
        return CertificateVerification(
            is_valid=data["is_valid"],
            message=data["message"],
            certificate=_certificate_from_json(cert) if cert else None,
        )
