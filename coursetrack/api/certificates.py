"""Certificate endpoints backing the CertificateIssuer collaborator.

  GET  /v1/certificates/course/{course_id}             caller's valid certificate or null
  POST /v1/certificates/course/{course_id}/completion  issue on completion (id or null)
  POST /v1/certificates                                manual issue with details (201)
  GET  /v1/certificates/{certificate_id}               owner or admin
  GET  /v1/certificates/{certificate_id}/verify        public, no token
  POST /v1/certificates/{certificate_id}/revoke        admin only (204)

Every create path returns the existing certificate's id when the caller
already has one for the course.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from coursetrack.api.dependencies import require_role, require_user
from coursetrack.models.certificate import Certificate, CertificateParams
from coursetrack.models.principal import Principal
from coursetrack.services.certificate_issuer import DEFAULT_STUDENT_NAME
from coursetrack.services.errors import CertificateGenerationError
from coursetrack.services.stores import (
    certificate_service,
    course_catalog,
    enrollment_store,
    user_repo,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class CertificateOut(BaseModel):
    id: str
    user_id: str
    course_id: str
    title: str
    issued_at: int
    certificate_number: str
    verification_code: str
    student_name: str
    course_name: str
    instructor_name: str
    grade: str
    score: int
    completion_time_hours: int
    achievements: list[str]
    is_valid: bool

    @classmethod
    def from_domain(cls, c: Certificate) -> CertificateOut:
        return cls(
            id=c.id,
            user_id=c.user_id,
            course_id=c.course_id,
            title=c.title,
            issued_at=c.issued_at,
            certificate_number=c.certificate_number,
            verification_code=c.verification_code,
            student_name=c.student_name,
            course_name=c.course_name,
            instructor_name=c.instructor_name,
            grade=c.grade,
            score=c.score,
            completion_time_hours=c.completion_time_hours,
            achievements=list(c.achievements),
            is_valid=c.is_valid,
        )


class CertificateIdOut(BaseModel):
    certificate_id: str | None


class CertificateRequestIn(BaseModel):
    course_id: str
    student_name: str | None = None
    course_name: str | None = None
    instructor_name: str | None = None
    score: int = Field(default=100, ge=0, le=100)
    grade: str | None = None
    completion_time_hours: int = Field(default=0, ge=0)
    achievements: list[str] = Field(default_factory=list)


class VerificationOut(BaseModel):
    is_valid: bool
    message: str
    certificate: CertificateOut | None = None


@router.get("/course/{course_id}", response_model=CertificateOut | None)
async def get_user_course_certificate(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    include_revoked: bool = False,
) -> CertificateOut | None:
    cert = await certificate_service.get_user_course_certificate(
        principal.user_id, course_id, include_revoked=include_revoked
    )
    return CertificateOut.from_domain(cert) if cert is not None else None


@router.post("/course/{course_id}/completion", response_model=CertificateIdOut)
async def generate_certificate_for_course_completion(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> CertificateIdOut:
    try:
        certificate_id = (
            await certificate_service.generate_certificate_for_course_completion(
                principal.user_id, course_id
            )
        )
    except CertificateGenerationError as e:
        raise HTTPException(status_code=503, detail=e.message) from None
    return CertificateIdOut(certificate_id=certificate_id)


@router.post(
    "",
    response_model=CertificateIdOut,
    status_code=status.HTTP_201_CREATED,
)
async def generate_certificate(
    payload: CertificateRequestIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> CertificateIdOut:
    course = await course_catalog.get(payload.course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="course not found")
    if not await enrollment_store.has_access_to_course(
        principal.user_id, payload.course_id
    ):
        raise HTTPException(status_code=403, detail="not enrolled")

    student_name = payload.student_name or principal.name
    if not student_name:
        user = await user_repo.get_by_id(principal.user_id)
        student_name = user.display_name if user is not None else DEFAULT_STUDENT_NAME

    params = CertificateParams(
        user_id=principal.user_id,
        course_id=course.id,
        student_name=student_name,
        course_name=payload.course_name or course.title,
        instructor_name=payload.instructor_name or course.instructor_name,
        score=payload.score,
        grade=payload.grade,
        completion_time_hours=payload.completion_time_hours,
        achievements=tuple(payload.achievements),
    )
    try:
        certificate_id = await certificate_service.generate_certificate(params)
    except CertificateGenerationError as e:
        raise HTTPException(status_code=503, detail=e.message) from None
    return CertificateIdOut(certificate_id=certificate_id)


@router.get("/{certificate_id}/verify", response_model=VerificationOut)
async def verify_certificate(
    certificate_id: str,
    code: str | None = None,
) -> VerificationOut:
    result = await certificate_service.verify_certificate(certificate_id, code)
    return VerificationOut(
        is_valid=result.is_valid,
        message=result.message,
        certificate=(
            CertificateOut.from_domain(result.certificate)
            if result.certificate is not None
            else None
        ),
    )


@router.get("/{certificate_id}", response_model=CertificateOut)
async def get_certificate_by_id(
    certificate_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> CertificateOut:
    cert = await certificate_service.get_certificate_by_id(certificate_id)
    if cert is None:
        raise HTTPException(status_code=404, detail="certificate not found")
    if cert.user_id != principal.user_id and not principal.is_platform_admin():
        raise HTTPException(status_code=403, detail="not your certificate")
    return CertificateOut.from_domain(cert)


@router.post(
    "/{certificate_id}/revoke",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def revoke_certificate(
    certificate_id: str,
    admin: Annotated[Principal, Depends(require_role("admin"))],
) -> None:
    if not await certificate_service.revoke_certificate(certificate_id):
        raise HTTPException(status_code=404, detail="certificate not found")
    logger.info(
        "Certificate %s revoked by admin=%s",
        certificate_id,
        admin.user_id,
        extra={"certificate_id": certificate_id},
    )
