"""Enrollment endpoints backing the EnrollmentStore collaborator.

Enrollment ids in the path are checked against the caller: an
enrollment that belongs to someone else answers 403.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from coursetrack.api.dependencies import require_user
from coursetrack.models.enrollment import Enrollment
from coursetrack.models.principal import Principal
from coursetrack.services.errors import EnrollmentNotFoundError, NotEnrolledError
from coursetrack.services.stores import enrollment_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


class EnrollmentOut(BaseModel):
    id: str
    user_id: str
    course_id: str
    completed_lessons: list[str]
    progress_percent: int
    status: str
    enrolled_at: int
    completed_at: int | None = None
    current_lesson_id: str | None = None

    @classmethod
    def from_domain(cls, enrollment: Enrollment) -> EnrollmentOut:
        return cls(
            id=enrollment.id,
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
            completed_lessons=sorted(enrollment.completed_lessons),
            progress_percent=enrollment.progress_percent,
            status=enrollment.status,
            enrolled_at=enrollment.enrolled_at,
            completed_at=enrollment.completed_at,
            current_lesson_id=enrollment.current_lesson_id,
        )


class ProgressPatchIn(BaseModel):
    progress_percent: int
    last_lesson_id: str | None = None


async def _owned_enrollment(enrollment_id: str, principal: Principal) -> Enrollment:
    enrollment = await enrollment_store.get_enrollment(enrollment_id)
    if enrollment is None:
        raise HTTPException(status_code=404, detail="enrollment not found")
    if enrollment.user_id != principal.user_id:
        logger.warning(
            "Enrollment access denied user=%s enrollment=%s",
            principal.user_id,
            enrollment_id,
        )
        raise HTTPException(status_code=403, detail="not your enrollment")
    return enrollment


@router.get("/course/{course_id}", response_model=EnrollmentOut)
async def get_user_enrollment(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> EnrollmentOut:
    enrollment = await enrollment_store.get_user_enrollment(
        principal.user_id, course_id
    )
    if enrollment is None:
        raise HTTPException(status_code=404, detail="not enrolled")
    return EnrollmentOut.from_domain(enrollment)


@router.post(
    "/{enrollment_id}/lessons/{lesson_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def mark_lesson_completed(
    enrollment_id: str,
    lesson_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> None:
    await _owned_enrollment(enrollment_id, principal)
    try:
        await enrollment_store.mark_lesson_completed(enrollment_id, lesson_id)
    except EnrollmentNotFoundError:
        raise HTTPException(status_code=404, detail="enrollment not found") from None


@router.patch("/{enrollment_id}/progress", status_code=status.HTTP_204_NO_CONTENT)
async def update_enrollment_progress(
    enrollment_id: str,
    payload: ProgressPatchIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> None:
    await _owned_enrollment(enrollment_id, principal)
    try:
        await enrollment_store.update_enrollment_progress(
            enrollment_id, payload.progress_percent, payload.last_lesson_id
        )
    except EnrollmentNotFoundError:
        raise HTTPException(status_code=404, detail="enrollment not found") from None


@router.post("/course/{course_id}/complete", response_model=EnrollmentOut)
async def complete_enrollment(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> EnrollmentOut:
    try:
        enrollment = await enrollment_store.complete_enrollment(
            principal.user_id, course_id
        )
    except NotEnrolledError:
        raise HTTPException(status_code=404, detail="not enrolled") from None
    return EnrollmentOut.from_domain(enrollment)


@router.get("", response_model=list[EnrollmentOut])
async def list_user_enrollments(
    principal: Annotated[Principal, Depends(require_user)],
) -> list[EnrollmentOut]:
    enrollments = await enrollment_store.list_user_enrollments(principal.user_id)
    return [EnrollmentOut.from_domain(e) for e in enrollments]


@router.get("/{enrollment_id}", response_model=EnrollmentOut)
async def get_enrollment(
    enrollment_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> EnrollmentOut:
    return EnrollmentOut.from_domain(await _owned_enrollment(enrollment_id, principal))
