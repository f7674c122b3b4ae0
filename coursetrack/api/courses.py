"""Course catalog and enrollment entry points.

  GET  /v1/courses                      published catalog
  GET  /v1/courses/{course_id}          one course with its lesson ids
  POST /v1/courses/{course_id}/enroll   201, 404 unknown course, 409 duplicate
  GET  /v1/courses/{course_id}/access   does the caller have an enrollment
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from coursetrack.api.dependencies import require_user
from coursetrack.api.enrollments import EnrollmentOut
from coursetrack.models.course import Course
from coursetrack.models.principal import Principal
from coursetrack.models.user import User
from coursetrack.services.errors import AlreadyEnrolledError
from coursetrack.services.stores import course_catalog, enrollment_store, user_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class CourseOut(BaseModel):
    id: str
    slug: str
    title: str
    instructor_name: str
    status: str
    lesson_ids: list[str]
    preview_lesson_ids: list[str]

    @classmethod
    def from_domain(cls, course: Course) -> CourseOut:
        return cls(
            id=course.id,
            slug=course.slug,
            title=course.title,
            instructor_name=course.instructor_name,
            status=course.status,
            lesson_ids=list(course.lesson_ids()),
            preview_lesson_ids=list(course.preview_lesson_ids()),
        )


class AccessOut(BaseModel):
    course_id: str
    has_access: bool


async def _require_course(course_id: str) -> Course:
    course = await course_catalog.get(course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="course not found")
    return course


@router.get("", response_model=list[CourseOut])
async def list_courses(
    _principal: Annotated[Principal, Depends(require_user)],
) -> list[CourseOut]:
    return [CourseOut.from_domain(c) for c in await course_catalog.list_published()]


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(
    course_id: str,
    _principal: Annotated[Principal, Depends(require_user)],
) -> CourseOut:
    return CourseOut.from_domain(await _require_course(course_id))


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_course(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> EnrollmentOut:
    await _require_course(course_id)
    try:
        enrollment = await enrollment_store.enroll(principal.user_id, course_id)
    except AlreadyEnrolledError:
        raise HTTPException(status_code=409, detail="already enrolled") from None

    # The name claim is what ends up printed on certificates.
    if principal.name:
        await user_repo.upsert(User(id=principal.user_id, display_name=principal.name))

    logger.info(
        "Enrolled user=%s course=%s",
        principal.user_id,
        course_id,
        extra={"user_id": principal.user_id, "course_id": course_id},
    )
    return EnrollmentOut.from_domain(enrollment)


@router.get("/{course_id}/access", response_model=AccessOut)
async def has_access_to_course(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> AccessOut:
    has_access = await enrollment_store.has_access_to_course(
        principal.user_id, course_id
    )
    return AccessOut(course_id=course_id, has_access=has_access)
