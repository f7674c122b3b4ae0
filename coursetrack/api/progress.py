"""Per-lesson progress endpoints backing the RemoteProgressSource.

  GET  /v1/progress/{course_id}                     caller's lesson records
  PUT  /v1/progress/{course_id}/lessons/{lesson_id} upsert one record (204)
  POST /v1/progress/sync                            queue a backfill (202)

Saves are upserts keyed by (user, course, lesson) and `completed` never
goes back to false, so clients may retry a PUT freely.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from coursetrack.api.dependencies import require_user
from coursetrack.models.principal import Principal
from coursetrack.models.progress import LessonProgress
from coursetrack.services.backfill import BACKFILL_QUEUE
from coursetrack.services.stores import progress_source
from coursetrack.services.task_queue import task_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


class LessonProgressOut(BaseModel):
    lesson_id: str
    completed: bool
    position_seconds: int
    duration_percent: int
    updated_at: int | None = None

    @classmethod
    def from_domain(cls, p: LessonProgress) -> LessonProgressOut:
        return cls(
            lesson_id=p.lesson_id,
            completed=p.completed,
            position_seconds=p.position_seconds,
            duration_percent=p.duration_percent,
            updated_at=p.updated_at,
        )


class LessonProgressIn(BaseModel):
    position_seconds: int = Field(default=0, ge=0)
    duration_percent: int = Field(default=0, ge=0, le=100)
    completed: bool = False


class SyncAcceptedOut(BaseModel):
    task_id: str
    queue: str


@router.post(
    "/sync",
    response_model=SyncAcceptedOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_progress_sync(
    principal: Annotated[Principal, Depends(require_user)],
) -> SyncAcceptedOut:
    task = await task_queue.enqueue(BACKFILL_QUEUE, {"user_id": principal.user_id})
    logger.info(
        "Progress backfill queued task=%s user=%s",
        task.id,
        principal.user_id,
        extra={"user_id": principal.user_id},
    )
    return SyncAcceptedOut(task_id=task.id, queue=task.queue)


@router.get("/{course_id}", response_model=list[LessonProgressOut])
async def get_course_progress(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> list[LessonProgressOut]:
    records = await progress_source.get_course_progress(principal.user_id, course_id)
    return [
        LessonProgressOut.from_domain(p)
        for p in sorted(records, key=lambda p: p.lesson_id)
    ]


@router.put(
    "/{course_id}/lessons/{lesson_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def save_progress(
    course_id: str,
    lesson_id: str,
    payload: LessonProgressIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> None:
    await progress_source.save_progress(
        principal.user_id,
        course_id,
        lesson_id,
        payload.position_seconds,
        payload.duration_percent,
        payload.completed,
    )
