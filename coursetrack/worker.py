"""Background worker process.

RUN:  python -m coursetrack.worker

Same image as the API, different command:
  api:    uvicorn coursetrack.main:app --host 0.0.0.0 --port 8000
  worker: python -m coursetrack.worker

The loop polls every registered queue in turn, dequeues one task at a
time and dispatches it to the queue's handler.  A failing task is
logged and dropped; the loop keeps going.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from coursetrack.core.config import SETTINGS
from coursetrack.core.logging import setup_logging
from coursetrack.services import stores
from coursetrack.services.backfill import BACKFILL_QUEUE, sync_user_progress
from coursetrack.services.task_queue import task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("coursetrack.worker")

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(BACKFILL_QUEUE)
async def handle_progress_backfill(payload: dict) -> None:
    user_id = payload.get("user_id")
    if not user_id:
        raise ValueError("progress_backfill task without user_id")
    outcomes = await sync_user_progress(
        user_id,
        progress=stores.progress_source,
        enrollments=stores.enrollment_store,
        catalog=stores.course_catalog,
        certificates=stores.certificate_service,
    )
    for outcome in outcomes:
        logger.info(
            "Backfilled course=%s marked=%d percent=%d completed=%s certificate=%s error=%s",
            outcome.course_id,
            outcome.lessons_marked,
            outcome.progress_percent,
            outcome.completed,
            outcome.certificate_id or "-",
            outcome.error or "-",
            extra={"user_id": user_id, "course_id": outcome.course_id},
        )


async def process_one(queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and run at most one task; True if a task was taken."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker() -> None:
    queues = list(HANDLERS)
    logger.info("Worker started, listening on queues: %s", queues)
    while True:
        idle = True
        for queue_name in queues:
            if await process_one(queue_name):
                idle = False
        if idle:
            # The in-memory queue returns immediately when empty.
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
