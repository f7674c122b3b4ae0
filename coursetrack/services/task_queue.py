"""Background task queue on Redis lists.

The API enqueues and returns 202; coursetrack.worker dequeues and runs
the handler registered for the queue.

  Producer (API):    LPUSH onto tasks:{queue}
  Consumer (worker): BRPOP from tasks:{queue}

LPUSH at the head and BRPOP from the tail gives FIFO order.  BRPOP
blocks until a task arrives or the timeout expires, so an idle worker
does not spin.

Delivery is at-most-once: a worker that dies mid-task loses that task.
Backfill is idempotent and can simply be requested again.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import redis.asyncio as aioredis

from coursetrack.core.metrics import QUEUE_DEPTH
from coursetrack.db.redis import redis_pool
from coursetrack.services.errors import TransientSyncError


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    id:      unique identifier for tracking and logging
    queue:   queue name, one handler per queue
    payload: JSON-serializable input for the handler
    """

    id: str
    queue: str
    payload: dict


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """In-memory task queue for tests and local development."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        tasks = self._queues.setdefault(queue, [])
        tasks.append(task)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(tasks))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        tasks = self._queues.get(queue, [])
        if not tasks:
            return None
        task = tasks.pop(0)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(tasks))
        return task

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    """Redis-backed task queue using LPUSH/BRPOP."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        task_json = json.dumps(
            {"id": task.id, "queue": task.queue, "payload": task.payload}
        )
        try:
            depth = await self._redis.lpush(f"{self._PREFIX}{queue}", task_json)
        except aioredis.RedisError as e:
            raise TransientSyncError("enqueue_task", str(e)) from e
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        if result is None:
            return None
        _, task_json = result
        return Task(**json.loads(task_json))

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
