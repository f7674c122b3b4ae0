"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a shared connection
pool is created at import time; otherwise `redis_pool` is None and the
task queue uses its in-memory implementation.

Redis holds only queued backfill tasks here.  Enrollment, progress and
certificate records are durable data and live in PostgreSQL.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from coursetrack.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Verify the Redis connection on startup, close the pool on shutdown.

    An unreachable Redis is logged and the app keeps serving; only the
    progress sync endpoint depends on it.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, task queue is in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except aioredis.RedisError:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
