"""Liveness and readiness.

  /health   the process answers; dependency status is reported, not enforced
  /ready    503 when PostgreSQL is configured but unreachable

Redis only backs the backfill queue, so an unreachable Redis degrades
/health without failing /ready.
"""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from coursetrack.db.engine import engine
from coursetrack.db.redis import redis_pool

router = APIRouter(tags=["health"])


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except (aioredis.RedisError, OSError):
        return "degraded"
    return "ok"


async def _check_database() -> str:
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    checks = {"database": await _check_database(), "redis": await _check_redis()}
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _check_database() == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
