from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coursetrack.api.certificates import router as certificates_router
from coursetrack.api.courses import router as courses_router
from coursetrack.api.enrollments import router as enrollments_router
from coursetrack.api.health import router as health_router
from coursetrack.api.metrics_endpoint import router as metrics_router
from coursetrack.api.progress import router as progress_router
from coursetrack.core.config import SETTINGS
from coursetrack.core.logging import setup_logging
from coursetrack.core.metrics import PROGRESS_SYNC_FAILURES
from coursetrack.db.engine import lifespan_db
from coursetrack.db.redis import lifespan_redis
from coursetrack.middleware.metrics import MetricsMiddleware
from coursetrack.middleware.request_context import RequestContextMiddleware
from coursetrack.services.errors import TransientSyncError

setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="coursetrack",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext -> Metrics -> CORS -> route.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(TransientSyncError)
async def transient_sync_error_handler(
    request: Request, exc: TransientSyncError
) -> JSONResponse:
    PROGRESS_SYNC_FAILURES.labels(operation=exc.operation).inc()
    logger.warning("Storage unavailable on %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=503,
        content={"detail": "storage temporarily unavailable", "code": exc.code},
    )


app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(courses_router)
app.include_router(enrollments_router)
app.include_router(progress_router)
app.include_router(certificates_router)

logger.info(
    "coursetrack started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
