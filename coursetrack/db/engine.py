"""Async SQLAlchemy engine and session factory.

With DATABASE_URL set (postgresql+asyncpg://...), this module exposes
an async engine, a session factory the Pg* repositories open one
session per operation from, and a lifespan hook.

Without DATABASE_URL every export is None and the store singletons in
coursetrack.services.stores fall back to in-memory repositories.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from coursetrack.core.config import SETTINGS
from coursetrack.services.errors import TransientSyncError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for every coursetrack table."""


if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )
    async_session_factory: async_sessionmaker[AsyncSession] | None = (
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    )
else:
    engine = None
    async_session_factory = None


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session, commit on success, roll back on any exception.

    Connection-level failures surface as TransientSyncError(operation);
    integrity and programming errors propagate unchanged.
    """
    try:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    except (OperationalError, InterfaceError, OSError) as e:
        logger.warning("Database call failed operation=%s: %s", operation, e)
        raise TransientSyncError(operation, str(e)) from e


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engine."""
    if engine is None:
        logger.info("No DATABASE_URL configured, using in-memory repositories")
        yield
        return

    logger.info("Database engine created: %s", engine.url.render_as_string())
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
