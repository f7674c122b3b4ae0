"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.db.engine import session_scope
from coursetrack.db.tables import UserRow
from coursetrack.models.user import User


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_by_id(self, user_id: str) -> User | None:
        async with session_scope(self._sessions, "get_user") as session:
            stmt = select(UserRow).where(UserRow.id == user_id)
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return User(id=row.id, display_name=row.display_name, email=row.email)

    async def upsert(self, user: User) -> None:
        stmt = (
            insert(UserRow)
            .values(id=user.id, display_name=user.display_name, email=user.email)
            .on_conflict_do_update(
                index_elements=[UserRow.id],
                set_={"display_name": user.display_name, "email": user.email},
            )
        )
        async with session_scope(self._sessions, "upsert_user") as session:
            await session.execute(stmt)
