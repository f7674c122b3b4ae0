from __future__ import annotations

from typing import Protocol

from coursetrack.models.user import User


class UserRepo(Protocol):
    async def get_by_id(self, user_id: str) -> User | None: ...
    async def upsert(self, user: User) -> None: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, User] = {}

    async def get_by_id(self, user_id: str) -> User | None:
        return self._by_id.get(user_id)

    async def upsert(self, user: User) -> None:
        self._by_id[user.id] = user
