"""
Blacklist registry.

Users on the blacklist may still chat, but any message of theirs that carries
a link or an attachment is removed by :class:`perseus.moderation.ModerationGuard`.
"""

from __future__ import annotations

from typing import Protocol

from .sql.repositories import BlacklistRepo


class BlacklistStore(Protocol):
    backend: str

    async def is_flagged(self, user_id: int | str) -> bool: ...

    async def add(self, user_id: int | str) -> bool: ...

    async def remove(self, user_id: int | str) -> bool: ...

    async def count(self) -> int: ...


class MemoryBlacklist:
    backend = "memory"

    def __init__(self) -> None:
        self._users: set[str] = set()

    async def is_flagged(self, user_id: int | str) -> bool:
        return str(user_id) in self._users

    async def add(self, user_id: int | str) -> bool:
        key = str(user_id)
        if key in self._users:
            return False
        self._users.add(key)
        return True

    async def remove(self, user_id: int | str) -> bool:
        key = str(user_id)
        if key not in self._users:
            return False
        self._users.discard(key)
        return True

    async def count(self) -> int:
        return len(self._users)


class SqlBlacklist:
    backend = "sqlite"

    def __init__(self, repo: BlacklistRepo) -> None:
        self._repo = repo

    async def is_flagged(self, user_id: int | str) -> bool:
        return await self._repo.contains(str(user_id))

    async def add(self, user_id: int | str) -> bool:
        return await self._repo.add(str(user_id))

    async def remove(self, user_id: int | str) -> bool:
        return await self._repo.remove(str(user_id))

    async def count(self) -> int:
        return await self._repo.count()


__all__ = ["BlacklistStore", "MemoryBlacklist", "SqlBlacklist"]
