"""
User directory.

Resolves Roblox user ids to ``{id, name, displayName}`` records for server
rosters. Records are cached per user for a day in the shared
:class:`~perseus.memory.store.CacheStore`; only the misses hit the users API.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List

from perseus.clients.models import UserRecord

from .store import CacheStore

if TYPE_CHECKING:
    from perseus.clients.roblox import GatewayClient

logger = logging.getLogger(__name__)


class UserDirectory:
    def __init__(self, gateway: "GatewayClient", cache: CacheStore, *, ttl: float = 86400) -> None:
        self._gateway = gateway
        self._cache = cache
        self.ttl = ttl

    @staticmethod
    def _key(user_id: int) -> str:
        return f"user:{user_id}"

    async def resolve(self, user_ids: Iterable[int]) -> List[UserRecord]:
        """Return records in the order of ``user_ids``; unknown ids are skipped."""

        ids = list(dict.fromkeys(int(uid) for uid in user_ids))
        found: Dict[int, UserRecord] = {}
        missing: List[int] = []

        for uid in ids:
            cached = await self._cache.get(self._key(uid))
            if cached is None:
                missing.append(uid)
            else:
                found[uid] = UserRecord.from_api(cached)

        if missing:
            logger.debug("Resolving %d uncached user id(s)", len(missing))
            for record in await self._gateway.fetch_users(missing):
                found[record.id] = record
                await self._cache.set(self._key(record.id), record.to_dict(), self.ttl)

        return [found[uid] for uid in ids if uid in found]


__all__ = ["UserDirectory"]
