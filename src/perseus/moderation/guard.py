"""
Blacklist enforcement for inbound messages.

Blacklisted users may chat but cannot post links or attachments. The guard
also removes the bot's own replies to such messages: either because the
referenced message is still visible and disallowed, or because it was
already removed and its id sits in the short-lived :class:`DeletionCache`.
"""

from __future__ import annotations

import enum
import logging
import re
import threading
import time
from typing import Any, Callable, Dict, Tuple

import discord

from perseus.memory.blacklist import BlacklistStore

logger = logging.getLogger(__name__)

LINK_PATTERN = re.compile(r"https?://[^\s]+")


class ModerationAction(enum.Enum):
    NONE = "none"
    DELETE = "delete"
    CASCADE_DELETE = "cascade-delete"


class DeletionCache:
    """``message_id -> author_id`` for recently removed messages, expired on read."""

    def __init__(self, ttl: float = 60.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[int, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def record(self, message_id: int, author_id: int) -> None:
        now = self._clock()
        with self._lock:
            self._prune(now)
            self._entries[message_id] = (author_id, now + self.ttl)

    def lookup(self, message_id: int) -> int | None:
        """Return the author id for ``message_id`` while its entry is live."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(message_id)
            if entry is None:
                return None
            author_id, expires_at = entry
            if not now < expires_at:
                del self._entries[message_id]
                return None
            return author_id

    def __contains__(self, message_id: object) -> bool:
        return isinstance(message_id, int) and self.lookup(message_id) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _prune(self, now: float) -> None:
        stale = [mid for mid, (_, exp) in self._entries.items() if not now < exp]
        for mid in stale:
            del self._entries[mid]


def carries_media(message: Any) -> bool:
    """True when ``message`` has an attachment or an http(s) link."""

    if getattr(message, "attachments", None):
        return True
    return bool(LINK_PATTERN.search(getattr(message, "content", "") or ""))


def _reference_id(message: Any) -> int | None:
    reference = getattr(message, "reference", None)
    if reference is None:
        return None
    return getattr(reference, "message_id", None)


class ModerationGuard:
    def __init__(self, blacklist: BlacklistStore, *, cache: DeletionCache | None = None) -> None:
        self.blacklist = blacklist
        self.cache = cache or DeletionCache()

    async def _referenced_message(self, message: Any) -> Any | None:
        reference = message.reference
        resolved = getattr(reference, "resolved", None)
        if resolved is not None and not isinstance(resolved, discord.DeletedReferencedMessage):
            return resolved
        if isinstance(resolved, discord.DeletedReferencedMessage):
            return None
        try:
            return await message.channel.fetch_message(reference.message_id)
        except discord.HTTPException as exc:
            logger.debug("Could not fetch referenced message %s: %s", reference.message_id, exc)
            return None

    async def evaluate(self, message: Any, *, bot_user: Any = None) -> ModerationAction:
        """
        Decide what to do with ``message``.

        Messages authored by ``bot_user`` are checked against the message they
        reply to; other bots are ignored; humans are checked against the
        blacklist. A ``DELETE`` of a human message records it in the deletion
        cache so replies the bot already sent can be cascaded.
        """

        author = message.author
        is_self = bot_user is not None and author.id == bot_user.id

        if is_self:
            ref_id = _reference_id(message)
            if ref_id is None:
                return ModerationAction.NONE
            if self.cache.lookup(ref_id) is not None:
                return ModerationAction.CASCADE_DELETE

            referenced = await self._referenced_message(message)
            if referenced is None:
                return ModerationAction.NONE
            if await self.blacklist.is_flagged(referenced.author.id) and carries_media(referenced):
                return ModerationAction.DELETE
            return ModerationAction.NONE

        if getattr(author, "bot", False):
            return ModerationAction.NONE

        if not carries_media(message):
            return ModerationAction.NONE
        if not await self.blacklist.is_flagged(author.id):
            return ModerationAction.NONE

        self.cache.record(message.id, author.id)
        return ModerationAction.DELETE

    async def enforce(self, message: Any, *, bot_user: Any = None) -> ModerationAction:
        """Evaluate ``message`` and delete it when required."""

        try:
            action = await self.evaluate(message, bot_user=bot_user)
        except Exception:
            logger.exception("Error checking blacklist for message %s", getattr(message, "id", "?"))
            return ModerationAction.NONE

        if action is ModerationAction.NONE:
            return action

        try:
            await message.delete()
        except discord.NotFound:
            logger.debug("Message %s was already deleted", message.id)
        except discord.HTTPException:
            logger.exception("Failed to delete message %s (%s)", message.id, action.value)
        else:
            logger.info("Removed message %s from %s (%s)", message.id, message.author.id, action.value)
        return action


__all__ = ["ModerationAction", "ModerationGuard", "DeletionCache", "carries_media", "LINK_PATTERN"]
