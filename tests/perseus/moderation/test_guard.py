import asyncio
from types import SimpleNamespace

import discord

from perseus.memory.blacklist import MemoryBlacklist
from perseus.moderation import DeletionCache, ModerationAction, ModerationGuard, carries_media

BOT = SimpleNamespace(id=1, bot=True)
FLAGGED = SimpleNamespace(id=100, bot=False)
CLEAN = SimpleNamespace(id=200, bot=False)


def _not_found():
    return discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown Message")


class FakeChannel:
    def __init__(self):
        self.messages = {}

    async def fetch_message(self, message_id):
        if message_id not in self.messages:
            raise _not_found()
        return self.messages[message_id]


class FakeMessage:
    def __init__(self, mid, author, content="", *, attachments=(), reply_to=None, resolved=None, channel=None,
                 already_gone=False):
        self.id = mid
        self.author = author
        self.content = content
        self.attachments = list(attachments)
        self.channel = channel or FakeChannel()
        self.reference = (
            SimpleNamespace(message_id=reply_to, resolved=resolved) if reply_to is not None else None
        )
        self.deleted = False
        self._already_gone = already_gone

    async def delete(self):
        if self._already_gone:
            raise _not_found()
        self.deleted = True


def _guard(*flagged, ttl=60.0, clock=None):
    blacklist = MemoryBlacklist()
    for uid in flagged:
        asyncio.run(blacklist.add(uid))
    cache = DeletionCache(ttl, clock=clock) if clock else DeletionCache(ttl)
    return ModerationGuard(blacklist, cache=cache)


def test_carries_media():
    assert carries_media(SimpleNamespace(content="see https://example.com/x", attachments=[]))
    assert carries_media(SimpleNamespace(content="", attachments=[object()]))
    assert not carries_media(SimpleNamespace(content="example.com without scheme", attachments=[]))


def test_flagged_user_link_is_deleted_and_recorded():
    guard = _guard(FLAGGED.id)
    message = FakeMessage(10, FLAGGED, "look http://evil.test")

    action = asyncio.run(guard.enforce(message, bot_user=BOT))

    assert action is ModerationAction.DELETE
    assert message.deleted
    assert guard.cache.lookup(10) == FLAGGED.id


def test_flagged_user_attachment_is_deleted():
    guard = _guard(FLAGGED.id)
    message = FakeMessage(11, FLAGGED, attachments=[object()])

    assert asyncio.run(guard.enforce(message, bot_user=BOT)) is ModerationAction.DELETE


def test_flagged_user_plain_text_is_allowed():
    guard = _guard(FLAGGED.id)
    message = FakeMessage(12, FLAGGED, "just chatting")

    assert asyncio.run(guard.enforce(message, bot_user=BOT)) is ModerationAction.NONE
    assert not message.deleted


def test_unflagged_user_links_are_allowed():
    guard = _guard(FLAGGED.id)
    message = FakeMessage(13, CLEAN, "https://ok.test")

    assert asyncio.run(guard.enforce(message, bot_user=BOT)) is ModerationAction.NONE


def test_bot_reply_to_deleted_message_is_cascaded():
    guard = _guard(FLAGGED.id)
    channel = FakeChannel()
    original = FakeMessage(20, FLAGGED, "https://evil.test", channel=channel)
    reply = FakeMessage(21, BOT, "Pong!", reply_to=20, channel=channel)

    async def _run():
        first = await guard.enforce(original, bot_user=BOT)
        second = await guard.enforce(reply, bot_user=BOT)
        return first, second

    assert asyncio.run(_run()) == (ModerationAction.DELETE, ModerationAction.CASCADE_DELETE)
    assert reply.deleted


def test_expired_deletion_record_does_not_cascade():
    now = [0.0]
    guard = _guard(FLAGGED.id, ttl=0.0, clock=lambda: now[0])
    channel = FakeChannel()
    original = FakeMessage(30, FLAGGED, "https://evil.test", channel=channel)
    reply = FakeMessage(31, BOT, "Pong!", reply_to=30, channel=channel)

    async def _run():
        await guard.enforce(original, bot_user=BOT)
        return await guard.enforce(reply, bot_user=BOT)

    assert asyncio.run(_run()) is ModerationAction.NONE
    assert not reply.deleted


def test_bot_reply_to_visible_flagged_media_is_deleted():
    guard = _guard(FLAGGED.id)
    parent = FakeMessage(40, FLAGGED, attachments=[object()])
    reply = FakeMessage(41, BOT, "Pong!", reply_to=40, resolved=parent)

    assert asyncio.run(guard.evaluate(reply, bot_user=BOT)) is ModerationAction.DELETE


def test_bot_reply_to_clean_message_is_kept():
    guard = _guard(FLAGGED.id)
    channel = FakeChannel()
    parent = FakeMessage(50, CLEAN, "https://ok.test", channel=channel)
    channel.messages[50] = parent
    reply = FakeMessage(51, BOT, "Pong!", reply_to=50, channel=channel)

    assert asyncio.run(guard.evaluate(reply, bot_user=BOT)) is ModerationAction.NONE


def test_other_bots_are_ignored():
    other_bot = SimpleNamespace(id=FLAGGED.id, bot=True)
    guard = _guard(FLAGGED.id)
    message = FakeMessage(60, other_bot, "https://x.test")

    assert asyncio.run(guard.enforce(message, bot_user=BOT)) is ModerationAction.NONE


def test_delete_race_is_tolerated():
    guard = _guard(FLAGGED.id)
    message = FakeMessage(70, FLAGGED, "https://evil.test", already_gone=True)

    assert asyncio.run(guard.enforce(message, bot_user=BOT)) is ModerationAction.DELETE


def test_deletion_cache_expires_lazily():
    now = [0.0]
    cache = DeletionCache(60, clock=lambda: now[0])
    cache.record(1, 100)

    now[0] = 59.9
    assert 1 in cache
    now[0] = 60.0
    assert cache.lookup(1) is None
    assert len(cache) == 0
