import asyncio

from perseus.clients.models import UserRecord
from perseus.memory.store import MemoryCacheStore
from perseus.memory.users import UserDirectory


class FakeGateway:
    def __init__(self):
        self.requested = []

    async def fetch_users(self, ids):
        ids = list(ids)
        self.requested.append(ids)
        # Unknown / banned ids are simply absent from the response.
        return [UserRecord(id=i, name=f"user{i}", display_name=f"User {i}") for i in ids if i != 404]


def test_resolve_only_fetches_cache_misses():
    gateway = FakeGateway()
    directory = UserDirectory(gateway, MemoryCacheStore())

    async def _run():
        first = await directory.resolve([1, 2])
        second = await directory.resolve([3, 2, 1])
        return first, second

    first, second = asyncio.run(_run())

    assert [u.id for u in first] == [1, 2]
    assert [u.id for u in second] == [3, 2, 1]
    assert gateway.requested == [[1, 2], [3]]


def test_resolve_skips_unknown_users():
    gateway = FakeGateway()
    directory = UserDirectory(gateway, MemoryCacheStore())

    records = asyncio.run(directory.resolve([404, 7, 7]))

    assert [r.name for r in records] == ["user7"]
    assert gateway.requested == [[404, 7]]


def test_cached_users_expire_after_ttl():
    now = [0.0]
    gateway = FakeGateway()
    directory = UserDirectory(gateway, MemoryCacheStore(clock=lambda: now[0]), ttl=100)

    asyncio.run(directory.resolve([1]))
    now[0] = 100.0
    asyncio.run(directory.resolve([1]))

    assert gateway.requested == [[1], [1]]
