import asyncio
import json

import aiohttp
import pytest

from perseus.clients.errors import (
    GatewayError,
    NotFoundError,
    ProvidersExhaustedError,
    PublishError,
    RateLimitError,
    TaskCreationError,
)
from perseus.clients.models import ExecutionTask, TaskState
from perseus.clients.providers import ProviderEndpoint, ProviderList
from perseus.clients.roblox import GatewayClient, encode_message
from perseus.memory.store import MemoryCacheStore

TEMPLATES = [
    "p1=https://{subdomain}.p1.test",
    "p2=https://{subdomain}.p2.test",
    "p3=https://{subdomain}.p3.test",
]


class FakeResponse:
    def __init__(self, status=200, payload=None, headers=None):
        self.status = status
        self._payload = payload
        self.headers = headers or {}

    async def json(self, content_type=None):
        if isinstance(self._payload, str):
            raise ValueError("not json")
        return self._payload

    async def text(self):
        return self._payload if isinstance(self._payload, str) else json.dumps(self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Routes requests by provider host; each route is a response or an exception."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        result = self.handler(method, url, kwargs)
        if isinstance(result, Exception):
            raise result
        return result

    def hosts(self):
        return [url.split("//", 1)[1].split("/", 1)[0] for _, url, _ in self.calls]


def make_client(session, *, cache=None, **kwargs):
    return GatewayClient(
        api_key="key",
        providers=ProviderList.from_templates(TEMPLATES),
        cache=cache if cache is not None else MemoryCacheStore(),
        session=session,
        cloud_base_url="https://cloud.test",
        **kwargs,
    )


SERVERS_PAYLOAD = {
    "data": [
        {"id": "job-a", "maxPlayers": 10, "playing": 3, "playerIds": [1, 2, 3], "fps": 59.9, "ping": 80},
        {"id": "job-b", "maxPlayers": 10, "playing": 7, "fps": 60, "ping": 40},
    ]
}


# --------------------------------------------------------------------------- #
# Provider list
# --------------------------------------------------------------------------- #


def test_promote_moves_endpoint_to_front_and_keeps_relative_order():
    providers = ProviderList.from_templates(TEMPLATES)
    snapshot = providers.try_in_order()

    providers.promote(snapshot[1])

    assert providers.names() == ["p2", "p1", "p3"]
    # Earlier snapshots are unaffected.
    assert [e.name for e in snapshot] == ["p1", "p2", "p3"]

    providers.promote(snapshot[2])
    assert providers.names() == ["p3", "p2", "p1"]


def test_provider_list_rejects_duplicates_and_empty():
    with pytest.raises(ValueError):
        ProviderList.from_templates(["a=https://x.test", "a=https://y.test"])
    with pytest.raises(ValueError):
        ProviderList([])


def test_endpoint_parse_handles_named_and_bare_templates():
    named = ProviderEndpoint.parse("indovoice=https://api.indovoice.id/{subdomain}")
    assert named.name == "indovoice"
    assert named.url_for("games", "/v1/x") == "https://api.indovoice.id/games/v1/x"

    bare = ProviderEndpoint.parse("https://{subdomain}.roproxy.com")
    assert bare.name == "roproxy.com"
    assert bare.url_for("users", "v1/users") == "https://users.roproxy.com/v1/users"


# --------------------------------------------------------------------------- #
# Failover
# --------------------------------------------------------------------------- #


def test_failover_promotes_first_successful_provider():
    def handler(method, url, kwargs):
        if ".p1.test" in url:
            return FakeResponse(500, {"errors": []})
        return FakeResponse(200, SERVERS_PAYLOAD)

    session = FakeSession(handler)
    client = make_client(session)

    servers = asyncio.run(client.list_active_servers("123"))

    assert [s.id for s in servers] == ["job-a", "job-b"]
    assert session.hosts() == ["games.p1.test", "games.p2.test"]
    assert client.providers.names() == ["p2", "p1", "p3"]

    session.calls.clear()
    asyncio.run(client.list_active_servers("123"))
    assert session.hosts() == ["games.p2.test"]


def test_failover_on_network_error():
    def handler(method, url, kwargs):
        if ".p1.test" in url or ".p2.test" in url:
            return aiohttp.ClientConnectionError("connection refused")
        return FakeResponse(200, SERVERS_PAYLOAD)

    session = FakeSession(handler)
    client = make_client(session)

    asyncio.run(client.list_active_servers("123"))

    assert session.hosts() == ["games.p1.test", "games.p2.test", "games.p3.test"]
    assert client.providers.names() == ["p3", "p1", "p2"]


def test_rate_limit_does_not_try_next_provider():
    headers = {"x-ratelimit-limit": "100", "x-ratelimit-remaining": "0", "x-ratelimit-reset": "12"}
    session = FakeSession(lambda m, u, k: FakeResponse(429, {}, headers))
    client = make_client(session)

    with pytest.raises(RateLimitError) as excinfo:
        asyncio.run(client.list_active_servers("123"))

    assert len(session.calls) == 1
    assert excinfo.value.limit == 100
    assert excinfo.value.remaining == 0
    assert excinfo.value.reset_seconds == 12
    assert excinfo.value.provider == "p1"
    assert client.providers.names() == ["p1", "p2", "p3"]


def test_all_providers_failing_raises_exhausted():
    session = FakeSession(lambda m, u, k: FakeResponse(503, "unavailable"))
    client = make_client(session)

    with pytest.raises(ProvidersExhaustedError) as excinfo:
        asyncio.run(client.list_active_servers("123"))

    assert len(session.calls) == 3
    assert excinfo.value.subdomain == "games"
    assert client.providers.names() == ["p1", "p2", "p3"]


def test_list_active_servers_requests_ascending_page():
    session = FakeSession(lambda m, u, k: FakeResponse(200, SERVERS_PAYLOAD))
    client = make_client(session, server_page_limit=50)

    asyncio.run(client.list_active_servers("999"))

    method, url, kwargs = session.calls[0]
    assert url == "https://games.p1.test/v1/games/999/servers/Public"
    assert kwargs["params"] == {"sortOrder": "Asc", "limit": 50}


# --------------------------------------------------------------------------- #
# Identifier cache
# --------------------------------------------------------------------------- #


def test_resolve_identifier_is_cached_until_expiry():
    now = [1000.0]
    cache = MemoryCacheStore(clock=lambda: now[0])
    session = FakeSession(lambda m, u, k: FakeResponse(200, [{"placeId": 5, "universeId": 77}]))
    client = make_client(session, cache=cache, identifier_ttl=3600)

    async def _run():
        first = await client.resolve_identifier("5")
        second = await client.resolve_identifier("5")
        return first, second

    assert asyncio.run(_run()) == (77, 77)
    assert len(session.calls) == 1

    now[0] += 3599
    asyncio.run(client.resolve_identifier("5"))
    assert len(session.calls) == 1

    now[0] += 1
    assert asyncio.run(client.resolve_identifier("5")) == 77
    assert len(session.calls) == 2


def test_concurrent_resolves_share_one_remote_call():
    session = FakeSession(lambda m, u, k: FakeResponse(200, [{"universeId": 9}]))
    client = make_client(session)

    async def _run():
        return await asyncio.gather(*(client.resolve_identifier("1") for _ in range(5)))

    assert asyncio.run(_run()) == [9] * 5
    assert len(session.calls) == 1


def test_resolve_identifier_not_found_is_not_cached():
    session = FakeSession(lambda m, u, k: FakeResponse(200, []))
    cache = MemoryCacheStore()
    client = make_client(session, cache=cache)

    with pytest.raises(NotFoundError):
        asyncio.run(client.resolve_identifier("404"))
    assert len(cache) == 0


def test_resolving_one_key_does_not_wait_on_another():
    release_slow = asyncio.Event()

    class SlowResponse(FakeResponse):
        async def json(self, content_type=None):
            await release_slow.wait()
            return await super().json(content_type)

    def handler(method, url, kwargs):
        if kwargs["params"]["placeIds"] == "slow":
            return SlowResponse(200, [{"universeId": 1}])
        return FakeResponse(200, [{"universeId": 2}])

    client = make_client(FakeSession(handler))

    async def _run():
        slow = asyncio.create_task(client.resolve_identifier("slow"))
        await asyncio.sleep(0)
        fast = await asyncio.wait_for(client.resolve_identifier("fast"), timeout=1)
        release_slow.set()
        return fast, await slow

    assert asyncio.run(_run()) == (2, 1)


def test_resolve_identifier_rejects_malformed_place_details():
    client = make_client(FakeSession(lambda m, u, k: FakeResponse(200, ["oops"])))

    with pytest.raises(GatewayError):
        asyncio.run(client.resolve_identifier("5"))


def test_provider_promoted_by_resolve_serves_next_listing():
    def handler(method, url, kwargs):
        if ".p1.test" in url:
            return FakeResponse(500, {"errors": []})
        if "multiget-place-details" in url:
            return FakeResponse(200, [{"universeId": 77}])
        return FakeResponse(200, SERVERS_PAYLOAD)

    session = FakeSession(handler)
    client = make_client(session)

    assert asyncio.run(client.resolve_identifier("5")) == 77
    assert session.hosts() == ["games.p1.test", "games.p2.test"]
    assert client.providers.names() == ["p2", "p1", "p3"]

    session.calls.clear()
    asyncio.run(client.list_active_servers("5"))
    assert session.hosts() == ["games.p2.test"]


# --------------------------------------------------------------------------- #
# Users
# --------------------------------------------------------------------------- #


def test_fetch_users_batches_requests():
    def handler(method, url, kwargs):
        ids = kwargs["json"]["userIds"]
        return FakeResponse(200, {"data": [{"id": i, "name": f"u{i}", "displayName": f"U{i}"} for i in ids]})

    session = FakeSession(handler)
    client = make_client(session)

    records = asyncio.run(client.fetch_users(range(1, 151)))

    assert len(records) == 150
    assert [len(k["json"]["userIds"]) for _, _, k in session.calls] == [100, 50]
    assert all(m == "POST" and "users.p1.test/v1/users" in u for m, u, _ in session.calls)
    assert records[0].display_name == "U1"


# --------------------------------------------------------------------------- #
# Open Cloud
# --------------------------------------------------------------------------- #


def test_encode_message_passes_strings_through():
    assert encode_message("kick all") == "kick all"
    assert encode_message({"JobId": "abc", "Payload": {"a": 1}}) == '{"JobId":"abc","Payload":{"a":1}}'


def test_publish_message_posts_topic_and_encoded_payload():
    session = FakeSession(lambda m, u, k: FakeResponse(200, {}))
    client = make_client(session)

    asyncio.run(client.publish_message(42, "perseus", {"JobId": "abc", "Payload": {"a": 1}}))

    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == "https://cloud.test/cloud/v2/universes/42:publishMessage"
    assert kwargs["headers"]["x-api-key"] == "key"
    assert kwargs["json"] == {"topic": "perseus", "message": '{"JobId":"abc","Payload":{"a":1}}'}


def test_publish_failure_carries_remote_message():
    session = FakeSession(lambda m, u, k: FakeResponse(400, {"message": "Topic name too long"}))
    client = make_client(session)

    with pytest.raises(PublishError) as excinfo:
        asyncio.run(client.publish_message(42, "x" * 100, "hi"))

    assert "Topic name too long" in str(excinfo.value)
    assert excinfo.value.status == 400


def test_cloud_rate_limit_raises_rate_limit_error():
    session = FakeSession(lambda m, u, k: FakeResponse(429, {}, {"x-ratelimit-reset": "30"}))
    client = make_client(session)

    with pytest.raises(RateLimitError) as excinfo:
        asyncio.run(client.publish_message(42, "perseus", "hi"))
    assert excinfo.value.reset_seconds == 30


def test_create_execution_task_with_version():
    task_path = "universes/1/places/2/versions/7/luau-execution-session-tasks/abc"
    session = FakeSession(lambda m, u, k: FakeResponse(200, {"path": task_path, "state": "QUEUED"}))
    client = make_client(session)

    task = asyncio.run(client.create_execution_task(1, "2", "print(1)", 7))

    _, url, kwargs = session.calls[0]
    assert url == "https://cloud.test/cloud/v2/universes/1/places/2/versions/7/luau-execution-session-tasks"
    assert kwargs["json"] == {"script": "print(1)"}
    assert task.task_id == "abc"
    assert task.state is TaskState.QUEUED


def test_create_execution_task_failure():
    session = FakeSession(lambda m, u, k: FakeResponse(403, {"error": {"message": "API key lacks scope"}}))
    client = make_client(session)

    with pytest.raises(TaskCreationError) as excinfo:
        asyncio.run(client.create_execution_task(1, "2", "print(1)"))
    assert "API key lacks scope" in str(excinfo.value)


def test_execution_task_logs_are_joined():
    payload = {
        "luauExecutionSessionTaskLogs": [
            {"messages": ["hello", "world"]},
            {"messages": ["done"]},
        ]
    }
    session = FakeSession(lambda m, u, k: FakeResponse(200, payload))
    client = make_client(session)

    logs = asyncio.run(client.get_execution_task_logs("universes/1/places/2/luau-execution-session-tasks/abc"))

    assert logs == "hello\nworld\ndone"
    assert session.calls[0][1].endswith("/luau-execution-session-tasks/abc/logs")


def test_execution_task_logs_failure_returns_empty_string():
    session = FakeSession(lambda m, u, k: FakeResponse(500, "boom"))
    client = make_client(session)

    assert asyncio.run(client.get_execution_task_logs("universes/1/x")) == ""


def test_close_leaves_injected_session_open():
    session = FakeSession(lambda m, u, k: FakeResponse(200, {}))
    client = make_client(session)

    asyncio.run(client.close())

    assert session.closed is False


def test_empty_task_status_counts_as_failed_poll():
    class Reporter:
        def __init__(self):
            self.events = []

        async def task_finished(self, task, logs):
            self.events.append(("finished", task))

        async def task_still_running(self, task):
            self.events.append(("running", task))

    session = FakeSession(lambda m, u, k: FakeResponse(200, None))
    client = make_client(session)
    task = ExecutionTask(path="universes/1/places/2/luau-execution-session-tasks/t", state=TaskState.QUEUED)
    reporter = Reporter()

    with pytest.raises(GatewayError):
        asyncio.run(client.get_execution_task(task.path))

    result = asyncio.run(client.poll_execution_task(task, reporter, interval=0, max_attempts=2))

    assert result is None
    assert reporter.events == [("running", task)]
