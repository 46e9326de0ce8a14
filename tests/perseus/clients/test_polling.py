import asyncio

from perseus.clients.errors import GatewayError
from perseus.clients.models import ExecutionTask, TaskState
from perseus.clients.providers import ProviderList
from perseus.clients.roblox import GatewayClient
from perseus.memory.store import MemoryCacheStore

TASK_PATH = "universes/1/places/2/luau-execution-session-tasks/t1"


class RecordingReporter:
    def __init__(self):
        self.finished = []
        self.still_running = []

    async def task_finished(self, task, logs):
        self.finished.append((task, logs))

    async def task_still_running(self, task):
        self.still_running.append(task)


def _client(monkeypatch, states, logs="log line"):
    """Client whose task lookups replay ``states`` (a state or an exception per tick)."""

    client = GatewayClient(
        api_key="key",
        providers=ProviderList.from_templates(["p=https://{subdomain}.p.test"]),
        cache=MemoryCacheStore(),
        poll_interval=0,
    )
    replay = list(states)
    calls = []

    async def fake_get(path):
        calls.append(path)
        item = replay.pop(0)
        if isinstance(item, Exception):
            raise item
        return ExecutionTask(path=path, state=item, output={"results": [1]} if item is TaskState.COMPLETE else None)

    async def fake_logs(path):
        return logs

    monkeypatch.setattr(client, "get_execution_task", fake_get)
    monkeypatch.setattr(client, "get_execution_task_logs", fake_logs)
    return client, calls


def _queued():
    return ExecutionTask(path=TASK_PATH, state=TaskState.QUEUED)


def test_poll_reports_terminal_state_with_logs(monkeypatch):
    client, calls = _client(monkeypatch, [TaskState.PROCESSING, TaskState.COMPLETE])
    reporter = RecordingReporter()

    result = asyncio.run(client.poll_execution_task(_queued(), reporter, max_attempts=5))

    assert result.state is TaskState.COMPLETE
    assert len(calls) == 2
    assert reporter.still_running == []
    [(task, logs)] = reporter.finished
    assert task.results == [1]
    assert logs == "log line"


def test_poll_gives_up_with_single_still_running_notice(monkeypatch):
    client, calls = _client(monkeypatch, [TaskState.PROCESSING] * 3)
    reporter = RecordingReporter()

    result = asyncio.run(client.poll_execution_task(_queued(), reporter, max_attempts=3))

    assert result is None
    assert len(calls) == 3
    assert reporter.finished == []
    assert len(reporter.still_running) == 1


def test_poll_ignores_backwards_state(monkeypatch):
    client, _ = _client(monkeypatch, [TaskState.PROCESSING, TaskState.QUEUED])
    reporter = RecordingReporter()

    asyncio.run(client.poll_execution_task(_queued(), reporter, max_attempts=2))

    [observed] = reporter.still_running
    assert observed.state is TaskState.PROCESSING


def test_poll_errors_consume_attempts(monkeypatch):
    client, calls = _client(
        monkeypatch, [GatewayError("blip"), GatewayError("blip"), TaskState.FAILED]
    )
    reporter = RecordingReporter()

    result = asyncio.run(client.poll_execution_task(_queued(), reporter, max_attempts=3))

    assert result.state is TaskState.FAILED
    assert len(calls) == 3
    assert len(reporter.finished) == 1


def test_poll_errors_can_exhaust_budget(monkeypatch):
    client, calls = _client(monkeypatch, [GatewayError("blip"), GatewayError("blip")])
    reporter = RecordingReporter()

    assert asyncio.run(client.poll_execution_task(_queued(), reporter, max_attempts=2)) is None
    assert len(calls) == 2
    assert len(reporter.still_running) == 1


def test_already_terminal_task_is_reported_without_polling(monkeypatch):
    client, calls = _client(monkeypatch, [])
    reporter = RecordingReporter()
    task = ExecutionTask(path=TASK_PATH, state=TaskState.CANCELLED)

    asyncio.run(client.poll_execution_task(task, reporter, max_attempts=3))

    assert calls == []
    assert reporter.finished[0][0] is task


def test_spawned_poller_is_tracked_until_done(monkeypatch):
    client, _ = _client(monkeypatch, [TaskState.COMPLETE])
    reporter = RecordingReporter()

    async def _run():
        poller = client.spawn_poller(_queued(), reporter)
        assert poller in client._pollers
        await poller
        await asyncio.sleep(0)
        return poller

    poller = asyncio.run(_run())

    assert poller.result().state is TaskState.COMPLETE
    assert client._pollers == set()


def test_spawned_poller_failure_is_logged(monkeypatch, caplog):
    client, _ = _client(monkeypatch, [TaskState.COMPLETE])

    class BrokenReporter(RecordingReporter):
        async def task_finished(self, task, logs):
            raise RuntimeError("discord went away")

    async def _run():
        poller = client.spawn_poller(_queued(), BrokenReporter())
        await asyncio.wait({poller})
        await asyncio.sleep(0)

    with caplog.at_level("ERROR"):
        asyncio.run(_run())

    assert "Execution task poller failed" in caplog.text
    assert client._pollers == set()
