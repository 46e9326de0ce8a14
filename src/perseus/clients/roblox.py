"""
Roblox gateway client
=====================

Talks to two REST surfaces:

- the public web APIs (``games``, ``users``), reachable through several
  interchangeable providers tried in :class:`~perseus.clients.providers.ProviderList`
  order;
- Open Cloud (``apis.roblox.com/cloud/v2``) for MessagingService publishing
  and Luau execution session tasks, authenticated with ``x-api-key``.

One :class:`GatewayClient` is built per process (see
:class:`perseus.clients.disc.PerseusBot`) and passed to whoever needs it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Protocol

import aiohttp

from .errors import (
    GatewayError,
    NotFoundError,
    ProvidersExhaustedError,
    PublishError,
    RateLimitError,
    TaskCreationError,
    TransientProviderError,
)
from .models import ExecutionTask, ServerInstance, UserRecord
from .providers import ProviderEndpoint, ProviderList
from ..memory.store import CacheStore

logger = logging.getLogger(__name__)

USER_BATCH_SIZE = 100


class TaskReporter(Protocol):
    """Receives the outcome of :meth:`GatewayClient.poll_execution_task`."""

    async def task_finished(self, task: ExecutionTask, logs: str) -> None: ...

    async def task_still_running(self, task: ExecutionTask) -> None: ...


def _header_number(headers: Mapping[str, str], name: str) -> float | None:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def rate_limit_from_headers(headers: Mapping[str, str], *, provider: str | None = None) -> RateLimitError:
    """Build a :class:`RateLimitError` from ``x-ratelimit-*`` headers."""

    limit = _header_number(headers, "x-ratelimit-limit")
    remaining = _header_number(headers, "x-ratelimit-remaining")
    return RateLimitError(
        limit=int(limit) if limit is not None else None,
        remaining=int(remaining) if remaining is not None else None,
        reset_seconds=_header_number(headers, "x-ratelimit-reset"),
        provider=provider,
    )


def _remote_message(payload: Any, status: int) -> str:
    """Pull the human-readable diagnostic out of an Open Cloud error body."""

    if isinstance(payload, dict):
        for key in ("message", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return str(errors[0].get("message") or f"HTTP {status}")
    if isinstance(payload, str) and payload.strip():
        return payload.strip()[:300]
    return f"HTTP {status}"


def encode_message(payload: Any) -> str:
    """Strings are sent verbatim; everything else as compact JSON."""

    if isinstance(payload, str):
        return payload
    return json.dumps(payload, separators=(",", ":"))


class GatewayClient:
    """Async client for the Roblox APIs the bot depends on."""

    def __init__(
        self,
        *,
        api_key: str,
        providers: ProviderList,
        cache: CacheStore,
        session: aiohttp.ClientSession | None = None,
        cloud_base_url: str = "https://apis.roblox.com",
        identifier_ttl: float = 3600,
        request_timeout: float = 10.0,
        server_page_limit: int = 100,
        poll_interval: float = 3.0,
        poll_attempts: int = 20,
    ) -> None:
        self._api_key = api_key
        self.providers = providers
        self._cache = cache
        self._session = session
        self._owns_session = session is None
        self.cloud_base_url = cloud_base_url.rstrip("/")
        self.identifier_ttl = identifier_ttl
        self.request_timeout = request_timeout
        self.server_page_limit = server_page_limit
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self._resolve_locks: Dict[str, asyncio.Lock] = {}
        self._pollers: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: Any, cache: CacheStore) -> "GatewayClient":
        """Build a client from the :mod:`perseus.config` sections."""

        return cls(
            api_key=config.core.ROBLOX_API_KEY,
            providers=ProviderList.from_templates(config.roblox.PROVIDERS),
            cache=cache,
            cloud_base_url=config.roblox.CLOUD_BASE_URL,
            identifier_ttl=config.storage.IDENTIFIER_TTL,
            request_timeout=config.roblox.REQUEST_TIMEOUT,
            server_page_limit=config.roblox.SERVER_PAGE_LIMIT,
            poll_interval=config.roblox.POLL_INTERVAL,
            poll_attempts=config.roblox.POLL_ATTEMPTS,
        )

    # ------------------------------------------------------------------ #
    # HTTP plumbing
    # ------------------------------------------------------------------ #

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _attempt(
        self,
        endpoint: ProviderEndpoint,
        subdomain: str,
        path: str,
        *,
        method: str,
        params: Dict[str, Any] | None,
        json_body: Any,
    ) -> Any:
        url = endpoint.url_for(subdomain, path)
        logger.debug("Attempting %s %s", method, url)
        try:
            async with self._http().request(method, url, params=params, json=json_body) as resp:
                if resp.status == 429:
                    raise rate_limit_from_headers(resp.headers, provider=endpoint.name)
                if resp.status >= 400:
                    raise TransientProviderError(
                        endpoint.name, f"HTTP {resp.status} for {path}", status=resp.status
                    )
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise TransientProviderError(endpoint.name, str(exc) or exc.__class__.__name__) from exc

    async def request(
        self,
        subdomain: str,
        path: str,
        *,
        method: str = "GET",
        params: Dict[str, Any] | None = None,
        json_body: Any = None,
    ) -> Any:
        """
        Call a public web API with provider failover.

        Providers are tried in preference order. The first success is promoted
        to the front of the list. A 429 aborts the whole request with
        :class:`RateLimitError`; other failures move on to the next provider.
        """

        last_error: TransientProviderError | None = None
        for endpoint in self.providers.try_in_order():
            try:
                data = await self._attempt(
                    endpoint, subdomain, path, method=method, params=params, json_body=json_body
                )
            except RateLimitError:
                logger.warning("Provider %s rate limited %s request; not retrying", endpoint.name, subdomain)
                raise
            except TransientProviderError as exc:
                logger.warning("Failed to fetch from provider %s for %s: %s", endpoint.name, subdomain, exc)
                last_error = exc
                continue

            self.providers.promote(endpoint)
            return data

        logger.error("All providers failed for %s request.", subdomain)
        raise ProvidersExhaustedError(subdomain, last_error) from last_error

    async def _cloud(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        error_cls: type[GatewayError] = GatewayError,
    ) -> Any:
        """Single-endpoint Open Cloud call; raises ``error_cls`` with the remote message."""

        url = f"{self.cloud_base_url}/cloud/v2/{path.lstrip('/')}"
        headers = {"x-api-key": self._api_key, "Content-Type": "application/json"}
        try:
            async with self._http().request(method, url, json=json_body, headers=headers) as resp:
                if resp.status == 429:
                    raise rate_limit_from_headers(resp.headers, provider="cloud")
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    payload = await resp.text()
                if resp.status >= 400:
                    raise error_cls(_remote_message(payload, resp.status), status=resp.status)
                return payload
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise error_cls(str(exc) or exc.__class__.__name__) from exc

    # ------------------------------------------------------------------ #
    # Public web APIs
    # ------------------------------------------------------------------ #

    async def resolve_identifier(self, place_key: str) -> int:
        """Return the universe id that owns ``place_key`` (cached for an hour)."""

        cache_key = f"place:{place_key}"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return int(cached)

        # One lookup in flight per key; other keys are never blocked.
        lock = self._resolve_locks.setdefault(place_key, asyncio.Lock())
        try:
            async with lock:
                # Another caller may have filled the cache while we waited.
                cached = await self._cache.get(cache_key)
                if cached is not None:
                    return int(cached)

                data = await self.request(
                    "games",
                    "/v1/games/multiget-place-details",
                    params={"placeIds": place_key},
                )
                if not isinstance(data, list) or not data:
                    raise NotFoundError(f"Universe ID not found for place {place_key}.")
                if not isinstance(data[0], dict):
                    raise GatewayError(f"Unexpected place details payload for {place_key}")
                if not data[0].get("universeId"):
                    raise NotFoundError(f"Universe ID not found for place {place_key}.")

                universe_id = int(data[0]["universeId"])
                await self._cache.set(cache_key, universe_id, self.identifier_ttl)
                return universe_id
        finally:
            if not lock.locked() and self._resolve_locks.get(place_key) is lock:
                del self._resolve_locks[place_key]

    async def list_active_servers(self, place_key: str, limit: int | None = None) -> List[ServerInstance]:
        """Fetch one page of public servers. Not cached, not sorted."""

        data = await self.request(
            "games",
            f"/v1/games/{place_key}/servers/Public",
            params={"sortOrder": "Asc", "limit": limit or self.server_page_limit},
        )
        rows = data.get("data", []) if isinstance(data, dict) else []
        return [ServerInstance.from_api(row) for row in rows]

    async def fetch_users(self, user_ids: Iterable[int]) -> List[UserRecord]:
        """Look up user names in batches of ``USER_BATCH_SIZE``."""

        ids = list(dict.fromkeys(int(uid) for uid in user_ids))
        records: List[UserRecord] = []
        for start in range(0, len(ids), USER_BATCH_SIZE):
            batch = ids[start:start + USER_BATCH_SIZE]
            data = await self.request(
                "users",
                "/v1/users",
                method="POST",
                json_body={"userIds": batch, "excludeBannedUsers": False},
            )
            rows = data.get("data", []) if isinstance(data, dict) else []
            records.extend(UserRecord.from_api(row) for row in rows)
        return records

    # ------------------------------------------------------------------ #
    # Open Cloud
    # ------------------------------------------------------------------ #

    async def publish_message(self, target_id: int, topic: str, payload: Any) -> None:
        """Publish ``payload`` to ``topic`` on every server of universe ``target_id``."""

        body = {"topic": topic, "message": encode_message(payload)}
        await self._cloud(
            "POST",
            f"universes/{target_id}:publishMessage",
            json_body=body,
            error_cls=PublishError,
        )
        logger.info("Published %d byte(s) to topic %s in universe %s", len(body["message"]), topic, target_id)

    async def create_execution_task(
        self,
        target_id: int,
        place_key: str,
        script: str,
        version: int | None = None,
    ) -> ExecutionTask:
        """Start a Luau execution session task on a fresh server."""

        path = f"universes/{target_id}/places/{place_key}"
        if version is not None:
            path += f"/versions/{version}"
        path += "/luau-execution-session-tasks"

        data = await self._cloud("POST", path, json_body={"script": script}, error_cls=TaskCreationError)
        if not isinstance(data, dict) or not data.get("path"):
            raise TaskCreationError("Task creation returned no task path")
        task = ExecutionTask.from_api(data)
        logger.info("Created execution task %s (state=%s)", task.path, task.state.value)
        return task

    async def get_execution_task(self, path: str) -> ExecutionTask:
        data = await self._cloud("GET", path)
        if not isinstance(data, dict):
            raise GatewayError(f"Unexpected task payload for {path}")
        return ExecutionTask.from_api(data)

    async def get_execution_task_logs(self, path: str) -> str:
        """Return the task's log lines joined by newlines; ``""`` on any failure."""

        try:
            data = await self._cloud("GET", f"{path}/logs")
        except GatewayError as exc:
            logger.warning("Failed to fetch logs for %s: %s", path, exc)
            return ""

        if not isinstance(data, dict):
            return ""
        lines: List[str] = []
        for entry in data.get("luauExecutionSessionTaskLogs", []) or []:
            lines.extend(str(m) for m in entry.get("messages", []) or [])
        return "\n".join(lines)

    # ------------------------------------------------------------------ #
    # Task polling
    # ------------------------------------------------------------------ #

    async def poll_execution_task(
        self,
        task: ExecutionTask,
        reporter: TaskReporter,
        *,
        interval: float | None = None,
        max_attempts: int | None = None,
    ) -> ExecutionTask | None:
        """
        Poll ``task`` until it reaches a terminal state or the budget runs out.

        On a terminal state the logs are fetched and handed to
        ``reporter.task_finished``. When the attempts are exhausted,
        ``reporter.task_still_running`` is called once and polling stops; the
        remote task keeps running. Returns the terminal task, or ``None``.
        """

        interval = self.poll_interval if interval is None else interval
        max_attempts = self.poll_attempts if max_attempts is None else max_attempts

        observed = task
        if not observed.state.is_terminal:
            for attempt in range(1, max_attempts + 1):
                await asyncio.sleep(interval)
                try:
                    current = await self.get_execution_task(task.path)
                except GatewayError as exc:
                    logger.warning("Polling %s failed (attempt %d/%d): %s", task.path, attempt, max_attempts, exc)
                    continue

                if current.state.rank < observed.state.rank:
                    logger.debug("Ignoring stale state %s for %s", current.state.value, task.path)
                    continue
                observed = current
                if observed.state.is_terminal:
                    break
            else:
                logger.info("Stopped polling %s after %d attempts; task still running", task.path, max_attempts)
                await reporter.task_still_running(observed)
                return None

        logs = await self.get_execution_task_logs(task.path)
        await reporter.task_finished(observed, logs)
        return observed

    def spawn_poller(self, task: ExecutionTask, reporter: TaskReporter) -> asyncio.Task:
        """Run :meth:`poll_execution_task` detached from the caller."""

        poller = asyncio.create_task(self.poll_execution_task(task, reporter))
        self._pollers.add(poller)
        poller.add_done_callback(self._poller_done)
        return poller

    def _poller_done(self, poller: asyncio.Task) -> None:
        self._pollers.discard(poller)
        if poller.cancelled():
            return
        exc = poller.exception()
        if exc is not None:
            logger.error("Execution task poller failed", exc_info=exc)


__all__ = ["GatewayClient", "TaskReporter", "encode_message", "rate_limit_from_headers"]
