"""
Periodic background jobs.

Reads never depend on these jobs: every TTL store expires entries lazily.
The cache sweep only keeps long-running processes from accumulating dead
rows.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from perseus.memory.store import CacheStore

logger = logging.getLogger(__name__)


async def startup(task_fn: Callable[[], Awaitable[object]], interval: float) -> asyncio.Task:
    """Run ``task_fn`` every ``interval`` seconds until cancelled; failures are logged."""

    async def _periodic() -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await task_fn()
            except Exception:
                logger.exception("Maintenance cycle failed")

    return asyncio.create_task(_periodic())


async def shutdown(task: asyncio.Task | None) -> None:
    """Cancel a task started with :func:`startup`; tolerates ``None``."""

    if not task:
        return

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def sweep_cache(cache: CacheStore) -> int:
    removed = await cache.sweep()
    if removed:
        logger.info("Swept %d expired cache entr%s", removed, "y" if removed == 1 else "ies")
    return removed


__all__ = ["startup", "shutdown", "sweep_cache"]
