import logging

import discord

logger = logging.getLogger(__name__)


async def handle(client: discord.Client):
    """Log identity and storage mode once the gateway session is ready."""

    logger.info(f"Logged in as {client.user.name} (ID: {client.user.id})")

    backends = getattr(client, "backends", None)
    if backends is None:
        return
    if backends.degraded:
        logger.error("Durable storage unavailable; blacklist and caches are in-memory only")
    else:
        logger.info("Storage backend ready (durable=%s)", backends.durable)

    gateway = getattr(client, "gateway", None)
    if gateway is not None:
        logger.info("Roblox providers in order: %s", ", ".join(gateway.providers.names()))

    start_maintenance = getattr(client, "start_maintenance", None)
    if start_maintenance is not None:
        await start_maintenance()
