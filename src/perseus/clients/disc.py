"""Discord bot bootstrap utilities."""

from __future__ import annotations

import asyncio
import logging
from functools import partial

import discord
from discord import app_commands
from discord.ext import commands as discord_commands

from perseus import commands as perseus_commands
from perseus import maintenance
from perseus.config import Config, core
from perseus.event_hooks import message_hook, ready_hook
from perseus.memory import Backends, open_backends
from perseus.memory.users import UserDirectory
from perseus.moderation import DeletionCache, ModerationGuard
from perseus.sessions import SessionController
from perseus.sessions.views import respond_ephemeral

from .roblox import GatewayClient

logger = logging.getLogger(__name__)

# --- Intents --------------------------------------------------------------- #
intents = discord.Intents.default()
intents.message_content = True


class PerseusBot(discord_commands.Bot):
    """Operator bot: slash/prefix commands, sessions and blacklist moderation."""

    def __init__(self, config: type[Config] | Config = Config) -> None:
        super().__init__(command_prefix=config.core.COMMAND_PREFIX, intents=intents)
        self.config = config
        self.topic_prefix = config.roblox.TOPIC_PREFIX
        self.backends: Backends | None = None
        self.gateway: GatewayClient | None = None
        self.users: UserDirectory | None = None
        self.guard: ModerationGuard | None = None
        self.sessions: SessionController | None = None
        self.sweeper: asyncio.Task | None = None
        self.tree.on_error = self.on_app_command_error

    def build_services(self) -> None:
        """Wire storage, the Roblox gateway, moderation and sessions."""

        cfg = self.config
        self.backends = open_backends(cfg.storage.BACKEND, cfg.storage.DB_PATH)
        self.gateway = GatewayClient.from_config(cfg, self.backends.cache)
        self.users = UserDirectory(self.gateway, self.backends.cache, ttl=cfg.storage.USER_TTL)
        self.guard = ModerationGuard(
            self.backends.blacklist, cache=DeletionCache(ttl=cfg.storage.MODERATION_TTL)
        )
        self.sessions = SessionController(
            self.gateway,
            self.users,
            settings=cfg.sessions,
            topic_prefix=cfg.roblox.TOPIC_PREFIX,
            elevated_role_ids=cfg.core.ELEVATED_ROLE_IDS,
        )

    async def start_maintenance(self) -> None:
        """Start the periodic cache sweep once per process."""

        if self.sweeper is not None or self.backends is None:
            return
        self.sweeper = await maintenance.startup(
            partial(maintenance.sweep_cache, self.backends.cache), self.config.storage.SWEEP_INTERVAL
        )

    async def setup_hook(self) -> None:
        """Build services, register cogs and synchronise the command tree."""

        if self.sessions is None:
            self.build_services()
        await perseus_commands.setup(self)

        guild_id = self.config.core.DISCORD_GUILD_ID
        try:
            if guild_id:
                guild = discord.Object(id=guild_id)
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
                logger.info("Synced %d application command(s) to guild %s", len(synced), guild_id)
            else:
                synced = await self.tree.sync()
                logger.info("Synced %d application command(s)", len(synced))
        except discord.HTTPException:
            logger.exception("Failed to sync application commands")

    async def on_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            await respond_ephemeral(interaction, "You do not have permission to use this command.")
            return
        command = interaction.command.qualified_name if interaction.command else "?"
        logger.error("Error executing /%s", command, exc_info=error)
        try:
            await respond_ephemeral(interaction, "There was an error while executing this command!")
        except discord.HTTPException:
            logger.debug("Could not report error for /%s", command)

    async def on_command_error(self, ctx: discord_commands.Context, error: discord_commands.CommandError) -> None:
        if isinstance(error, discord_commands.CommandNotFound):
            return
        if ctx.command is not None and ctx.command.has_error_handler():
            return
        logger.error("Error executing %s%s", ctx.prefix, ctx.invoked_with, exc_info=error)
        try:
            await ctx.reply("There was an error trying to execute that command!")
        except discord.HTTPException:
            logger.debug("Could not report error for %s", ctx.invoked_with)

    async def on_error(self, event_method: str, /, *args, **kwargs) -> None:
        logger.exception("Unhandled error in %s", event_method)

    async def close(self) -> None:
        await maintenance.shutdown(self.sweeper)
        self.sweeper = None
        if self.sessions is not None:
            await self.sessions.close_all("Bot is shutting down.")
        if self.gateway is not None:
            await self.gateway.close()
        if self.backends is not None:
            self.backends.close()
        await super().close()


bot = PerseusBot()


@bot.event
async def on_ready() -> None:
    await ready_hook.handle(bot)


@bot.event
async def on_message(message: discord.Message) -> None:
    await message_hook.handle(bot, message)


def run() -> None:
    """Start the Discord bot using configuration from the environment."""

    if not core.DISCORD_TOKEN:
        logger.error("No DISCORD_TOKEN configured. Cannot run client.")
        return

    try:
        bot.run(core.DISCORD_TOKEN, log_handler=None)
    except discord.LoginFailure as exc:
        logger.error("Login failed: %s", exc)
