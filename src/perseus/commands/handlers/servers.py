from __future__ import annotations

import logging
from typing import Optional, Sequence

import discord
from discord import app_commands
from discord.ext import commands

from perseus.clients.errors import GatewayError, RateLimitError
from perseus.clients.models import ServerInstance
from perseus.sessions.render import describe_error

from .. import register_cog

logger = logging.getLogger(__name__)


def summarize(servers: Sequence[ServerInstance], place_key: str | None = None) -> str:
    total_players = sum(server.playing for server in servers)
    text = f"Found {len(servers)} active servers with a total of {total_players} players"
    if place_key is not None:
        text += f" for Place ID {place_key}"
    return text + "."


def failure_text(exc: GatewayError) -> str:
    if isinstance(exc, RateLimitError):
        return describe_error(exc)
    return f"❌ Failed to fetch server information: {exc}"


@register_cog
class Servers(commands.Cog):
    """Active server and player counts for a place."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(name="servers", description="Lists active servers for a given Place ID")
    @app_commands.describe(placeid="The Roblox Place ID")
    @app_commands.default_permissions(administrator=True)
    async def servers(self, interaction: discord.Interaction, placeid: str) -> None:
        await interaction.response.defer()
        try:
            servers = await self.bot.gateway.list_active_servers(placeid)
        except GatewayError as exc:
            logger.warning("Failed to list servers for place %s: %s", placeid, exc)
            await interaction.edit_original_response(content=failure_text(exc))
            return
        await interaction.edit_original_response(content=summarize(servers, placeid))

    @commands.command(name="servers")
    async def servers_prefix(self, ctx: commands.Context, place_key: Optional[str] = None) -> None:
        if not place_key:
            await ctx.reply("Usage: !servers <placeId>")
            return
        try:
            servers = await self.bot.gateway.list_active_servers(place_key)
        except GatewayError as exc:
            logger.warning("Failed to list servers for place %s: %s", place_key, exc)
            await ctx.reply(failure_text(exc))
            return
        await ctx.reply(summarize(servers))
