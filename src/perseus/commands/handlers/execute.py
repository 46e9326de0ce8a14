from __future__ import annotations

from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from .. import register_cog


@register_cog
class Execute(commands.Cog):
    """Open Cloud Luau execution on a fresh server."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(
        name="execute",
        description="Execute Luau (Open Cloud). Creates a NEW EMPTY server for dev/maintenance.",
    )
    @app_commands.describe(placeid="The Roblox Place ID", version="Specific Place Version (Optional)")
    @app_commands.default_permissions(administrator=True)
    async def execute(
        self,
        interaction: discord.Interaction,
        placeid: str,
        version: Optional[app_commands.Range[int, 1]] = None,
    ) -> None:
        await self.bot.sessions.start("execute", interaction, placeid, version=version)
