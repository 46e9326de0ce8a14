from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from .. import register_cog


@register_cog
class ViewPlace(commands.Cog):
    """Read-only server browser with player rosters."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(name="view-place", description="View active servers and players in a place")
    @app_commands.describe(placeid="The Roblox Place ID")
    @app_commands.default_permissions(administrator=True)
    async def view_place(self, interaction: discord.Interaction, placeid: str) -> None:
        await self.bot.sessions.start("browse", interaction, placeid)
