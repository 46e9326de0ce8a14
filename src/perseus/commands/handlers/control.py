from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from .. import register_cog


@register_cog
class Control(commands.Cog):
    """Interactive MessagingService control panel."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(name="control", description="Open the Roblox server control panel")
    @app_commands.describe(placeid="The Roblox Place ID")
    @app_commands.default_permissions(administrator=True)
    async def control(self, interaction: discord.Interaction, placeid: str) -> None:
        await self.bot.sessions.start("control", interaction, placeid)
