from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from .. import register_cog


@register_cog
class Ping(commands.Cog):
    """Liveness check."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(name="ping", description="Replies with Pong!")
    async def ping(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message("Pong!")

    @commands.command(name="ping")
    async def ping_prefix(self, ctx: commands.Context) -> None:
        await ctx.reply("Pong!")
