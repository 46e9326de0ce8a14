from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from .. import register_cog

SUBSCRIBER_EXAMPLE = """local MS = game:GetService("MessagingService")
local HS = game:GetService("HttpService")

local function onMsg(msg)
    local ok, decoded = pcall(function() return HS:JSONDecode(msg.Data) end)
    if ok then
        if not decoded.JobId or decoded.JobId == game.JobId then
            print("Received Payload:", decoded.Payload)
        end
    else
        print("Raw string received:", msg.Data)
    end
end

for _, topic in {{ "{p}", "{p}-all", "{p}-admin", "{p}-all-admin" }} do
    MS:SubscribeAsync(topic, onMsg)
end"""


def build_embed(prefix: str = "perseus") -> discord.Embed:
    """Setup guide for the game-side MessagingService subscriber."""

    embed = discord.Embed(
        title="📘 Roblox Setup",
        description="Use `MessagingService:SubscribeAsync` to handle bot commands.",
        colour=0x00B0F4,
    )
    embed.add_field(
        name="📡 Topics & Data Types",
        value=(
            f"• `{prefix}` / `{prefix}-all`: **Objects** (JSON) or **Strings**.\n"
            f"• `{prefix}-admin` / `{prefix}-all-admin`: **Strings** (chat commands)."
        ),
        inline=False,
    )
    embed.add_field(
        name="📦 Message Structure (msg.Data)",
        value=(
            f'• **{prefix}**: `{{"JobId": "...", "Payload": {{}}}}`\n'
            f'• **{prefix}-all**: `{{"Payload": {{}}}}`\n'
            f'• **{prefix}-admin**: `{{"JobId": "...", "Payload": "string"}}`\n'
            f'• **{prefix}-all-admin**: `{{"Payload": "string"}}`'
        ),
        inline=False,
    )
    embed.add_field(
        name="⏳ Rate Limits (Roblox Cloud API)",
        value=(
            "When limits are reached Roblox returns:\n"
            "• `x-ratelimit-limit`: total quota.\n"
            "• `x-ratelimit-remaining`: requests left in the window.\n"
            "• `x-ratelimit-reset`: seconds until the quota resets."
        ),
        inline=False,
    )
    embed.add_field(
        name="🚀 Luau Execution (/execute)",
        value=(
            "`/execute` uses Open Cloud **Luau Execution**. It does **not** run in live servers; "
            "it starts a new, empty server for maintenance, migrations or debugging."
        ),
        inline=False,
    )
    embed.add_field(
        name="📜 Example",
        value=f"```lua\n{SUBSCRIBER_EXAMPLE.format(p=prefix)}\n```",
        inline=False,
    )
    return embed


@register_cog
class HowTo(commands.Cog):
    """Quick guide for the game-side integration."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(name="howto", description="Quick guide for Roblox integration")
    async def howto(self, interaction: discord.Interaction) -> None:
        prefix = getattr(self.bot, "topic_prefix", "perseus")
        await interaction.response.send_message(embed=build_embed(prefix), ephemeral=True)
