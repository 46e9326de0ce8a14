from __future__ import annotations

import logging
import re
import sqlite3

import discord
from discord import app_commands
from discord.ext import commands

from .. import register_cog

logger = logging.getLogger(__name__)

USAGE = "Usage: !blacklist <add|remove> <userId>"
_MENTION_CHARS = re.compile(r"[<@!>]")


def parse_user_id(raw: str) -> str | None:
    """Accept a raw id or a ``<@id>`` / ``<@!id>`` mention."""

    cleaned = _MENTION_CHARS.sub("", raw or "").strip()
    return cleaned if cleaned.isdigit() else None


@register_cog
class Blacklist(commands.Cog):
    """Manage users barred from posting links and attachments."""

    group = app_commands.Group(
        name="blacklist",
        description="Manage user blacklist for links and attachments",
        default_permissions=discord.Permissions(administrator=True),
    )

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @property
    def store(self):
        return self.bot.backends.blacklist

    async def _update(self, action: str, user_id: int | str) -> bool:
        if action == "add":
            return await self.store.add(user_id)
        return await self.store.remove(user_id)

    @group.command(name="add", description="Add a user to the blacklist")
    @app_commands.describe(user="The user to blacklist")
    async def add(self, interaction: discord.Interaction, user: discord.User) -> None:
        await self._respond(interaction, "add", user)

    @group.command(name="remove", description="Remove a user from the blacklist")
    @app_commands.describe(user="The user to un-blacklist")
    async def remove(self, interaction: discord.Interaction, user: discord.User) -> None:
        await self._respond(interaction, "remove", user)

    @group.command(name="status", description="Show blacklist storage status")
    async def status(self, interaction: discord.Interaction) -> None:
        backends = self.bot.backends
        count = await self.store.count()
        lines = [
            f"**Storage:** {'sqlite' if backends.durable else 'memory'}",
            f"**Blacklisted users:** {count}",
        ]
        if backends.degraded:
            lines.append("⚠️ Durable storage is unavailable; entries will not survive a restart.")
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    async def _respond(self, interaction: discord.Interaction, action: str, user: discord.User) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            changed = await self._update(action, user.id)
        except sqlite3.Error:
            logger.exception("Blacklist %s failed for %s", action, user.id)
            await interaction.edit_original_response(content="An error occurred while updating the blacklist.")
            return

        logger.info("Blacklist %s %s by %s (changed=%s)", action, user.id, interaction.user.id, changed)
        if action == "add":
            text = f"Successfully added {user} to the blacklist." if changed else f"{user} is already blacklisted."
        else:
            text = f"Successfully removed {user} from the blacklist." if changed else f"{user} was not blacklisted."
        await interaction.edit_original_response(content=text)

    @commands.command(name="blacklist")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def blacklist_prefix(self, ctx: commands.Context, action: str = "", target: str = "") -> None:
        action = action.lower()
        user_id = parse_user_id(target)
        if action not in ("add", "remove") or user_id is None:
            await ctx.reply(USAGE)
            return

        try:
            await self._update(action, user_id)
        except sqlite3.Error:
            logger.exception("Blacklist %s failed for %s", action, user_id)
            await ctx.reply("An error occurred while updating the blacklist.")
            return

        logger.info("Blacklist %s %s by %s", action, user_id, ctx.author.id)
        verb = "added user {} to" if action == "add" else "removed user {} from"
        await ctx.reply(f"Successfully {verb.format(user_id)} the blacklist.")

    @blacklist_prefix.error
    async def blacklist_prefix_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, (commands.MissingPermissions, commands.NoPrivateMessage)):
            await ctx.reply("You do not have permission to use this command.")
            return
        logger.error("Unhandled !blacklist error", exc_info=error)
