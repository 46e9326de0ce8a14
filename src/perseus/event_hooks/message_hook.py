import logging

import discord
from discord.ext import commands

from perseus.moderation import ModerationAction

logger = logging.getLogger(__name__)


async def handle(client: commands.Bot, message: discord.Message) -> ModerationAction:
    """Run blacklist enforcement, then prefix commands for surviving messages."""

    guard = getattr(client, "guard", None)
    if guard is not None:
        action = await guard.enforce(message, bot_user=client.user)
        if action is not ModerationAction.NONE:
            return action
    else:
        action = ModerationAction.NONE

    # Bots (including ourselves) never trigger prefix commands.
    if message.author.bot:
        return action

    await client.process_commands(message)
    return action
