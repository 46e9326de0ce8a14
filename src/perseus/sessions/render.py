"""Discord embed/message builders.

Pure construction helpers for the session views. Keeping them apart from the
views makes them easy to unit test and reuse across commands.
"""

from __future__ import annotations

import json
from typing import Any, List, Sequence

import discord

from perseus.clients.errors import (
    GatewayError,
    NotFoundError,
    ProvidersExhaustedError,
    PublishError,
    RateLimitError,
    TaskCreationError,
)
from perseus.clients.models import ExecutionTask, ServerInstance, TaskState, UserRecord

from .state import BrowseSession, ControlSession, OutboundMessage

FIELD_LIMIT = 1024
PREVIEW_LIMIT = 1000
# Embeds are capped at 6000 characters in total.
ROSTER_BUDGET = 4500

COLOR_INFO = 0x5865F2
COLOR_DETAILS = 0x00B0F4
COLOR_WARN = 0xFEE75C
COLOR_OK = 0x57F287
COLOR_ERROR = 0xED4245


def truncate(text: str, limit: int, suffix: str = "... (truncated)") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def chunk_lines(text: str, limit: int = FIELD_LIMIT) -> List[str]:
    """Split ``text`` on newlines into chunks no longer than ``limit``."""

    if len(text) <= limit:
        return [text]
    chunks: List[str] = []
    current = ""
    for line in text.split("\n"):
        line = line[:limit - 1]
        if current and len(current) + len(line) + 1 > limit:
            chunks.append(current.rstrip("\n"))
            current = ""
        current += line + "\n"
    if current.strip():
        chunks.append(current.rstrip("\n"))
    return chunks


def describe_error(exc: BaseException) -> str:
    """Operator-facing text for a gateway failure."""

    if isinstance(exc, RateLimitError):
        parts = ["⏳ Roblox rate limit reached."]
        if exc.remaining is not None:
            parts.append(f"Remaining: {exc.remaining}.")
        if exc.reset_seconds is not None:
            parts.append(f"Resets in {exc.reset_seconds:g}s.")
        return " ".join(parts)
    if isinstance(exc, NotFoundError):
        return "Failed to resolve Universe ID from Place ID. Please check the ID."
    if isinstance(exc, PublishError):
        return f"❌ Failed to publish message: {exc}"
    if isinstance(exc, TaskCreationError):
        return f"❌ Failed to create task: {exc}"
    if isinstance(exc, ProvidersExhaustedError):
        return "❌ Roblox did not respond from any provider. Try again later."
    if isinstance(exc, GatewayError):
        return f"❌ Roblox request failed: {exc}"
    return "❌ Interaction failed."


def server_option_label(server: ServerInstance, *, prefix: str = "ServerID") -> str:
    return f"{prefix}: {server.short_id} | Players: {server.playing}/{server.max_players}"


def server_option_description(server: ServerInstance) -> str:
    return f"Ping: {server.ping}ms | FPS: {server.fps:g}"


# --------------------------------------------------------------------------- #
# Control panel
# --------------------------------------------------------------------------- #


def control_root(session: ControlSession) -> str:
    return (
        "**Control Panel**\n"
        f"Place ID: `{session.place_key}`\n"
        f"Universe ID: `{session.universe_id}`\n"
        "Select an operation mode:"
    )


def control_server_list(session: ControlSession) -> str:
    servers = session.state.servers or []
    if not servers:
        return "No active servers found."

    content = (
        "**Select Server**\n"
        f"Found {len(servers)} servers. Page {session.state.page_index + 1}/{session.page_count}."
    )
    selected = session.server(session.state.selected_id)
    if selected is not None:
        content += f"\n\n**Selected:** `{selected.id}` ({selected.playing} players)"
    return content


def broadcast_menu(session: ControlSession) -> str:
    return f"**Broadcast Mode**\nTargeting **ALL** active servers in Universe {session.universe_id}."


def publish_receipt(message: OutboundMessage, mode_label: str) -> str:
    return (
        "✅ **Sent!**\n"
        f"**Mode:** {mode_label}\n"
        f"**Topic:** `{message.topic}`\n"
        f"**Target:** {message.target}"
    )


# --------------------------------------------------------------------------- #
# Server browser
# --------------------------------------------------------------------------- #


def browser_list(session: BrowseSession) -> discord.Embed:
    servers = session.state.servers or []
    if not servers:
        return discord.Embed(
            title="❌ No Active Servers",
            description=f"Could not find any active servers for Place ID `{session.place_key}`.",
            colour=COLOR_ERROR,
        )

    embed = discord.Embed(
        title="🖥️ Server Browser",
        description=(
            f"Found **{len(servers)}** active servers for Place ID `{session.place_key}`.\n"
            f"Universe ID: `{session.universe_id}`"
        ),
        colour=COLOR_INFO,
    )
    embed.add_field(name="Page", value=f"{session.state.page_index + 1} / {session.page_count}", inline=True)
    return embed


def roster_text(users: Sequence[UserRecord]) -> str:
    if not users:
        return "No players found."
    return "\n".join(f"• **{u.display_name}** (@{u.name}) [`{u.id}`]" for u in users)


def server_details(server: ServerInstance | None, roster: str, *, job_id: str | None = None) -> discord.Embed:
    if server is None:
        return discord.Embed(
            title="🔍 Server Details",
            description=f"**Job ID:** `{job_id}`\nServer not found (maybe it closed?). Refresh the list.",
            colour=COLOR_ERROR,
        )

    embed = discord.Embed(
        title="🔍 Server Details",
        description=f"**Job ID:** `{server.id}`",
        colour=COLOR_DETAILS,
    )
    embed.add_field(
        name="Stats",
        value=f"Players: {server.playing}/{server.max_players}\nPing: {server.ping}ms\nFPS: {server.fps:g}",
        inline=True,
    )
    budget = ROSTER_BUDGET
    chunks = chunk_lines(roster)
    for idx, chunk in enumerate(chunks):
        if idx and len(chunk) > budget:
            hidden = sum(c.count("\n") + 1 for c in chunks[idx:])
            embed.add_field(name="Players (Cont.)", value=f"... and {hidden} more", inline=False)
            break
        budget -= len(chunk)
        embed.add_field(name="Players" if idx == 0 else "Players (Cont.)", value=chunk, inline=False)
    return embed


# --------------------------------------------------------------------------- #
# Script execution
# --------------------------------------------------------------------------- #


def confirm_execution(
    place_key: str,
    universe_id: int,
    script: str,
    *,
    version: int | None = None,
    preview_limit: int = PREVIEW_LIMIT,
) -> discord.Embed:
    description = f"You are about to execute a script in:\n**Place ID:** {place_key}\n**Universe ID:** {universe_id}"
    if version is not None:
        description += f"\n**Version:** {version}"
    embed = discord.Embed(title="⚠️ Confirm Execution", description=description, colour=COLOR_WARN)
    embed.add_field(name="Script Preview", value=f"```lua\n{script[:preview_limit]}\n```", inline=False)
    return embed


def task_created(task: ExecutionTask) -> discord.Embed:
    return discord.Embed(
        title="🚀 Task Created",
        description=f"Task ID: {task.task_id}\nStatus: **{task.state.value}**",
        colour=COLOR_WARN,
    )


def task_result(task: ExecutionTask, logs: str) -> discord.Embed:
    if task.state is TaskState.COMPLETE:
        embed = discord.Embed(title="✅ Task Completed", colour=COLOR_OK)
        results: Any = task.results
        if results is not None:
            rendered = truncate(json.dumps(results, indent=2), PREVIEW_LIMIT, suffix="")
            embed.add_field(name="Output", value=f"```json\n{rendered}\n```", inline=False)
    else:
        embed = discord.Embed(title=f"Task {task.state.value}", colour=COLOR_ERROR)
        if task.error is not None:
            embed.add_field(
                name="Error",
                value=truncate(f"**Code:** {task.error.code}\n**Message:** {task.error.message}", PREVIEW_LIMIT),
                inline=False,
            )

    if logs:
        embed.add_field(name="Logs", value=f"```\n{truncate(logs, PREVIEW_LIMIT)}\n```", inline=False)
    return embed


STILL_RUNNING_NOTICE = "⚠️ Polling timed out. The task is still running in the background."
