"""
Discord views for operator sessions.

A view owns one session state machine and one reply message. Component
callbacks become :class:`~perseus.sessions.state.SessionEvent` dispatches;
after each dispatch the view rebuilds its components from the new state and
edits the message. Each session has a fixed lifetime that interactions do
not extend.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, Optional

import discord

from perseus.clients.errors import GatewayError

from . import render
from .state import (
    AuthorizationError,
    BrowseSession,
    ControlAction,
    ControlSession,
    ServerListSession,
    SessionError,
    SessionEvent,
    SessionMode,
)

logger = logging.getLogger(__name__)


def is_elevated(interaction: discord.Interaction, role_ids: Iterable[int] = ()) -> bool:
    """Administrators and holders of any configured role id are elevated."""

    permissions = getattr(interaction, "permissions", None)
    if permissions is not None and getattr(permissions, "administrator", False):
        return True
    wanted = set(role_ids)
    if not wanted:
        return False
    roles = getattr(interaction.user, "roles", None) or []
    return any(role.id in wanted for role in roles)


async def respond_ephemeral(interaction: discord.Interaction, content: str) -> None:
    """Send a private notice whether or not the interaction was answered."""

    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


class SessionView(discord.ui.View, metaclass=abc.ABCMeta):
    """
    Common plumbing: authorization, event dispatch, lifetime and close.

    ``timeout`` is the session lifetime, counted from :meth:`start_lifetime`.
    Unlike discord.py's view timeout it is not extended by interactions.
    """

    timeout_notice = "Session timed out."

    def __init__(
        self,
        session: ServerListSession,
        *,
        timeout: float,
        elevated_role_ids: Iterable[int] = (),
        on_close: Optional[Callable[["SessionView"], None]] = None,
    ) -> None:
        super().__init__(timeout=None)
        self.session = session
        self.lifetime = timeout
        self._deadline: asyncio.Task | None = None
        self.elevated_role_ids = frozenset(elevated_role_ids)
        self.message: discord.Message | discord.PartialMessage | None = None
        self._on_close = on_close

    # --- lifecycle -------------------------------------------------------- #

    def attach(self, message: discord.Message, channel: Any = None) -> None:
        """Remember the reply surface, preferring a bot-token handle over the webhook."""

        getter = getattr(channel, "get_partial_message", None)
        self.message = getter(message.id) if getter is not None else message

    def start_lifetime(self) -> asyncio.Task:
        """Schedule the end of the session ``lifetime`` seconds from now."""

        if self._deadline is None:
            self._deadline = asyncio.create_task(self._expire())
        return self._deadline

    async def _expire(self) -> None:
        await asyncio.sleep(self.lifetime)
        await self.on_timeout()

    async def close(self, notice: str | None = None) -> None:
        """Stop the view and strip its components from the reply surface."""

        deadline, self._deadline = self._deadline, None
        if deadline is not None and deadline is not asyncio.current_task():
            deadline.cancel()
        self.stop()
        if self._on_close is not None:
            self._on_close(self)
            self._on_close = None
        if self.message is None:
            return
        try:
            if notice is None:
                await self.message.edit(view=None)
            else:
                await self.message.edit(content=notice, view=None)
        except discord.HTTPException as exc:
            logger.debug("Could not clear session message: %s", exc)

    async def on_timeout(self) -> None:
        logger.info("%s timed out for place %s", type(self).__name__, self.session.place_key)
        await self.close(self.timeout_notice)

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        try:
            self.session.authorize(
                interaction.user.id,
                elevated=is_elevated(interaction, self.elevated_role_ids),
            )
        except AuthorizationError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return False
        return True

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item[Any]) -> None:
        logger.error("%s interaction error", type(self).__name__, exc_info=error)
        try:
            await respond_ephemeral(interaction, "❌ Interaction failed.")
        except discord.HTTPException:
            pass

    # --- rendering -------------------------------------------------------- #

    @abc.abstractmethod
    def rebuild(self) -> None:
        """Replace the components to match the session state."""

    @abc.abstractmethod
    def render(self) -> Dict[str, Any]:
        """Message fields (``content``/``embed``) for the current state."""

    async def prepare(self) -> None:
        """Async work needed before :meth:`render` (e.g. roster lookups)."""

    async def apply(self, interaction: discord.Interaction, event: SessionEvent, value: Any = None) -> None:
        await interaction.response.defer()
        try:
            await self.session.dispatch(event, value)
        except SessionError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        except GatewayError as exc:
            logger.warning("%s failed during %s: %s", type(self).__name__, event.value, exc)
            await interaction.followup.send(render.describe_error(exc), ephemeral=True)
            return

        await self.prepare()
        self.rebuild()
        await interaction.edit_original_response(**self.render(), view=self)

    # --- component helpers ------------------------------------------------ #

    def _button(
        self,
        label: str,
        style: discord.ButtonStyle,
        event: SessionEvent,
        *,
        row: int,
        disabled: bool = False,
    ) -> discord.ui.Button:
        button: discord.ui.Button = discord.ui.Button(
            label=label, style=style, custom_id=event.value, row=row, disabled=disabled
        )

        async def _callback(interaction: discord.Interaction) -> None:
            await self.apply(interaction, event)

        button.callback = _callback
        self.add_item(button)
        return button

    def _server_select(self, *, prefix: str, row: int = 0) -> None:
        session = self.session
        options = [
            discord.SelectOption(
                label=render.server_option_label(server, prefix=prefix),
                description=render.server_option_description(server),
                value=server.id,
                default=server.id == session.state.selected_id,
            )
            for server in session.current_page()
        ]
        select: discord.ui.Select = discord.ui.Select(
            custom_id="server-select",
            placeholder=f"Select a server (Page {session.state.page_index + 1}/{session.page_count})",
            options=options,
            row=row,
        )

        async def _callback(interaction: discord.Interaction) -> None:
            await self.apply(interaction, SessionEvent.SELECT_ITEM, select.values[0])

        select.callback = _callback
        self.add_item(select)

    def _pager(self, *, row: int) -> None:
        if self.session.page_count <= 1:
            return
        self._button("Previous", discord.ButtonStyle.secondary, SessionEvent.PAGE_PREV, row=row, disabled=not self.session.has_prev)
        self._button("Next", discord.ButtonStyle.secondary, SessionEvent.PAGE_NEXT, row=row, disabled=not self.session.has_next)


class MessageModal(discord.ui.Modal):
    """Collects a payload (and a topic for custom messages)."""

    def __init__(self, *, title: str, with_topic: bool, timeout: float) -> None:
        super().__init__(title=title, timeout=timeout)
        self.submission: discord.Interaction | None = None
        self.topic_input: discord.ui.TextInput | None = None
        if with_topic:
            self.topic_input = discord.ui.TextInput(
                label="Topic", style=discord.TextStyle.short, required=True, max_length=80
            )
            self.add_item(self.topic_input)
        self.message_input = discord.ui.TextInput(
            label="Message / Payload (JSON/String)",
            style=discord.TextStyle.paragraph,
            required=True,
        )
        self.add_item(self.message_input)

    @property
    def message_text(self) -> str:
        return self.message_input.value

    @property
    def topic_text(self) -> str | None:
        return self.topic_input.value if self.topic_input is not None else None

    async def on_submit(self, interaction: discord.Interaction) -> None:
        self.submission = interaction
        await interaction.response.defer(ephemeral=True, thinking=True)


_ACTION_TITLES = {
    ControlAction.SYSTEM: "Send System Command",
    ControlAction.NORMAL: "Send Normal Message",
    ControlAction.CUSTOM: "Send Custom Message",
}


class ControlPanelView(SessionView):
    """Mode select, targeted server list and broadcast menu."""

    timeout_notice = "Control session timed out."
    session: ControlSession

    def __init__(self, session: ControlSession, *, prompt_timeout: float = 60, **kwargs: Any) -> None:
        super().__init__(session, **kwargs)
        self.prompt_timeout = prompt_timeout
        self.rebuild()

    def render(self) -> Dict[str, Any]:
        mode = self.session.state.mode
        if mode is SessionMode.SELECT:
            content = render.control_server_list(self.session)
        elif mode is SessionMode.BROADCAST:
            content = render.broadcast_menu(self.session)
        else:
            content = render.control_root(self.session)
        return {"content": content, "embed": None}

    def rebuild(self) -> None:
        self.clear_items()
        state = self.session.state

        if state.mode is SessionMode.NONE:
            self._button("Target Specific Server", discord.ButtonStyle.primary, SessionEvent.CHOOSE_TARGETED, row=0)
            self._button("Broadcast to All Servers", discord.ButtonStyle.danger, SessionEvent.CHOOSE_BROADCAST, row=0)
            return

        if state.mode is SessionMode.BROADCAST:
            self._action_buttons(broadcast=True, row=0)
            self._button("Back to Mode Select", discord.ButtonStyle.secondary, SessionEvent.BACK, row=1)
            return

        if state.servers:
            self._server_select(prefix="ServerID", row=0)
            self._pager(row=1)
        self._button("Back", discord.ButtonStyle.danger, SessionEvent.BACK, row=2)
        self._button("Refresh List", discord.ButtonStyle.secondary, SessionEvent.REFRESH, row=2)
        if self.session.server(state.selected_id) is not None:
            self._action_buttons(broadcast=False, row=3)

    def _action_buttons(self, *, broadcast: bool, row: int) -> None:
        labels = {
            ControlAction.SYSTEM: "Broadcast System (All)" if broadcast else "Send System (Admin)",
            ControlAction.NORMAL: "Broadcast Normal (All)" if broadcast else "Send Normal",
            ControlAction.CUSTOM: "Send Custom",
        }
        styles = {
            ControlAction.SYSTEM: discord.ButtonStyle.danger,
            ControlAction.NORMAL: discord.ButtonStyle.primary,
            ControlAction.CUSTOM: discord.ButtonStyle.secondary,
        }
        for action in ControlAction:
            button: discord.ui.Button = discord.ui.Button(
                label=labels[action], style=styles[action], custom_id=f"btn-{action.value}", row=row
            )
            button.callback = self._action_callback(action)
            self.add_item(button)

    def _action_callback(self, action: ControlAction):
        async def _callback(interaction: discord.Interaction) -> None:
            await self.invoke(interaction, action)

        return _callback

    async def invoke(self, interaction: discord.Interaction, action: ControlAction) -> None:
        """Prompt for the message, then publish it."""

        try:
            await self.session.dispatch(SessionEvent.INVOKE_ACTION, action)
        except SessionError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return

        modal = MessageModal(
            title=_ACTION_TITLES[action],
            with_topic=action is ControlAction.CUSTOM,
            timeout=self.prompt_timeout,
        )
        await interaction.response.send_modal(modal)

        timed_out = await modal.wait()
        submission = modal.submission
        if timed_out or submission is None:
            logger.debug("Message prompt for %s closed without submission", action.value)
            return

        mode_label = self.session.state.mode.name
        try:
            sent = await self.session.send(action, modal.message_text, modal.topic_text)
        except (SessionError, ValueError) as exc:
            await submission.followup.send(str(exc), ephemeral=True)
            return
        except GatewayError as exc:
            logger.warning("Publish to universe %s failed: %s", self.session.universe_id, exc)
            await submission.followup.send(render.describe_error(exc), ephemeral=True)
            return

        await submission.followup.send(render.publish_receipt(sent, mode_label), ephemeral=True)


class BrowserView(SessionView):
    """Read-only server list with a details page per server."""

    session: BrowseSession

    def __init__(self, session: BrowseSession, *, users: Any, **kwargs: Any) -> None:
        super().__init__(session, **kwargs)
        self.users = users
        self._roster = "No players found."
        self.rebuild()

    async def prepare(self) -> None:
        if self.session.state.mode is not SessionMode.DETAILS:
            return
        server = self.session.server(self.session.state.selected_id)
        if server is None or not server.player_ids:
            self._roster = "No players found."
            return
        try:
            records = await self.users.resolve(server.player_ids)
        except GatewayError as exc:
            logger.warning("Failed to load player names: %s", exc)
            self._roster = "Failed to load player names."
            return
        self._roster = render.roster_text(records)

    def render(self) -> Dict[str, Any]:
        state = self.session.state
        if state.mode is SessionMode.DETAILS:
            embed = render.server_details(
                self.session.server(state.selected_id), self._roster, job_id=state.selected_id
            )
        else:
            embed = render.browser_list(self.session)
        return {"content": None, "embed": embed}

    def rebuild(self) -> None:
        self.clear_items()
        state = self.session.state
        if state.mode is SessionMode.DETAILS:
            self._button("Back to Server List", discord.ButtonStyle.secondary, SessionEvent.BACK_TO_LIST, row=0)
            self._button("Refresh Details", discord.ButtonStyle.primary, SessionEvent.REFRESH_DETAILS, row=0)
            return

        if state.servers:
            self._server_select(prefix="Server", row=0)
            self._pager(row=1)
        self._button("Refresh List", discord.ButtonStyle.secondary, SessionEvent.REFRESH, row=2)


__all__ = [
    "SessionView",
    "ControlPanelView",
    "BrowserView",
    "MessageModal",
    "is_elevated",
    "respond_ephemeral",
]
