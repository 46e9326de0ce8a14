"""
Session controller
==================

Entry point for every interactive operator flow. Commands hand the
triggering interaction to :meth:`SessionController.start`; the controller
builds the session state machine and its view, renders the first page and
keeps track of open views so they can be closed on shutdown.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Set

import discord

from perseus.clients.errors import GatewayError

from . import render
from .execution import ExecutionFlow
from .state import BrowseSession, ControlSession
from .views import BrowserView, ControlPanelView, SessionView

if TYPE_CHECKING:
    from perseus.clients.roblox import GatewayClient
    from perseus.memory.users import UserDirectory

logger = logging.getLogger(__name__)

FLOWS = ("control", "browse", "execute")


class SessionController:
    def __init__(
        self,
        gateway: "GatewayClient",
        users: "UserDirectory",
        *,
        settings: Any = None,
        topic_prefix: str = "perseus",
        elevated_role_ids: Iterable[int] = (),
    ) -> None:
        self.gateway = gateway
        self.users = users
        self.settings = settings
        self.topic_prefix = topic_prefix
        self.elevated_role_ids = tuple(elevated_role_ids)
        self.page_size = int(getattr(settings, "PAGE_SIZE", 25))
        self._open: Set[SessionView] = set()

    @property
    def open_sessions(self) -> int:
        return len(self._open)

    def _setting(self, name: str, default: float) -> float:
        return getattr(self.settings, name, default)

    async def start(self, flow: str, interaction: discord.Interaction, place_key: str, **params: Any) -> Any:
        """Start ``flow`` ("control", "browse" or "execute") for ``interaction``."""

        if flow == "control":
            return await self.start_control(interaction, place_key)
        if flow == "browse":
            return await self.start_browser(interaction, place_key)
        if flow == "execute":
            return await self.start_execution(interaction, place_key, params.get("version"))
        raise ValueError(f"Unknown session flow: {flow!r}")

    async def _resolve(self, interaction: discord.Interaction, place_key: str) -> int | None:
        try:
            return await self.gateway.resolve_identifier(place_key)
        except GatewayError as exc:
            logger.warning("Could not resolve place %s: %s", place_key, exc)
            await interaction.edit_original_response(content=render.describe_error(exc))
            return None

    async def start_control(self, interaction: discord.Interaction, place_key: str) -> ControlPanelView | None:
        await interaction.response.defer(thinking=True)
        universe_id = await self._resolve(interaction, place_key)
        if universe_id is None:
            return None

        session = ControlSession(
            self.gateway,
            initiator_id=interaction.user.id,
            place_key=place_key,
            universe_id=universe_id,
            page_size=self.page_size,
            topic_prefix=self.topic_prefix,
        )
        view = ControlPanelView(
            session,
            timeout=self._setting("CONTROL_TIMEOUT", 3600),
            prompt_timeout=self._setting("PROMPT_TIMEOUT", 60),
            elevated_role_ids=self.elevated_role_ids,
            on_close=self._release,
        )
        await self._open_view(interaction, view)
        return view

    async def start_browser(self, interaction: discord.Interaction, place_key: str) -> BrowserView | None:
        await interaction.response.defer(thinking=True)
        universe_id = await self._resolve(interaction, place_key)
        if universe_id is None:
            return None

        session = BrowseSession(
            self.gateway,
            initiator_id=interaction.user.id,
            place_key=place_key,
            universe_id=universe_id,
            page_size=self.page_size,
        )
        try:
            await session.servers()
        except GatewayError as exc:
            logger.warning("Could not list servers for place %s: %s", place_key, exc)
            await interaction.edit_original_response(content=render.describe_error(exc))
            return None

        view = BrowserView(
            session,
            users=self.users,
            timeout=self._setting("BROWSE_TIMEOUT", 300),
            elevated_role_ids=self.elevated_role_ids,
            on_close=self._release,
        )
        await self._open_view(interaction, view)
        return view

    async def start_execution(
        self, interaction: discord.Interaction, place_key: str, version: int | None = None
    ) -> ExecutionFlow:
        flow = ExecutionFlow(
            self.gateway,
            place_key=place_key,
            version=version,
            settings=self.settings,
            elevated_role_ids=self.elevated_role_ids,
        )
        await flow.run(interaction)
        return flow

    async def _open_view(self, interaction: discord.Interaction, view: SessionView) -> None:
        await view.prepare()
        view.rebuild()
        message = await interaction.edit_original_response(**view.render(), view=view)
        view.attach(message, interaction.channel)
        view.start_lifetime()
        self._open.add(view)
        logger.info(
            "Opened %s for place %s by %s", type(view).__name__, view.session.place_key, interaction.user.id
        )

    def _release(self, view: SessionView) -> None:
        self._open.discard(view)

    async def close_all(self, notice: str = "Session closed.") -> None:
        """Close every open session; used on shutdown."""

        for view in list(self._open):
            await view.close(notice)
        self._open.clear()


__all__ = ["SessionController", "FLOWS"]
