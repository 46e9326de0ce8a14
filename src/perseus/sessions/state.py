"""
Operator session state machines.

Each interactive flow is a small finite state machine driven by
:class:`SessionEvent` values. The Discord views in :mod:`perseus.sessions.views`
only translate component callbacks into events and render the resulting
state; every rule about modes, pagination, selection and authorization lives
here so it can be exercised without Discord.
"""

from __future__ import annotations

import enum
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, TYPE_CHECKING

from perseus.clients.models import ServerInstance
from perseus.errors import PerseusError

if TYPE_CHECKING:
    from perseus.clients.roblox import GatewayClient

logger = logging.getLogger(__name__)


class SessionError(PerseusError):
    """Base class for events a session refuses."""


class AuthorizationError(SessionError):
    """The actor is neither the initiator nor elevated."""


class InvalidTransition(SessionError):
    """The event is not allowed in the current mode."""


class SelectionRequired(SessionError):
    """A targeted action was invoked before a server was chosen."""


class SessionMode(enum.Enum):
    NONE = "none"
    SELECT = "select"
    BROADCAST = "broadcast"
    DETAILS = "details"


class SessionEvent(enum.Enum):
    CHOOSE_TARGETED = "choose-targeted"
    CHOOSE_BROADCAST = "choose-broadcast"
    BACK = "back"
    REFRESH = "refresh"
    PAGE_PREV = "page-prev"
    PAGE_NEXT = "page-next"
    SELECT_ITEM = "select-item"
    INVOKE_ACTION = "invoke-action"
    BACK_TO_LIST = "back-to-list"
    REFRESH_DETAILS = "refresh-details"


class ControlAction(enum.Enum):
    SYSTEM = "system"
    NORMAL = "normal"
    CUSTOM = "custom"


def page_count(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total > 0 else 0


def decode_payload(text: str) -> Any:
    """JSON-decode operator input, falling back to the raw string."""

    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text


@dataclass
class SessionState:
    mode: SessionMode = SessionMode.NONE
    page_index: int = 0
    selected_id: str | None = None
    servers: List[ServerInstance] | None = None


@dataclass(slots=True)
class OutboundMessage:
    topic: str
    payload: Dict[str, Any]
    target: str


class ServerListSession:
    """
    Shared behaviour for flows that page through a place's servers.

    The server list is fetched lazily on first use, sorted by descending
    player count and kept for the session until an explicit refresh.
    """

    initial_mode = SessionMode.SELECT

    def __init__(
        self,
        gateway: "GatewayClient",
        *,
        initiator_id: int,
        place_key: str,
        universe_id: int,
        page_size: int = 25,
    ) -> None:
        self.gateway = gateway
        self.initiator_id = initiator_id
        self.place_key = place_key
        self.universe_id = universe_id
        self.page_size = page_size
        self.state = SessionState(mode=self.initial_mode)

    # --- authorization ------------------------------------------------- #

    def authorize(self, actor_id: int, *, elevated: bool = False) -> None:
        if actor_id != self.initiator_id and not elevated:
            raise AuthorizationError("Not authorized.")

    # --- server list ----------------------------------------------------- #

    async def _fetch(self) -> List[ServerInstance]:
        fetched = await self.gateway.list_active_servers(self.place_key)
        return sorted(fetched, key=lambda s: s.playing, reverse=True)

    async def servers(self) -> List[ServerInstance]:
        if self.state.servers is None:
            self.state.servers = await self._fetch()
        return self.state.servers

    def server(self, server_id: str | None) -> ServerInstance | None:
        for server in self.state.servers or []:
            if server.id == server_id:
                return server
        return None

    @property
    def page_count(self) -> int:
        return page_count(len(self.state.servers or []), self.page_size)

    def current_page(self) -> List[ServerInstance]:
        start = self.state.page_index * self.page_size
        return (self.state.servers or [])[start:start + self.page_size]

    @property
    def has_prev(self) -> bool:
        return self.state.page_index > 0

    @property
    def has_next(self) -> bool:
        return self.state.page_index < self.page_count - 1

    def _page(self, delta: int) -> None:
        last = max(self.page_count - 1, 0)
        self.state.page_index = min(max(self.state.page_index + delta, 0), last)

    def _require(self, *modes: SessionMode) -> None:
        if self.state.mode not in modes:
            raise InvalidTransition(f"not allowed in mode {self.state.mode.value}")

    async def dispatch(self, event: SessionEvent, value: Any = None) -> SessionState:
        """Apply ``event`` and return the (mutated) session state."""

        handler = getattr(self, f"_on_{event.name.lower()}", None)
        if handler is None:
            raise InvalidTransition(f"{event.value} is not supported by {type(self).__name__}")
        logger.debug("%s: %s in mode %s", type(self).__name__, event.value, self.state.mode.value)
        await handler(value)
        return self.state

    async def _on_refresh(self, _value: Any) -> None:
        self._require(SessionMode.SELECT)
        self.state.servers = await self._fetch()
        self._page(0)

    async def _on_page_prev(self, _value: Any) -> None:
        self._require(SessionMode.SELECT)
        await self.servers()
        self._page(-1)

    async def _on_page_next(self, _value: Any) -> None:
        self._require(SessionMode.SELECT)
        await self.servers()
        self._page(1)


class ControlSession(ServerListSession):
    """Targeted or broadcast MessagingService control panel."""

    initial_mode = SessionMode.NONE

    def __init__(self, *args: Any, topic_prefix: str = "perseus", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.topic_prefix = topic_prefix

    async def _on_choose_targeted(self, _value: Any) -> None:
        self._require(SessionMode.NONE)
        await self.servers()
        self.state.mode = SessionMode.SELECT
        self.state.page_index = 0
        self.state.selected_id = None

    async def _on_choose_broadcast(self, _value: Any) -> None:
        self._require(SessionMode.NONE)
        self.state.mode = SessionMode.BROADCAST

    async def _on_back(self, _value: Any) -> None:
        self.state.mode = SessionMode.NONE

    async def _on_select_item(self, value: Any) -> None:
        self._require(SessionMode.SELECT)
        self.state.selected_id = str(value)

    async def _on_invoke_action(self, value: Any) -> None:
        # Validation only; the message itself goes through :meth:`send`.
        self.check_action(value)

    # --- actions --------------------------------------------------------- #

    def check_action(self, action: ControlAction) -> None:
        """Raise unless ``action`` can be invoked right now."""

        self._require(SessionMode.SELECT, SessionMode.BROADCAST)
        if self.state.mode is SessionMode.SELECT and not self.state.selected_id:
            raise SelectionRequired("Please select a server first.")

    def topic_for(self, action: ControlAction, custom_topic: str | None = None) -> str:
        if action is ControlAction.CUSTOM:
            topic = (custom_topic or "").strip()
            if not topic:
                raise ValueError("A topic is required for custom messages.")
            return topic

        parts = [self.topic_prefix]
        if self.state.mode is SessionMode.BROADCAST:
            parts.append("all")
        if action is ControlAction.SYSTEM:
            parts.append("admin")
        return "-".join(parts)

    def build_message(self, action: ControlAction, text: str, custom_topic: str | None = None) -> OutboundMessage:
        self.check_action(action)
        payload: Dict[str, Any] = {}
        if self.state.mode is SessionMode.SELECT:
            payload["JobId"] = self.state.selected_id
        payload["Payload"] = decode_payload(text)
        target = self.state.selected_id if self.state.mode is SessionMode.SELECT else "ALL SERVERS"
        return OutboundMessage(topic=self.topic_for(action, custom_topic), payload=payload, target=target or "")

    async def send(self, action: ControlAction, text: str, custom_topic: str | None = None) -> OutboundMessage:
        message = self.build_message(action, text, custom_topic)
        await self.gateway.publish_message(self.universe_id, message.topic, message.payload)
        return message


class BrowseSession(ServerListSession):
    """Read-only server browser with a per-server details page."""

    async def _on_select_item(self, value: Any) -> None:
        self._require(SessionMode.SELECT, SessionMode.DETAILS)
        await self.servers()
        self.state.selected_id = str(value)
        self.state.mode = SessionMode.DETAILS

    async def _on_back_to_list(self, _value: Any) -> None:
        self.state.mode = SessionMode.SELECT
        self.state.selected_id = None
        await self.servers()

    async def _on_refresh_details(self, _value: Any) -> None:
        self._require(SessionMode.DETAILS)
        self.state.servers = await self._fetch()
        self._page(0)


__all__ = [
    "SessionError",
    "AuthorizationError",
    "InvalidTransition",
    "SelectionRequired",
    "SessionMode",
    "SessionEvent",
    "ControlAction",
    "SessionState",
    "OutboundMessage",
    "ServerListSession",
    "ControlSession",
    "BrowseSession",
    "decode_payload",
    "page_count",
]
