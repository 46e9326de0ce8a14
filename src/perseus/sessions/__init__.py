"""Interactive operator sessions (control panel, server browser, Luau execution)."""

from .controller import SessionController
from .state import (
    AuthorizationError,
    BrowseSession,
    ControlAction,
    ControlSession,
    InvalidTransition,
    SelectionRequired,
    SessionError,
    SessionEvent,
    SessionMode,
)

__all__ = [
    "SessionController",
    "SessionError",
    "AuthorizationError",
    "InvalidTransition",
    "SelectionRequired",
    "SessionEvent",
    "SessionMode",
    "ControlAction",
    "ControlSession",
    "BrowseSession",
]
