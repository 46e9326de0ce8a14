"""
Error taxonomy for the Roblox gateway.

Every exception raised by :mod:`perseus.clients.roblox` derives from
:class:`GatewayError` so command handlers can catch the family in one place
and still branch on the concrete type when the operator message differs.
"""

from __future__ import annotations

from perseus.errors import PerseusError


class GatewayError(PerseusError):
    """Base class for failures talking to the remote platform."""

    def __init__(self, message: str = "", *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TransientProviderError(GatewayError):
    """One provider failed (network error or non-429 HTTP failure)."""

    def __init__(self, provider: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"{provider}: {message}", status=status)
        self.provider = provider


class ProvidersExhaustedError(GatewayError):
    """Every provider failed for a single request."""

    def __init__(self, subdomain: str, last_error: BaseException | None) -> None:
        super().__init__(
            f"Failed to fetch data from all available providers for subdomain: {subdomain}"
        )
        self.subdomain = subdomain
        self.last_error = last_error


class RateLimitError(GatewayError):
    """HTTP 429 from the platform. Never retried automatically."""

    def __init__(
        self,
        *,
        limit: int | None = None,
        remaining: int | None = None,
        reset_seconds: float | None = None,
        provider: str | None = None,
    ) -> None:
        detail = "Rate limited by Roblox"
        if reset_seconds is not None:
            detail += f"; resets in {reset_seconds:g}s"
        if remaining is not None:
            detail += f" ({remaining} remaining)"
        super().__init__(detail)
        self.limit = limit
        self.remaining = remaining
        self.reset_seconds = reset_seconds
        self.provider = provider


class NotFoundError(GatewayError):
    """The platform reports no mapping for an identifier."""


class PublishError(GatewayError):
    """The messaging service rejected a publish request."""


class TaskCreationError(GatewayError):
    """The execution service rejected a task."""


__all__ = [
    "GatewayError",
    "TransientProviderError",
    "ProvidersExhaustedError",
    "RateLimitError",
    "NotFoundError",
    "PublishError",
    "TaskCreationError",
]
