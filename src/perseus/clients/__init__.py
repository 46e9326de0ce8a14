"""Roblox gateway client and its data types."""

from .errors import (
    GatewayError,
    NotFoundError,
    ProvidersExhaustedError,
    PublishError,
    RateLimitError,
    TaskCreationError,
    TransientProviderError,
)
from .models import ExecutionTask, ServerInstance, TaskState, UserRecord
from .providers import ProviderEndpoint, ProviderList
from .roblox import GatewayClient, TaskReporter

__all__ = [
    "GatewayClient",
    "TaskReporter",
    "ProviderEndpoint",
    "ProviderList",
    "ExecutionTask",
    "ServerInstance",
    "TaskState",
    "UserRecord",
    "GatewayError",
    "NotFoundError",
    "ProvidersExhaustedError",
    "PublishError",
    "RateLimitError",
    "TaskCreationError",
    "TransientProviderError",
]
