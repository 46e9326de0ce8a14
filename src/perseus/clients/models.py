"""Typed views over the Roblox REST payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class TaskState(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def rank(self) -> int:
        """Position in the forward-only state order."""
        if self is TaskState.QUEUED:
            return 0
        if self is TaskState.PROCESSING:
            return 1
        return 2

    @classmethod
    def parse(cls, raw: Any) -> "TaskState":
        try:
            return cls(str(raw).upper())
        except ValueError:
            # Unknown states (e.g. STATE_UNSPECIFIED) are treated as still queued.
            return cls.QUEUED


_TERMINAL_STATES = frozenset({TaskState.COMPLETE, TaskState.FAILED, TaskState.CANCELLED})


@dataclass(slots=True)
class ServerInstance:
    """One running game server as reported by the public listing endpoint."""

    id: str
    max_players: int
    playing: int
    player_ids: List[int] = field(default_factory=list)
    fps: float = 0.0
    ping: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ServerInstance":
        return cls(
            id=str(data.get("id", "")),
            max_players=int(data.get("maxPlayers") or 0),
            playing=int(data.get("playing") or 0),
            player_ids=[int(pid) for pid in data.get("playerIds") or []],
            fps=float(data.get("fps") or 0.0),
            ping=int(data.get("ping") or 0),
        )

    @property
    def short_id(self) -> str:
        """Four characters of the job id that are distinct enough for menus."""
        return self.id[9:13] if len(self.id) >= 13 else self.id[:4]


@dataclass(slots=True)
class TaskError:
    code: str
    message: str


@dataclass(slots=True)
class ExecutionTask:
    """A Luau execution session task."""

    path: str
    state: TaskState
    script: str = ""
    output: Dict[str, Any] | None = None
    error: TaskError | None = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ExecutionTask":
        error = data.get("error")
        return cls(
            path=str(data.get("path", "")),
            state=TaskState.parse(data.get("state")),
            script=str(data.get("script") or ""),
            output=data.get("output") or None,
            error=(
                TaskError(code=str(error.get("code", "")), message=str(error.get("message", "")))
                if isinstance(error, dict)
                else None
            ),
        )

    @property
    def task_id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def results(self) -> Any:
        if not self.output:
            return None
        return self.output.get("results")


@dataclass(slots=True)
class UserRecord:
    id: int
    name: str
    display_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "displayName": self.display_name}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "UserRecord":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            display_name=str(data.get("displayName") or data.get("name", "")),
        )


__all__ = ["TaskState", "ServerInstance", "TaskError", "ExecutionTask", "UserRecord"]
