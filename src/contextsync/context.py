"""Context identity: the scope a tab, stream or unread counter belongs to."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ContextType(Enum):
    """Kind of conversational or workspace scope."""

    ROOM = "room"
    WORKSPACE = "workspace"
    AGENT = "agent"
    HOME = "home"
    SETTINGS = "settings"
    FILE = "file"
    PLAYGROUND = "playground"
    CALENDAR = "workspace:calendar"

    @classmethod
    def parse(cls, value: str | ContextType) -> ContextType:
        """Parse a context type, rejecting anything outside the closed set."""
        if isinstance(value, ContextType):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown context type: {value!r}") from None


@dataclass(frozen=True, slots=True)
class Context:
    """Identity of a room, workspace or agent session.

    Two contexts are equal when type and id match; ``name`` is display-only.
    """

    type: ContextType
    id: str
    name: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Context id must be non-empty")

    @property
    def key(self) -> str:
        return f"{self.type.value}:{self.id}"

    @property
    def streamable(self) -> bool:
        """Whether this kind of context is backed by a live push stream."""
        match self.type:
            case ContextType.ROOM | ContextType.WORKSPACE | ContextType.AGENT:
                return True
            case (
                ContextType.HOME
                | ContextType.SETTINGS
                | ContextType.FILE
                | ContextType.PLAYGROUND
                | ContextType.CALENDAR
            ):
                return False

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Context:
        return cls(
            type=ContextType.parse(data["type"]),
            id=str(data["id"]),
            name=data.get("name") or "",
        )

    def __str__(self) -> str:
        return f"{self.key} ({self.name})" if self.name else self.key
