"""Unread-count store contract and an in-memory implementation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class UnreadStore(Protocol):
    """Owner of raw unread counts, keyed by context id."""

    def mark_context_read(self, context_id: str) -> None: ...

    def get_unread(self, context_id: str) -> int: ...


@dataclass(slots=True)
class Notification:
    """A single unread-able item raised inside a context."""

    id: str
    context_id: str
    message: str = ""
    read: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "context_id": self.context_id,
            "message": self.message,
            "read": self.read,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class InMemoryUnreadStore:
    """Notification list with per-context unread counts."""

    def __init__(self) -> None:
        self._notifications: dict[str, Notification] = {}

    def add_notification(
        self,
        context_id: str,
        message: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            id=uuid.uuid4().hex[:12],
            context_id=context_id,
            message=message,
            metadata=metadata or {},
        )
        self._notifications[notification.id] = notification
        return notification

    def mark_as_read(self, notification_id: str) -> bool:
        notification = self._notifications.get(notification_id)
        if notification is None or notification.read:
            return False
        notification.read = True
        return True

    def remove_notification(self, notification_id: str) -> None:
        self._notifications.pop(notification_id, None)

    def mark_context_read(self, context_id: str) -> None:
        for notification in self._notifications.values():
            if notification.context_id == context_id:
                notification.read = True

    def get_unread(self, context_id: str) -> int:
        return sum(
            1
            for n in self._notifications.values()
            if n.context_id == context_id and not n.read
        )

    def total_unread(self) -> int:
        return sum(1 for n in self._notifications.values() if not n.read)

    def notifications(self, context_id: str | None = None) -> list[Notification]:
        return [
            n
            for n in self._notifications.values()
            if context_id is None or n.context_id == context_id
        ]

    def clear(self, context_id: str | None = None) -> None:
        if context_id is None:
            self._notifications.clear()
            return
        for notification_id in [n.id for n in self.notifications(context_id)]:
            del self._notifications[notification_id]
