"""Unread-state coordination across context switches."""

from contextsync.notifications.coordinator import NotificationCoordinator, NotificationState
from contextsync.notifications.store import InMemoryUnreadStore, Notification, UnreadStore

__all__ = [
    "InMemoryUnreadStore",
    "Notification",
    "NotificationCoordinator",
    "NotificationState",
    "UnreadStore",
]
