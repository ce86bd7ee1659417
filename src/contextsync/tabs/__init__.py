"""Tab registry and active selection."""

from contextsync.tabs.registry import CloseListener, Tab, TabRegistry, TransitionListener

__all__ = [
    "CloseListener",
    "Tab",
    "TabRegistry",
    "TransitionListener",
]
