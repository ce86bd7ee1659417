"""Notification coordinator: clears unread state when the selection moves on."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from contextsync.context import Context
from contextsync.logging import VERBOSE, get_logger
from contextsync.notifications.store import UnreadStore

if TYPE_CHECKING:
    from contextsync.tabs.registry import TabRegistry

log = get_logger("notifications")


@dataclass(slots=True)
class NotificationState:
    """Unread projection for one context."""

    unread_count: int = 0
    last_cleared_at: float | None = None  # Wall-clock seconds

    def to_dict(self) -> dict[str, Any]:
        return {"unread_count": self.unread_count, "last_cleared_at": self.last_cleared_at}


class NotificationCoordinator:
    """Reacts to selected-context transitions.

    The coordinator keeps its own reference context. A transition whose
    next context equals the reference is a no-op, which makes repeated
    clicks and replayed transitions harmless. Otherwise the reference
    context (the one being left) is marked read in the unread store, and the
    context being entered becomes the new reference.
    """

    def __init__(
        self,
        store: UnreadStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._clock = clock
        self._reference: Context | None = None
        self._states: dict[str, NotificationState] = {}
        self._unregister: Callable[[], None] | None = None

    @property
    def reference(self) -> Context | None:
        return self._reference

    def attach(self, registry: TabRegistry) -> None:
        """Start observing ``registry``; the current selection becomes the reference."""
        self.detach()
        self._reference = registry.selected_context
        if self._reference is not None:
            self._refresh(self._reference)
        self._unregister = registry.add_transition_listener(self.on_transition)

    def detach(self) -> None:
        if self._unregister is not None:
            self._unregister()
            self._unregister = None

    def on_transition(self, previous: Context | None, next_: Context | None) -> None:
        if next_ == self._reference:
            log.log(VERBOSE, f"Selection unchanged ({next_}); nothing to clear")
            return

        leaving = self._reference if self._reference is not None else previous
        if leaving is not None:
            self._mark_read(leaving)

        self._reference = next_
        if next_ is not None:
            self._refresh(next_)

    def state_for(self, context: Context | str) -> NotificationState:
        """Current unread projection for a context, read through to the store.

        Contexts the coordinator has never cleared are not tracked.
        """
        context_id = context.id if isinstance(context, Context) else context
        tracked = self._states.get(context_id)
        return NotificationState(
            unread_count=self._store.get_unread(context_id),
            last_cleared_at=tracked.last_cleared_at if tracked else None,
        )

    def states(self) -> dict[str, NotificationState]:
        return dict(self._states)

    def _mark_read(self, context: Context) -> None:
        log.debug(f"Marking {context} read")
        try:
            self._store.mark_context_read(context.id)
        except Exception:
            log.exception(f"Unread store failed to mark {context} read")
            return
        state = self._states.setdefault(context.id, NotificationState())
        state.last_cleared_at = self._clock()
        self._refresh(context)

    def _refresh(self, context: Context) -> None:
        state = self._states.setdefault(context.id, NotificationState())
        try:
            state.unread_count = self._store.get_unread(context.id)
        except Exception:
            log.exception(f"Unread store failed to report unread count for {context}")
