"""Tab registry: open tabs, parent/child sub-views and the active selection."""

from __future__ import annotations

import itertools
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from contextsync.context import Context
from contextsync.errors import InvalidParent, UnknownTab
from contextsync.logging import VERBOSE, get_logger

log = get_logger("tabs")

TransitionListener = Callable[[Context | None, Context | None], None]
CloseListener = Callable[["Tab"], None]
RebindListener = Callable[["Tab", Context], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Tab:
    """A UI session slot bound to one context, optionally parented to another tab."""

    id: str
    context: Context
    parent_id: str | None = None
    title: str = ""
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.parent_id == self.id:
            raise InvalidParent(self.parent_id)
        if not self.title:
            self.title = self.context.name or self.context.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "context": self.context.to_dict(),
            "parent_id": self.parent_id,
            "created_at": self.created_at.isoformat(),
        }


class TabRegistry:
    """Owns the set of open tabs and the currently active tab.

    Every change of the active tab (activation, fallback after a close, in-tab
    navigation) is published to transition listeners as
    ``(previous_selected_context, next_selected_context)``, strictly in the
    order the changes happen.

    Example:
        ```python
        registry = TabRegistry()
        a = registry.open_tab(Context(ContextType.ROOM, "r1", "General"))
        b = registry.open_tab(Context(ContextType.ROOM, "r2"), parent_id=a)
        registry.close_tab(a)  # removes b, then a
        assert registry.active_tab_id is None
        ```
    """

    def __init__(self) -> None:
        self._tabs: dict[str, Tab] = {}
        self._order: list[str] = []
        self._active_tab_id: str | None = None
        # Most recently active last
        self._history: list[str] = []
        self._transition_listeners: list[TransitionListener] = []
        self._close_listeners: list[CloseListener] = []
        self._rebind_listeners: list[RebindListener] = []
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Tab lifecycle
    # ------------------------------------------------------------------
    def open_tab(
        self,
        context: Context,
        parent_id: str | None = None,
        title: str | None = None,
    ) -> str:
        """Open a tab bound to ``context`` and return its id.

        The new tab becomes active only when no tab is active yet.

        Raises:
            InvalidParent: If ``parent_id`` does not reference an open tab.
        """
        if parent_id is not None and parent_id not in self._tabs:
            raise InvalidParent(parent_id)

        tab_id = self._allocate_id()
        tab = Tab(id=tab_id, context=context, parent_id=parent_id, title=title or "")
        self._tabs[tab_id] = tab
        self._order.append(tab_id)
        log.debug(f"Opened tab {tab_id} for {context} (parent={parent_id})")

        if parent_id is not None and self._active_tab_id is not None and parent_id != self._active_tab_id:
            self._report_anomaly(
                f"sub-view {tab_id} opened under {parent_id} while {self._active_tab_id} is active"
            )

        if self._active_tab_id is None:
            self._set_active(tab_id)
        return tab_id

    def activate(self, tab_id: str) -> None:
        """Make ``tab_id`` the active tab.

        Raises:
            UnknownTab: If the tab is not open.
        """
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise UnknownTab(tab_id)

        previous_id = self._active_tab_id
        if tab.parent_id is not None and previous_id is not None and not self._related(previous_id, tab_id):
            self._report_anomaly(
                f"tab {tab_id} (parent {tab.parent_id}) activated from unrelated tab {previous_id}"
            )
        self._set_active(tab_id)

    def close_tab(self, tab_id: str) -> list[str]:
        """Close a tab and, depth-first, every descendant sub-view.

        Children are removed before their parent so no surviving tab ever
        references a removed one. If the active tab is among the removed, the
        most recently active survivor becomes active (or nothing).

        Returns:
            Ids of the removed tabs, in removal order.

        Raises:
            UnknownTab: If the tab is not open.
        """
        if tab_id not in self._tabs:
            raise UnknownTab(tab_id)

        removal_order = self._descendants_post_order(tab_id)
        previous_context = self.selected_context
        active_removed = self._active_tab_id in removal_order

        removed: list[Tab] = []
        for victim_id in removal_order:
            victim = self._tabs.pop(victim_id)
            self._order.remove(victim_id)
            if victim_id in self._history:
                self._history.remove(victim_id)
            removed.append(victim)
        log.debug(f"Closed tab {tab_id} ({len(removal_order)} tab(s) removed)")

        if active_removed:
            self._active_tab_id = self._fallback_tab_id()
            if self._active_tab_id is not None:
                self._touch_history(self._active_tab_id)

        for victim in removed:
            self._notify_close(victim)

        if active_removed:
            self._notify_transition(previous_context, self.selected_context)

        return removal_order

    def rename_tab(self, tab_id: str, title: str) -> None:
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise UnknownTab(tab_id)
        tab.title = title

    def update_active_tab_context(self, context: Context) -> None:
        """Rebind the active tab to ``context`` (navigation inside a tab)."""
        if self._active_tab_id is None:
            log.warning("No active tab to update context for")
            return
        tab = self._tabs[self._active_tab_id]
        previous = tab.context
        tab.context = context
        tab.title = context.name or context.id
        if context != previous:
            self._notify_rebind(tab, previous)
        self._notify_transition(previous, context)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_transition_listener(self, listener: TransitionListener) -> Callable[[], None]:
        """Register ``listener(previous, next)`` for selection transitions.

        Returns:
            A function that unregisters the listener.
        """
        self._transition_listeners.append(listener)

        def unregister() -> None:
            if listener in self._transition_listeners:
                self._transition_listeners.remove(listener)

        return unregister

    def add_close_listener(self, listener: CloseListener) -> Callable[[], None]:
        """Register ``listener(tab)``, called once per removed tab."""
        self._close_listeners.append(listener)

        def unregister() -> None:
            if listener in self._close_listeners:
                self._close_listeners.remove(listener)

        return unregister

    def add_rebind_listener(self, listener: RebindListener) -> Callable[[], None]:
        """Register ``listener(tab, previous_context)`` for in-tab navigation."""
        self._rebind_listeners.append(listener)

        def unregister() -> None:
            if listener in self._rebind_listeners:
                self._rebind_listeners.remove(listener)

        return unregister

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def active_tab_id(self) -> str | None:
        return self._active_tab_id

    @property
    def active_tab(self) -> Tab | None:
        if self._active_tab_id is None:
            return None
        return self._tabs[self._active_tab_id]

    @property
    def selected_context(self) -> Context | None:
        tab = self.active_tab
        return tab.context if tab else None

    def get_tab(self, tab_id: str) -> Tab:
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise UnknownTab(tab_id)
        return tab

    def tabs(self) -> list[Tab]:
        """Open tabs in opening order."""
        return [self._tabs[tab_id] for tab_id in self._order]

    def children_of(self, tab_id: str) -> list[Tab]:
        return [tab for tab in self.tabs() if tab.parent_id == tab_id]

    def to_list(self) -> list[dict[str, Any]]:
        return [
            {**tab.to_dict(), "active": tab.id == self._active_tab_id}
            for tab in self.tabs()
        ]

    def __len__(self) -> int:
        return len(self._tabs)

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._tabs

    def __iter__(self) -> Iterator[Tab]:
        return iter(self.tabs())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _allocate_id(self) -> str:
        return f"tab-{next(self._ids)}-{uuid.uuid4().hex[:6]}"

    def _set_active(self, tab_id: str) -> None:
        previous = self.selected_context
        self._active_tab_id = tab_id
        self._touch_history(tab_id)
        log.log(VERBOSE, f"Activated tab {tab_id}")
        self._notify_transition(previous, self.selected_context)

    def _touch_history(self, tab_id: str) -> None:
        if tab_id in self._history:
            self._history.remove(tab_id)
        self._history.append(tab_id)

    def _fallback_tab_id(self) -> str | None:
        if self._history:
            return self._history[-1]
        if self._order:
            return self._order[-1]
        return None

    def _descendants_post_order(self, root_id: str) -> list[str]:
        order: list[str] = []
        stack: list[tuple[str, bool]] = [(root_id, False)]
        while stack:
            tab_id, expanded = stack.pop()
            if expanded:
                order.append(tab_id)
                continue
            stack.append((tab_id, True))
            for child_id in reversed(self._order):
                if self._tabs[child_id].parent_id == tab_id:
                    stack.append((child_id, False))
        return order

    def _related(self, first_id: str, second_id: str) -> bool:
        if first_id == second_id:
            return True
        first = self._tabs.get(first_id)
        second = self._tabs.get(second_id)
        if first is None or second is None:
            return False
        return (
            first.parent_id == second_id
            or second.parent_id == first_id
            or (first.parent_id is not None and first.parent_id == second.parent_id)
        )

    def _report_anomaly(self, message: str) -> None:
        log.warning(f"Tab relationship anomaly: {message}")

    def _notify_transition(self, previous: Context | None, next_: Context | None) -> None:
        for listener in list(self._transition_listeners):
            try:
                listener(previous, next_)
            except Exception:
                log.exception("Transition listener failed")

    def _notify_close(self, tab: Tab) -> None:
        for listener in list(self._close_listeners):
            try:
                listener(tab)
            except Exception:
                log.exception(f"Close listener failed for tab {tab.id}")

    def _notify_rebind(self, tab: Tab, previous: Context) -> None:
        for listener in list(self._rebind_listeners):
            try:
                listener(tab, previous)
            except Exception:
                log.exception(f"Rebind listener failed for tab {tab.id}")
