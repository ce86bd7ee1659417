"""Tests for context identity."""

from __future__ import annotations

import pytest

from contextsync.context import Context, ContextType


class TestContextType:
    def test_parse_known_values(self) -> None:
        assert ContextType.parse("room") is ContextType.ROOM
        assert ContextType.parse("workspace:calendar") is ContextType.CALENDAR
        assert ContextType.parse(ContextType.AGENT) is ContextType.AGENT

    def test_parse_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown context type"):
            ContextType.parse("channel")


class TestContext:
    def test_equality_ignores_name(self) -> None:
        """Display names do not take part in identity."""
        assert Context(ContextType.ROOM, "r1", "General") == Context(ContextType.ROOM, "r1")
        assert hash(Context(ContextType.ROOM, "r1", "a")) == hash(Context(ContextType.ROOM, "r1", "b"))

    def test_same_id_different_type_differs(self) -> None:
        assert Context(ContextType.ROOM, "x") != Context(ContextType.WORKSPACE, "x")

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            Context(ContextType.ROOM, "")

    @pytest.mark.parametrize(
        ("context_type", "expected"),
        [
            (ContextType.ROOM, True),
            (ContextType.WORKSPACE, True),
            (ContextType.AGENT, True),
            (ContextType.HOME, False),
            (ContextType.SETTINGS, False),
            (ContextType.CALENDAR, False),
        ],
    )
    def test_streamable(self, context_type: ContextType, expected: bool) -> None:
        assert Context(context_type, "c1").streamable is expected

    def test_dict_conversion(self) -> None:
        context = Context.from_dict({"type": "agent", "id": "a-7", "name": "Planner"})
        assert context == Context(ContextType.AGENT, "a-7")
        assert context.name == "Planner"
        assert context.to_dict() == {"type": "agent", "id": "a-7", "name": "Planner"}

    def test_from_dict_unknown_type(self) -> None:
        with pytest.raises(ValueError):
            Context.from_dict({"type": "bogus", "id": "1"})

    def test_str(self) -> None:
        assert str(Context(ContextType.ROOM, "r1")) == "room:r1"
        assert str(Context(ContextType.ROOM, "r1", "General")) == "room:r1 (General)"
