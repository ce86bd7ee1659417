"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from contextsync.context import Context, ContextType
from contextsync.logging import reset_logging
from tests.utils import FakeExecutor, FakeTransport

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Drop handlers installed by setup_logging between tests."""
    yield
    reset_logging()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def room() -> Context:
    return Context(ContextType.ROOM, "r1", "General")


@pytest.fixture
def other_room() -> Context:
    return Context(ContextType.ROOM, "r2", "Random")
