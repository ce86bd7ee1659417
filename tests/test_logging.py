"""Tests for logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from contextsync.config import LoggingConfig
from contextsync.logging import (
    TRACE,
    VERBOSE,
    get_logger,
    logger,
    resolve_level,
    setup_logging,
)


class TestResolveLevel:
    def test_default_is_info(self) -> None:
        assert resolve_level(None) == logging.INFO
        assert resolve_level(LoggingConfig()) == logging.INFO

    def test_named_levels(self) -> None:
        assert resolve_level(LoggingConfig(level="debug")) == logging.DEBUG
        assert resolve_level(LoggingConfig(level="VERBOSE")) == VERBOSE
        assert resolve_level(LoggingConfig(level="trace")) == TRACE
        assert resolve_level(LoggingConfig(level="nonsense")) == logging.INFO

    def test_verbose_wins_over_level(self) -> None:
        assert resolve_level(LoggingConfig(level="ERROR", verbose=3)) == VERBOSE
        assert resolve_level(LoggingConfig(verbose=0)) == logging.ERROR
        assert resolve_level(LoggingConfig(verbose=9)) == TRACE


class TestSetupLogging:
    def test_writes_to_configured_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "contextsync.log"

        setup_logging(LoggingConfig(level="DEBUG", file=str(log_file)))
        get_logger("streams").debug("stream opened")
        for handler in logger.handlers:
            handler.flush()

        text = log_file.read_text(encoding="utf-8")
        assert "debug contextsync.streams: stream opened" in text

    def test_env_log_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("CONTEXTSYNC_LOG", str(log_file))

        setup_logging()
        get_logger().info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert "hello" in log_file.read_text(encoding="utf-8")

    def test_second_call_is_noop(self, tmp_path: Path) -> None:
        setup_logging(LoggingConfig(file=str(tmp_path / "a.log")))
        handlers = list(logger.handlers)

        setup_logging(LoggingConfig(file=str(tmp_path / "b.log")))

        assert logger.handlers == handlers
        assert not (tmp_path / "b.log").exists()


class TestGetLogger:
    def test_child_logger(self) -> None:
        assert get_logger("tabs").name == "contextsync.tabs"
        assert get_logger() is logger

    def test_custom_level_names(self) -> None:
        assert logging.getLevelName(VERBOSE) == "VERBOSE"
        assert logging.getLevelName(TRACE) == "TRACE"
