"""Logger setup for contextsync: VERBOSE and TRACE levels, file or console output."""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextsync.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("contextsync")

# Indexed by LoggingConfig.verbose; larger values clamp to TRACE
_VERBOSITY = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_initialized = False


class _Formatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        record.levelname = levelname.lower()
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def resolve_level(config: LoggingConfig | None) -> int:
    """Effective level for ``config``; ``verbose`` takes precedence over ``level``."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY[max(0, min(config.verbose, len(_VERBOSITY) - 1))]
    if config.level:
        return logging.getLevelNamesMapping().get(config.level.upper(), logging.INFO)
    return logging.INFO


def _open_handler(config: LoggingConfig | None) -> logging.Handler | None:
    path = (config.file if config else None) or os.environ.get("CONTEXTSYNC_LOG")
    if path:
        try:
            return logging.FileHandler(os.path.expanduser(path), mode="a", encoding="utf-8")
        except OSError as e:
            if sys.stderr.isatty():
                print(f"[contextsync] Failed to open log file: {e}", file=sys.stderr)
    # No console output when stderr is piped to a parent process
    if sys.stderr.isatty():
        return logging.StreamHandler(sys.stderr)
    return None


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Install the contextsync handler once; later calls do nothing."""
    global _initialized
    if _initialized:
        return
    _initialized = True

    logger.setLevel(resolve_level(config))
    handler = _open_handler(config)
    if handler is not None:
        handler.setFormatter(_Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"))
        logger.addHandler(handler)


def reset_logging() -> None:
    """Drop installed handlers so setup_logging() can run again (tests)."""
    global _initialized
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    _initialized = False


def get_logger(name: str | None = None) -> logging.Logger:
    """The package logger, or its child ``contextsync.<name>``."""
    return logger.getChild(name) if name else logger
