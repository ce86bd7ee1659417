"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reload support
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from contextsync.config.merge import merge_configs
from contextsync.config.paths import get_config_paths
from contextsync.config.schema import (
    Config,
    DashboardConfig,
    LoggingConfig,
    MCPConfig,
    MCPServerConfig,
    StreamsConfig,
    ToolsConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("contextsync.config")

_cached_config: Config | None = None

_reload_callbacks: list[Callable[[Config], None]] = []

_KNOWN_KEYS = {"logging", "streams", "tools", "dashboard", "mcp"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables (highest priority)."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("CONTEXTSYNC_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    verbose = os.environ.get("CONTEXTSYNC_VERBOSE")
    if verbose and verbose.isdigit():
        overrides.setdefault("logging", {})["verbose"] = int(verbose)

    return overrides


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    log_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    streams_data = _section(data, "streams")
    streams_defaults = StreamsConfig()
    streams = StreamsConfig(
        history_limit=int(streams_data.get("history_limit", streams_defaults.history_limit)),
        close_timeout=float(streams_data.get("close_timeout", streams_defaults.close_timeout)),
    )

    tools_data = _section(data, "tools")
    tools_defaults = ToolsConfig()
    tools = ToolsConfig(
        default_timeout=float(tools_data.get("default_timeout", tools_defaults.default_timeout)),
        finished_memory=int(tools_data.get("finished_memory", tools_defaults.finished_memory)),
    )

    dashboard_data = _section(data, "dashboard")
    dashboard = DashboardConfig(
        host=dashboard_data.get("host", DashboardConfig.host),
        port=int(dashboard_data.get("port", DashboardConfig.port)),
    )

    mcp_data = _section(data, "mcp")
    mcp_servers = []
    for s in mcp_data.get("servers", []) or []:
        if not isinstance(s, dict) or not s.get("name"):
            continue
        mcp_servers.append(
            MCPServerConfig(
                name=s["name"],
                command=s.get("command"),
                args=s.get("args", []),
                env=s.get("env", {}),
                url=s.get("url"),
                headers=s.get("headers", {}),
                transport=s.get("transport", "stdio"),
                timeout=float(s.get("timeout", 30.0)),
            )
        )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}

    return Config(
        logging=logging_config,
        streams=streams,
        tools=tools,
        dashboard=dashboard,
        mcp=MCPConfig(servers=mcp_servers),
        extra=extra,
    )


def load_config(project_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config ($project_root/.contextsync/config.yaml)
    3. User config
    4. System config

    Args:
        project_root: Project directory for project-level config.
        reload: Force reload even if cached.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    configs: list[dict[str, Any]] = []

    for path in get_config_paths(project_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    # Cache only global config (no project_root)
    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config (testing, or forcing a reload)."""
    global _cached_config
    _cached_config = None


def reload_config(project_root: str | None = None) -> Config:
    """Reload config from files and notify callbacks."""
    config = load_config(project_root=project_root, reload=True)

    for callback in list(_reload_callbacks):
        try:
            callback(config)
        except Exception as e:
            _log.warning("Config reload callback error: %s", e)

    return config


def on_config_reload(callback: Callable[[Config], None]) -> Callable[[], None]:
    """Register a callback for config reloads.

    Returns:
        A function to unregister the callback.
    """
    _reload_callbacks.append(callback)

    def unregister() -> None:
        if callback in _reload_callbacks:
            _reload_callbacks.remove(callback)

    return unregister
