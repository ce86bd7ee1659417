"""Configuration management for contextsync.

Hierarchical YAML configuration:
- System-level config (/etc/contextsync/ or %PROGRAMDATA%)
- User-level config (~/.config/contextsync/, ~/.contextsync/ or %APPDATA%)
- Project-level config ($project_root/.contextsync/)
- Environment variable overrides (highest priority)

Example usage:
    from contextsync.config import load_config

    config = load_config(project_root="/path/to/project")
    print(config.tools.default_timeout)
"""

from contextsync.config.loader import (
    get_config,
    load_config,
    on_config_reload,
    reload_config,
    reset_config,
)
from contextsync.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from contextsync.config.schema import (
    Config,
    DashboardConfig,
    LoggingConfig,
    MCPConfig,
    MCPServerConfig,
    StreamsConfig,
    ToolsConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "reset_config",
    "on_config_reload",
    # Schema types
    "DashboardConfig",
    "LoggingConfig",
    "MCPConfig",
    "MCPServerConfig",
    "StreamsConfig",
    "ToolsConfig",
    # Path utilities
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
