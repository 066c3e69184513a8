"""Configuration management for toolbridge."""

from toolbridge.config.loader import (
    ConfigurationError,
    clear_config_cache,
    get_config,
    load_config,
    set_config,
)
from toolbridge.config.merger import deep_merge, get_nested_value, set_nested_value
from toolbridge.config.schema import (
    AuditLogConfig,
    Config,
    LoggingConfig,
    MCPConfig,
    ToolsConfig,
)

__all__ = [
    "ConfigurationError",
    "clear_config_cache",
    "get_config",
    "load_config",
    "set_config",
    "deep_merge",
    "get_nested_value",
    "set_nested_value",
    "AuditLogConfig",
    "Config",
    "LoggingConfig",
    "MCPConfig",
    "ToolsConfig",
]
