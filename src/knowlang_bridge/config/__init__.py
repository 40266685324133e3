"""knowlang-bridge configuration.

This module provides the public API for configuration management,
including loading, validation, and typed access to configuration values.

Example:
    >>> from knowlang_bridge.config import Config
    >>> config = Config.load()
    >>> config.service.base_url
    'http://127.0.0.1:8080/api/v1'
"""

from knowlang_bridge.exceptions import (
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
)

from ._defaults import DEFAULT_CONFIG
from ._discovery import (
    PROJECT_CONFIG_NAME,
    discover_sources,
    find_project_root,
    get_user_config_path,
)
from ._load import safe_load_config
from ._loader import deep_merge, parse_env_vars, parse_string_value, read_toml_file, set_nested_key
from ._models import (
    ChatConfig,
    Config,
    ConfigSource,
    ConfigSourceName,
    LogFormat,
    LoggingConfig,
    LogLevel,
    ProvisioningConfig,
    ProvisioningSource,
    ServiceConfig,
)

__all__ = [
    "DEFAULT_CONFIG",
    "PROJECT_CONFIG_NAME",
    "ChatConfig",
    "Config",
    "ConfigError",
    "ConfigLoadError",
    "ConfigSource",
    "ConfigSourceName",
    "ConfigValidationError",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "ProvisioningConfig",
    "ProvisioningSource",
    "ServiceConfig",
    "deep_merge",
    "discover_sources",
    "find_project_root",
    "get_user_config_path",
    "parse_env_vars",
    "parse_string_value",
    "read_toml_file",
    "safe_load_config",
    "set_nested_key",
]
