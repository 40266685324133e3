"""Default configuration values.

This module defines the built-in default configuration values that are used
when no other configuration sources provide values. Path-valued defaults are
left empty and resolved to platformdirs locations when the sections are
parsed, so the table stays identical on every machine.
"""

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {  # pyright: ignore[reportExplicitAny]
    "logging": {
        "level": "info",
        "format": "json",
        "file": "",
    },
    "service": {
        "host": "127.0.0.1",
        "port": 8080,
        "api_prefix": "/api/v1",
        "auto_start": True,
        "health_check_interval": 1.0,
        "health_timeout": 60.0,
        "stop_timeout": 5.0,
        "restart_delay": 1.0,
    },
    "provisioning": {
        "source": "release",
        "install_dir": "",
        "archive_dir": "",
        "repository": "KnowLangOrg/know-lang",
        "release_tag": "latest",
        "api_timeout": 10.0,
        "download_timeout": 300.0,
    },
    "chat": {
        "timeout": 120.0,
        "legacy_error_heuristic": False,
    },
}
