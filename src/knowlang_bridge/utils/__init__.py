"""Shared utilities for knowlang-bridge."""

from ._logging import LogFormatType, create_cli_logger, create_service_logger
from ._paths import (
    APP_NAME,
    get_cli_log_file,
    get_data_dir,
    get_default_archive_dir,
    get_default_install_root,
    get_log_dir,
    get_service_log_file,
)

__all__ = [
    "APP_NAME",
    "LogFormatType",
    "create_cli_logger",
    "create_service_logger",
    "get_cli_log_file",
    "get_data_dir",
    "get_default_archive_dir",
    "get_default_install_root",
    "get_log_dir",
    "get_service_log_file",
]
