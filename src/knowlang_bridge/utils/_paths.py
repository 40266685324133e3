from pathlib import Path

import platformdirs

APP_NAME = "knowlang-bridge"


def get_data_dir() -> Path:
    """Get the per-user data directory for knowlang-bridge."""
    return platformdirs.user_data_path(APP_NAME)


def get_log_dir() -> Path:
    """Get the per-user log directory for knowlang-bridge."""
    return platformdirs.user_log_path(APP_NAME)


def get_default_install_root() -> Path:
    """Get the directory that holds extracted service binaries."""
    return get_data_dir() / "service"


def get_default_archive_dir() -> Path:
    """Get the directory that caches downloaded service archives."""
    return get_data_dir() / "archives"


def get_service_log_file() -> Path:
    """Get the path to the service log file inside the log directory."""
    return get_log_dir() / "service.log"


def get_cli_log_file() -> Path:
    """Get the path to the CLI log file inside the log directory."""
    return get_log_dir() / "cli.log"
