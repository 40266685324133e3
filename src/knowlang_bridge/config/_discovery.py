"""Project root and config path discovery utilities.

This module locates the project root by searching upward for a
``knowlang.toml`` file, and determines the platform-specific user
configuration path.
"""

from pathlib import Path
from typing import Any

import platformdirs

from knowlang_bridge.utils import APP_NAME

from ._defaults import DEFAULT_CONFIG
from ._models import ConfigSource, ConfigSourceName

PROJECT_CONFIG_NAME = "knowlang.toml"


def find_project_root(start: Path | None = None) -> Path | None:
    """Find the project root by searching upward for ``knowlang.toml``.

    Args:
        start: Directory to start searching from. Defaults to current
            working directory if not specified.

    Returns:
        Path to the directory containing ``knowlang.toml``, or None if the
        filesystem root is reached without finding one.
    """
    current = (start or Path.cwd()).resolve()

    while True:
        if (current / PROJECT_CONFIG_NAME).is_file():
            return current
        parent = current.parent
        if parent == current:  # Reached filesystem root
            return None
        current = parent


def get_user_config_path() -> Path:
    r"""Get platform-specific user config file path.

    - Linux: ``~/.config/knowlang-bridge/config.toml``
    - macOS: ``~/Library/Application Support/knowlang-bridge/config.toml``
    - Windows: ``%APPDATA%\knowlang-bridge\config.toml``

    The path is returned regardless of whether the file exists.
    """
    return platformdirs.user_config_path(APP_NAME) / "config.toml"


def _file_exists(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


def discover_sources(
    project_root: Path | None = None,
    *,
    include_env: bool = True,
    cli_overrides: dict[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
) -> list[ConfigSource]:
    """Discover all configuration sources.

    Sources are returned in precedence order (highest first). File sources
    that do not exist are still included with ``exists=False``.

    Args:
        project_root: Directory holding ``knowlang.toml``. If None,
            auto-detect by searching upward from the working directory.
        include_env: Include environment variables as a source.
        cli_overrides: Command line overrides; included as the highest
            precedence source when not None.

    Returns:
        List of ConfigSource objects in precedence order (highest first).
    """
    sources: list[ConfigSource] = []
    resolved_root = project_root if project_root else find_project_root()

    if cli_overrides is not None:
        sources.append(
            ConfigSource(
                name=ConfigSourceName.CLI,
                path=None,
                exists=bool(cli_overrides),
                values=cli_overrides,
            )
        )

    if include_env:
        sources.append(
            ConfigSource(
                name=ConfigSourceName.ENV,
                path=None,
                exists=True,  # Actual values parsed during loading phase
                values={},
            )
        )

    if resolved_root:
        project_path = resolved_root / PROJECT_CONFIG_NAME
        sources.append(
            ConfigSource(
                name=ConfigSourceName.PROJECT,
                path=project_path,
                exists=_file_exists(project_path),
                values={},
            )
        )

    user_path = get_user_config_path()
    sources.append(
        ConfigSource(
            name=ConfigSourceName.USER,
            path=user_path,
            exists=_file_exists(user_path),
            values={},
        )
    )

    sources.append(
        ConfigSource(
            name=ConfigSourceName.DEFAULT,
            path=None,
            exists=True,
            values=DEFAULT_CONFIG,
        )
    )

    return sources
