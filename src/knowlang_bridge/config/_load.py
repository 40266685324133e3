import os
import sys
from typing import TYPE_CHECKING

from knowlang_bridge.exceptions import ConfigError

from ._models import Config

if TYPE_CHECKING:
    from pathlib import Path


def safe_load_config(
    *,
    config_path: "Path | None" = None,
    project_root: "Path | None" = None,
    cli_overrides: dict[str, object] | None = None,
) -> tuple[Config, str | None]:
    """Load configuration with error handling.

    Attempts to load configuration and handles errors based on the
    KNOWLANG_STRICT_CONFIG environment variable:
    - If unset or "0": warn to stderr and return the default config
    - If "1": fail fast with sys.exit(1)

    When config_path is provided, the file must exist (explicit user request).

    Args:
        config_path: Explicit path to config file (--config flag).
        project_root: Project root directory override.
        cli_overrides: CLI argument overrides to pass to Config.load().

    Returns:
        Tuple of (Config, error_message). On success, error_message is None.
        On failure (non-strict mode), returns default Config with the message.
    """
    strict_mode = os.environ.get("KNOWLANG_STRICT_CONFIG", "0") == "1"

    try:
        if config_path is not None:
            if not config_path.exists():
                print(f"Error: Config file not found: {config_path}", file=sys.stderr)  # noqa: T201
                sys.exit(1)
            return Config.from_file(config_path), None

        config = Config.load(project_root=project_root, cli_overrides=cli_overrides)
    except ConfigError as e:
        error_msg = str(e)
    except OSError as e:
        error_msg = f"Failed to load config: {e}"
    else:
        return config, None

    if strict_mode:
        print(f"Error: {error_msg}", file=sys.stderr)  # noqa: T201
        sys.exit(1)
    print(f"Warning: {error_msg}", file=sys.stderr)  # noqa: T201
    return Config.from_dict({}), error_msg
