# pyright: reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""TOML configuration file loading and merging."""

import json
import os
import tomllib
from pathlib import Path
from typing import Any

from knowlang_bridge.exceptions import ConfigLoadError


def read_toml_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Read and parse a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed TOML content as dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigLoadError: If the file cannot be parsed.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse TOML file: {e}"
        raise ConfigLoadError(
            msg,
            path=path,
            line=e.lineno,
            column=e.colno,
        ) from e


def deep_merge(
    base: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    override: dict[str, Any],  # pyright: ignore[reportExplicitAny]
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Deep merge two configuration dictionaries.

    Merges `override` into `base`, returning a new dictionary. Neither input
    is modified.

    Args:
        base: Lower-precedence layer, e.g. the built-in defaults.
        override: Higher-precedence layer, e.g. the user config file.

    Returns:
        The merged configuration tree.

    Merge rules:
        - Dictionaries are recursively merged
        - Arrays are replaced entirely (no element-wise merge)
        - Scalars are replaced with override value
        - Missing keys in override preserve base values
    """
    result: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    for key in set(base.keys()) | set(override.keys()):
        if key not in override:
            # Only the lower layer sets it
            result[key] = copy_value(base[key])
        elif key not in base:
            result[key] = copy_value(override[key])
        else:
            base_val = base[key]
            override_val = override[key]

            if isinstance(base_val, dict) and isinstance(override_val, dict):
                result[key] = deep_merge(base_val, override_val)
            else:
                # Type mismatch or non-dicts - override wins
                result[key] = copy_value(override_val)

    return result


def copy_value(value: Any) -> Any:  # pyright: ignore[reportExplicitAny]
    """Create a deep copy of a configuration value.

    Merged trees never share dicts or lists with their inputs, so a
    Config built from them cannot be changed through a layer.

    Args:
        value: A TOML value: table, array or scalar.

    Returns:
        An independent copy; scalars are returned as is.
    """
    if isinstance(value, dict):
        return {k: copy_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [copy_value(item) for item in value]
    return value


def parse_env_vars(
    prefix: str = "KNOWLANG_",
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Parse environment variables into config dictionary.

    Only variables that name a section and a key are considered, so flags
    such as KNOWLANG_DEBUG or KNOWLANG_STRICT_CONFIG never leak into the
    configuration tree.

    Args:
        prefix: Environment variable prefix (default: "KNOWLANG_").

    Returns:
        Dictionary of parsed config values with nested structure.

    Environment variable naming:
        - Add prefix (KNOWLANG_)
        - Convert to uppercase
        - Replace dots with double underscores
        - Example: service.port -> KNOWLANG_SERVICE__PORT
    """
    result: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :]
        if "__" not in config_key:
            continue

        # SERVICE__PORT -> service.port
        config_path = config_key.replace("__", ".").lower()
        set_nested_key(result, config_path, parse_string_value(value))

    return result


def parse_string_value(value: str) -> Any:  # pyright: ignore[reportExplicitAny]
    """Parse a string value with automatic type inference.

    Precedence: boolean, integer, float, JSON array/object, string.

    Environment overrides go through here, so KNOWLANG_SERVICE__PORT=9000
    becomes a port number and "false" a flag.

    Args:
        value: Raw string value.

    Returns:
        The value as bool, int, float, list, dict or the original string.

    Examples:
        >>> parse_string_value("true")
        True
        >>> parse_string_value("42")
        42
        >>> parse_string_value("3.14")
        3.14
        >>> parse_string_value("http://127.0.0.1")
        'http://127.0.0.1'
    """
    lower_value = value.lower()
    if lower_value in ("true", "false"):
        return lower_value == "true"

    try:
        int_val = int(value)
        if "." not in value:
            return int_val
    except ValueError:
        pass

    if "." in value:
        try:
            return float(value)
        except ValueError:
            pass

    if (value.startswith("[") and value.endswith("]")) or (
        value.startswith("{") and value.endswith("}")
    ):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    return value


def set_nested_key(
    d: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    key_path: str,
    value: Any,  # pyright: ignore[reportExplicitAny]
) -> None:
    """Set a value at a dotted key path in a nested dictionary.

    Creates intermediate dictionaries as needed.

    Args:
        d: The configuration tree to modify in place.
        key_path: Dotted path such as "service.port".
        value: Value stored at the last path segment.

    Example:
        >>> d = {}
        >>> set_nested_key(d, "service.port", 9000)
        >>> d
        {'service': {'port': 9000}}
    """
    parts = key_path.split(".")
    current = d

    for part in parts[:-1]:
        # A scalar in the way is replaced by a table
        if part not in current or not isinstance(current[part], dict):
            current[part] = {}
        current = current[part]

    if parts:
        current[parts[-1]] = value
