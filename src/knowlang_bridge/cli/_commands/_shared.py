# pyright: reportExplicitAny=false
"""Shared CLI utilities for commands.

This module provides common utilities used across CLI command implementations:
- Standardized exit codes
- JSON and TOML formatters
- Console utilities for error handling
"""

from enum import IntEnum
from typing import TYPE_CHECKING, Any, Never

import orjson
import tomli_w
from rich.console import Console

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from knowlang_bridge.config import Config

FormattableData = dict[str, Any]


class ExitCode(IntEnum):
    """Standard exit codes for knowlang-bridge CLI commands."""

    SUCCESS = 0
    LOAD_ERROR = 1
    VALIDATION_ERROR = 2
    NOT_FOUND = 3
    IO_ERROR = 4
    INTERNAL_ERROR = 5
    PROVISIONING_ERROR = 6
    SERVICE_ERROR = 7
    SERVICE_UNAVAILABLE = 8
    REQUEST_ERROR = 9
    CHAT_ERROR = 10
    CANCELLED = 130


def format_json(data: Any, *, indent: bool = True) -> str:
    """Format data as JSON.

    Args:
        data: Value to format as JSON.
        indent: Whether to pretty-print with indentation.
    """
    options = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=options, default=str).decode("utf-8")


def format_toml(data: FormattableData) -> str:
    """Format data as TOML."""
    return tomli_w.dumps(data)


def get_error_console() -> Console:
    """Get a Rich console configured for error output to stderr."""
    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.INTERNAL_ERROR,
    *,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()

    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(code)


def create_command_logger(config: "Config", command: str) -> "FilteringBoundLogger":
    """Create the service-side logger for a command from the logging config."""
    from knowlang_bridge.utils import create_service_logger  # noqa: PLC0415

    return create_service_logger(
        level=config.logging.level.value,
        log_format=config.logging.format.value,  # pyright: ignore[reportArgumentType]
        log_file=config.logging.file,
    ).bind(command=command)
