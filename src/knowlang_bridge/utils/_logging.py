"""Logging utilities for knowlang-bridge.

This module provides standalone structlog logger factories that write
JSON-formatted or text-formatted logs to knowlang-bridge log files. Each
logger is self-contained and does not modify global structlog configuration,
so a host application keeps ownership of its own logging setup.
"""

import logging
from os import getenv
from pathlib import Path
from typing import TYPE_CHECKING, Literal, cast

import structlog

from ._paths import get_cli_log_file, get_service_log_file

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

LogFormatType = Literal["json", "text"]


def _log_level_from_string(level: str | None) -> int:
    """Resolve a log level string to a logging level integer.

    KNOWLANG_DEBUG takes precedence over everything, then the explicit
    level, then KNOWLANG_LOG_LEVEL. Unknown names fall back to INFO.

    Args:
        level: Log level string (debug, info, warning, error), or None.

    Returns:
        The logging level as an integer.
    """
    if getenv("KNOWLANG_DEBUG", None):
        return logging.DEBUG

    name = level if level is not None else getenv("KNOWLANG_LOG_LEVEL", "info")
    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(name.upper(), logging.INFO)


def _create_logger(
    log_file_path: str,
    *,
    log_level: int,
    log_format: LogFormatType = "json",
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a standalone structlog logger writing to the specified file.

    Args:
        log_file_path: Path to the log file (opened in append mode).
        log_level: Minimum level that is written.
        log_format: Output format, either "json" or "text".

    Returns:
        A configured FilteringBoundLogger instance.
    """
    log_path = Path(log_file_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger_factory = structlog.WriteLoggerFactory(file=log_path.open("a"))

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        # Text format: "timestamp [level] event key=value ..."
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            logger_factory(),
            processors=processors,
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            context_class=dict,
        ),
    )


def create_service_logger(
    *,
    level: str | None = None,
    log_format: LogFormatType = "json",
    log_file: str = "",
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create the logger used by the service supervisor and its components.

    Writes to the given file, or to the default service log file in the
    per-user log directory. Every entry is bound with ``component="service"``
    so supervisor output can be told apart from CLI output in shared files.

    Args:
        level: Log level threshold (debug, info, warning, error). When None,
            KNOWLANG_LOG_LEVEL decides.
        log_format: Output format, either "json" or "text".
        log_file: Path to log file (uses the default service log if empty).

    Returns:
        A FilteringBoundLogger instance for service logging.
    """
    effective_file = log_file if log_file else str(get_service_log_file())
    logger = _create_logger(
        effective_file,
        log_level=_log_level_from_string(level),
        log_format=log_format,
    )
    return logger.bind(component="service")


def create_cli_logger(
    *,
    level: str = "info",
    log_format: LogFormatType = "json",
    log_file: str = "",
    command: str = "",
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a logger for CLI commands.

    Args:
        level: Log level threshold (debug, info, warning, error).
        log_format: Output format, either "json" or "text".
        log_file: Path to log file (uses the default CLI log if empty).
        command: Name of the CLI command, bound to all entries when given.

    Returns:
        A FilteringBoundLogger instance configured for CLI logging.
    """
    effective_file = log_file if log_file else str(get_cli_log_file())
    logger = _create_logger(
        effective_file,
        log_level=_log_level_from_string(level),
        log_format=log_format,
    )

    if command:
        return logger.bind(command=command)
    return logger
