"""knowlang-bridge CLI commands."""

from typing import TYPE_CHECKING

from ._chat import app as chat_app
from ._config import app as config_app
from ._context import CLIContext, OutputFormat
from ._parse import app as parse_app
from ._provision import app as provision_app
from ._serve import app as serve_app
from ._shared import ExitCode, exit_with_error, format_json, format_toml, get_error_console

if TYPE_CHECKING:
    from cyclopts import App

__all__ = [
    "CLIContext",
    "ExitCode",
    "OutputFormat",
    "chat_app",
    "config_app",
    "exit_with_error",
    "format_json",
    "format_toml",
    "get_error_console",
    "parse_app",
    "provision_app",
    "register_commands",
    "serve_app",
]


def register_commands(app: "App") -> None:
    _ = app.command(chat_app)
    _ = app.command(config_app)
    _ = app.command(parse_app)
    _ = app.command(provision_app)
    _ = app.command(serve_app)
