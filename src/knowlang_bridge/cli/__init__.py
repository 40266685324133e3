"""The knowlang-bridge command-line interface."""

from ._app import app, create_app, main
from ._commands import CLIContext, ExitCode

__all__ = ["CLIContext", "ExitCode", "app", "create_app", "main"]
