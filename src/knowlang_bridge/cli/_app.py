"""The command-line interface for knowlang-bridge."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter
from rich.console import Console

from knowlang_bridge.config import safe_load_config
from knowlang_bridge.utils import create_cli_logger

from ._commands import register_commands
from ._commands._context import CLIContext

APP_HELP = "Run and talk to a local KnowLang code analysis service."


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    """Create the CLI application with its global options.

    Args:
        console: Console for regular output.
        error_console: Console for error output.
        exit_on_error: Exit the interpreter on parse errors.
    """
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="knowlang-bridge",
        help=APP_HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    @app.meta.default
    def _default(  # pyright: ignore[reportUnusedFunction]
        *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
        verbose: Annotated[bool, Parameter(help="Enable debug logging")] = False,
        config: Annotated[
            Path | None, Parameter(name="--config", help="Path to config file")
        ] = None,
        project_root: Annotated[
            Path | None,
            Parameter(name="--project-root", help="Directory holding knowlang.toml"),
        ] = None,
    ) -> None:
        """Launch the knowlang-bridge CLI with global options.

        Args:
            tokens: Command tokens to pass to subcommands.
            verbose: Enable debug logging.
            config: Explicit path to config file.
            project_root: Directory holding knowlang.toml.
        """
        cli_overrides: dict[str, object] | None = None
        if verbose:
            cli_overrides = {"logging": {"level": "debug"}}

        loaded_config, config_error = safe_load_config(
            config_path=config,
            project_root=project_root,
            cli_overrides=cli_overrides,
        )

        cli_logger = create_cli_logger(
            level=loaded_config.logging.level.value,
            log_format=loaded_config.logging.format.value,  # pyright: ignore[reportArgumentType]
            log_file=loaded_config.logging.file,
        )

        ctx = CLIContext(
            config=loaded_config,
            verbose=verbose,
            project_root=project_root,
            config_error=config_error,
            logger=cli_logger,
        )
        CLIContext.set_current(ctx)

        try:
            app(tokens)
        finally:
            CLIContext.reset()

    register_commands(app)
    return app


app = create_app()


def main() -> None:
    """Default entrypoint for the `knowlang-bridge` CLI."""
    create_app().meta()


if __name__ == "__main__":
    main()
