# ruff: noqa: A002
"""knowlang-bridge config commands."""

from typing import Annotated, Any

from cyclopts import App, Parameter

from ._context import CLIContext, OutputFormat
from ._shared import ExitCode, exit_with_error, format_json, format_toml

app = App(
    name="config",
    help="Inspect knowlang-bridge configuration",
    help_on_error=True,
)


@app.command(name="show")
def _show(
    *,
    format: Annotated[
        OutputFormat,
        Parameter(name=["--format", "-f"], help="Output format (toml, json)"),
    ] = OutputFormat.TOML,
    section: Annotated[
        str | None,
        Parameter(name=["--section"], help="Show a specific section only (e.g., service)"),
    ] = None,
) -> None:
    """Display the effective configuration

    Shows the configuration merged from defaults, the user config file,
    the project ``knowlang.toml``, environment variables and command line
    options.

    Args:
        format: Output format (toml, json).
        section: Specific section to show.
    """
    ctx = CLIContext.get_current()
    data: dict[str, Any] = ctx.config.to_dict()  # pyright: ignore[reportExplicitAny]

    if section is not None:
        selected = data.get(section)
        if not isinstance(selected, dict):
            exit_with_error(f"Section '{section}' not found", ExitCode.NOT_FOUND)
        data = {section: selected}

    match format:
        case OutputFormat.JSON:
            output = format_json(data)
        case _:
            output = format_toml(data)

    print(output.rstrip())  # noqa: T201
    raise SystemExit(ExitCode.SUCCESS)


@app.command(name="get")
def _get(key: str, /) -> None:
    """Print one configuration value by dot-notation key

    Args:
        key: Dot-notation key, e.g. ``service.port``.
    """
    ctx = CLIContext.get_current()
    sentinel = object()
    value = ctx.config.get(key, sentinel)
    if value is sentinel:
        exit_with_error(f"Key '{key}' not found", ExitCode.NOT_FOUND)

    if isinstance(value, dict | list):
        print(format_json(value))  # noqa: T201
    else:
        print(value)  # noqa: T201
    raise SystemExit(ExitCode.SUCCESS)
