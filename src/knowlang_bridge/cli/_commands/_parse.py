# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""knowlang-bridge parse command - indexes a codebase with the running service."""

from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import anyio
from cyclopts import App, Parameter
from rich.console import Console

from knowlang_bridge.client import ParseRequest, ServiceClient
from knowlang_bridge.exceptions import ServiceRequestError

from ._context import CLIContext
from ._shared import ExitCode, create_command_logger, exit_with_error, format_json

if TYPE_CHECKING:
    from knowlang_bridge.config import Config

app = App(
    name="parse",
    help="Ask the running KnowLang service to parse a codebase",
    help_on_error=True,
)


async def run_parse(config: "Config", request: ParseRequest) -> Any:  # pyright: ignore[reportExplicitAny]
    """Send a parse request to the service configured in ``config``.

    Raises:
        ServiceRequestError: If the request fails.
    """
    logger = create_command_logger(config, "parse")
    async with ServiceClient.from_config(config.service, logger=logger) as client:
        return await client.parse(request)


@app.default
def parse(
    path: Path,
    /,
    *,
    output: Annotated[
        str | None,
        Parameter(help="Output format understood by the service."),
    ] = None,
    command: Annotated[
        str | None,
        Parameter(help="Parser command to run."),
    ] = None,
    verbose_parse: Annotated[
        bool,
        Parameter(name="--verbose-parse", help="Ask the parser for verbose output."),
    ] = False,
    parser_config: Annotated[
        str | None,
        Parameter(name="--parser-config", help="Path of a parser configuration file."),
    ] = None,
) -> None:
    """Parse a codebase so it can be queried with chat.

    Args:
        path: Directory of the codebase to parse.
        output: Output format understood by the service.
        command: Parser command to run.
        verbose_parse: Ask the parser for verbose output.
        parser_config: Path of a parser configuration file.
    """
    ctx = CLIContext.get_current()
    if not path.exists():
        exit_with_error(f"Path not found: {path}", ExitCode.NOT_FOUND)

    request = ParseRequest(
        path=str(path.resolve()),
        output=output,
        command=command,
        verbose=True if verbose_parse else None,
        config=parser_config,
    )

    try:
        reply = anyio.run(partial(run_parse, ctx.config, request))
    except ServiceRequestError as e:
        exit_with_error(str(e), ExitCode.REQUEST_ERROR)

    Console().print(format_json(reply))
    raise SystemExit(ExitCode.SUCCESS)
