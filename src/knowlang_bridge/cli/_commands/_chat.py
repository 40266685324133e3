"""knowlang-bridge chat command - asks the running service a question."""

import signal
from functools import partial
from typing import TYPE_CHECKING, Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from knowlang_bridge.client import ChatStatus, StreamingChatSession
from knowlang_bridge.exceptions import ChatCancelledError, ChatTimeoutError
from knowlang_bridge.supervisor import HealthMonitor

from ._context import CLIContext
from ._shared import ExitCode, create_command_logger

if TYPE_CHECKING:
    from knowlang_bridge.client import StreamingChatResult
    from knowlang_bridge.config import Config

app = App(
    name="chat",
    help="Ask the running KnowLang service about the codebase",
    help_on_error=True,
)


def render_context(result: "StreamingChatResult") -> Table:
    """Render the retrieved code contexts of a result as a table."""
    table = Table(title="Retrieved context", show_lines=False)
    table.add_column("Score", justify="right", style="cyan")
    table.add_column("Location")
    for item in result.retrieved_context:
        metadata = item.metadata
        location = str(metadata.get("file_path", ""))
        if not location and item.document:
            location = item.document.splitlines()[0][:80]
        start, end = metadata.get("start_line"), metadata.get("end_line")
        if start is not None and end is not None:
            location = f"{location} (lines {start}-{end})"
        table.add_row(f"{item.score:.3f}", location)
    return table


async def run_chat(
    config: "Config",
    query: str,
    console: Console,
    *,
    show_context: bool = True,
) -> ExitCode:
    """Stream one chat and print progress and the final answer.

    SIGINT or SIGTERM cancels the chat.
    """
    logger = create_command_logger(config, "chat")
    base_url = config.service.base_url

    if not await HealthMonitor(logger=logger).check_health(base_url):
        console.print(f"[red]Error:[/red] Service is not reachable at {base_url}")
        return ExitCode.SERVICE_UNAVAILABLE

    session = StreamingChatSession.from_config(config.service, config.chat, logger=logger)
    cancel_event = anyio.Event()

    def on_message(frame: "StreamingChatResult") -> None:
        if not frame.status.is_terminal and frame.progress_message:
            console.print(f"[dim]{frame.status}: {frame.progress_message}[/dim]")

    async def cancel_on_signal() -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for _ in signals:
                cancel_event.set()
                return

    # Errors are handled inside the task group so they are not wrapped in
    # an exception group on the way out
    async with anyio.create_task_group() as tg:
        tg.start_soon(cancel_on_signal)
        try:
            result = await session.stream_chat(query, on_message, cancel_event=cancel_event)
        except ChatCancelledError:
            console.print("[yellow]Chat cancelled[/yellow]")
            return ExitCode.CANCELLED
        except ChatTimeoutError as e:
            console.print(f"[red]Error:[/red] {e}")
            return ExitCode.CHAT_ERROR
        finally:
            tg.cancel_scope.cancel()

    if result.status == ChatStatus.ERROR:
        console.print(f"[red]Error:[/red] {result.answer}")
        return ExitCode.CHAT_ERROR

    console.print(Markdown(result.answer))
    if show_context and result.retrieved_context:
        console.print(render_context(result))
    return ExitCode.SUCCESS


@app.default
def chat(
    query: str,
    /,
    *,
    show_context: Annotated[
        bool,
        Parameter(help="Print the code contexts the answer is based on."),
    ] = True,
) -> None:
    """Stream an answer to a question about the parsed codebase.

    Args:
        query: The question to ask.
        show_context: Print the code contexts the answer is based on.
    """
    ctx = CLIContext.get_current()
    exit_code = anyio.run(
        partial(run_chat, ctx.config, query, Console(), show_context=show_context)
    )
    raise SystemExit(exit_code)
