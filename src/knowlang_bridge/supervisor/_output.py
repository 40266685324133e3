"""Output sink implementations for the service supervisor."""

from typing import TYPE_CHECKING, Literal, final

import structlog
from rich.console import Console
from rich.style import Style
from rich.text import Text

from ._models import ServiceEventType

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._models import ServiceEvent


@final
class LoggingOutputSink:
    """Output sink that forwards service output to a structlog logger.

    Output lines become ``service_output`` entries (stderr at warning
    level) and lifecycle events become ``service_<type>`` entries.
    """

    __slots__ = ("_logger",)

    def __init__(self, logger: "FilteringBoundLogger | None" = None) -> None:
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(__name__)

    async def write_line(
        self,
        service_name: str,
        pid: int,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        log = self._logger.warning if stream == "stderr" else self._logger.info
        log("service_output", service=service_name, pid=pid, stream=stream, line=line)

    async def write_event(
        self,
        service_name: str,
        event: "ServiceEvent",
    ) -> None:
        log = (
            self._logger.error
            if event.event_type == ServiceEventType.CRASHED
            else self._logger.info
        )
        log(
            f"service_{event.event_type.value}",
            service=service_name,
            pid=event.pid,
            exit_code=event.exit_code,
            message=event.message,
            event_timestamp=event.timestamp,
        )


@final
class ConsoleOutputSink:
    """Output sink that writes to the terminal with formatted prefixes.

    Formats service output as `[name:pid] line` with color coding:
    - stdout: Default styling
    - stderr: Dim red styling
    - Events: Styled by event type
    """

    __slots__ = ("_console", "_event_styles", "_stderr_style", "_stdout_style")

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the output sink.

        Args:
            console: Rich Console instance for output. If None, creates a new one.
        """
        self._console = console or Console()
        self._stdout_style = Style()
        self._stderr_style = Style(color="red", dim=True)
        self._event_styles: dict[ServiceEventType, Style] = {
            ServiceEventType.STARTED: Style(color="green", bold=True),
            ServiceEventType.STOPPED: Style(color="yellow"),
            ServiceEventType.CRASHED: Style(color="red", bold=True),
        }

    async def write_line(
        self,
        service_name: str,
        pid: int,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        style = self._stderr_style if stream == "stderr" else self._stdout_style

        text = Text()
        _ = text.append(f"[{service_name}:{pid}]", style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(line, style=style)

        self._console.print(text)

    async def write_event(
        self,
        service_name: str,
        event: "ServiceEvent",
    ) -> None:
        style = self._event_styles.get(event.event_type, Style())

        text = Text()
        _ = text.append(f"[{service_name}]", style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(event.event_type.value.upper(), style=style)

        if event.pid is not None:
            _ = text.append(f" (pid={event.pid})", style=Style(dim=True))

        if event.exit_code is not None:
            _ = text.append(f" exit_code={event.exit_code}", style=Style(dim=True))

        if event.message:
            _ = text.append(f" - {event.message}", style=style)

        self._console.print(text)
