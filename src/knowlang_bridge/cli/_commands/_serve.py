"""knowlang-bridge serve command - runs the service in the foreground."""

import signal
from typing import TYPE_CHECKING, Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console

from knowlang_bridge.provisioning import BinaryProvisioner
from knowlang_bridge.supervisor import ConsoleOutputSink, ServiceController

from ._context import CLIContext
from ._shared import ExitCode, create_command_logger

if TYPE_CHECKING:
    from knowlang_bridge.config import Config, ServiceConfig
    from knowlang_bridge.supervisor import ServiceStatus

app = App(
    name="serve",
    help="Run the KnowLang service until interrupted",
    help_on_error=True,
)

_STATUS_STYLES: dict[str, str] = {
    "starting": "cyan",
    "running": "green bold",
    "stopping": "yellow",
    "stopped": "yellow",
    "error": "red bold",
}


async def _wait_for_signal() -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for _ in signals:
            return


async def run_serve(
    config: "Config",
    console: Console,
    service: "ServiceConfig | None" = None,
) -> ExitCode:
    """Start the service, keep it running until a signal arrives, then stop it.

    Returns:
        SUCCESS after a clean shutdown, SERVICE_ERROR if the start failed.
    """
    logger = create_command_logger(config, "serve")
    controller = ServiceController(
        service or config.service,
        provisioner=BinaryProvisioner(config.provisioning, logger=logger),
        output_sink=ConsoleOutputSink(console),
        logger=logger,
    )

    def show_status(status: "ServiceStatus") -> None:
        style = _STATUS_STYLES.get(status.value, "")
        console.print(f"[bold blue]\\[knowlang][/bold blue] status: [{style}]{status}[/{style}]")

    _ = controller.subscribe(show_status)
    exit_code = ExitCode.SUCCESS

    async with controller:
        async with anyio.create_task_group() as tg:

            async def stop_on_signal() -> None:
                await _wait_for_signal()
                tg.cancel_scope.cancel()

            tg.start_soon(stop_on_signal)

            if await controller.start_service():
                console.print(f"Service ready at [bold]{controller.service_url}[/bold]")
                await anyio.sleep_forever()
            else:
                error = controller.last_error
                console.print(f"[red]Error:[/red] Service failed to start: {error}")
                exit_code = ExitCode.SERVICE_ERROR
                tg.cancel_scope.cancel()

        await controller.stop_service()

    return exit_code


@app.default
def serve(
    *,
    port: Annotated[
        int | None,
        Parameter(help="Port for the service (overrides service.port)."),
    ] = None,
) -> None:
    """Run the KnowLang service in the foreground.

    Provisions the service binaries if needed, starts the service, and
    prints its output and status changes until SIGINT or SIGTERM.
    """
    ctx = CLIContext.get_current()
    service = ctx.config.service
    if port is not None:
        service = service.model_copy(update={"port": port})

    exit_code = anyio.run(run_serve, ctx.config, Console(), service)
    raise SystemExit(exit_code)
