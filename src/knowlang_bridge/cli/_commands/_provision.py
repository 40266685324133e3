"""knowlang-bridge provision command - fetches the service binaries."""

import shutil
from typing import Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

from knowlang_bridge.provisioning import BinaryProvisioner

from ._context import CLIContext
from ._shared import ExitCode, create_command_logger, exit_with_error

app = App(
    name="provision",
    help="Download and extract the KnowLang service binaries",
    help_on_error=True,
)


@app.default
def provision(
    *,
    force: Annotated[
        bool,
        Parameter(help="Remove extracted binaries first and provision again."),
    ] = False,
) -> None:
    """Make sure the service binaries for this platform are installed.

    Uses an archive from the local cache when present, otherwise downloads
    it from the release registry (when provisioning.source is "release").
    """
    ctx = CLIContext.get_current()
    config = ctx.config
    console = Console()
    logger = create_command_logger(config, "provision")

    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Downloading service archive", total=1.0, visible=False)

        def report(fraction: float) -> None:
            progress.update(task, completed=fraction, visible=True)

        provisioner = BinaryProvisioner(config.provisioning, progress=report, logger=logger)
        if force and provisioner.binary_dir.exists():
            shutil.rmtree(provisioner.binary_dir)

        ok = anyio.run(provisioner.ensure_binaries)

    if not ok:
        exit_with_error(
            f"Provisioning failed: {provisioner.last_error}",
            ExitCode.PROVISIONING_ERROR,
        )

    console.print(f"Service executable: [bold]{provisioner.executable_path}[/bold]")
    raise SystemExit(ExitCode.SUCCESS)
