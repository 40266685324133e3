"""Protocol definitions for the service supervisor.

This module defines the interfaces that decouple the supervisor core from
its collaborators:
- OutputSink: Consumes child process output and lifecycle events
- ProcessProbe: Liveness check consulted while waiting for readiness
- ConfigPatcher: Adjusts the service's own configuration before launch
- Provisioner: Makes the service executable available locally
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pathlib import Path

    from knowlang_bridge.exceptions import ProvisioningError

    from ._models import ServiceEvent, ServiceStatus

StatusListener = Callable[["ServiceStatus"], None]


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for consuming service output lines.

    The protocol is async to support non-blocking I/O operations like
    writing to files or updating UIs.
    """

    async def write_line(
        self,
        service_name: str,
        pid: int,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        """Write a line of service output.

        Args:
            service_name: Name of the service that produced the output.
            pid: Process ID of the service.
            stream: Which output stream the line came from.
            line: The output line (without trailing newline).
        """
        ...

    async def write_event(
        self,
        service_name: str,
        event: "ServiceEvent",
    ) -> None:
        """Write a service lifecycle event.

        Args:
            service_name: Name of the service that generated the event.
            event: The lifecycle event to record.
        """
        ...


@runtime_checkable
class ProcessProbe(Protocol):
    """Anything that can tell whether the service process is still alive."""

    def is_process_running(self) -> bool:
        """Return True while the process has not exited."""
        ...


@runtime_checkable
class ConfigPatcher(Protocol):
    """Hook that rewrites the service's configuration files.

    Called after provisioning and before the process is spawned. Raising
    aborts the start.
    """

    async def patch(self, binary_dir: "Path") -> None:
        """Patch configuration files inside the binary directory."""
        ...


@runtime_checkable
class Provisioner(Protocol):
    """Source of the service executable consumed by the controller."""

    @property
    def executable_path(self) -> "Path":
        """Return the path of the service executable."""
        ...

    @property
    def binary_dir(self) -> "Path":
        """Return the directory that holds the service binaries."""
        ...

    @property
    def last_error(self) -> "ProvisioningError | None":
        """Return the error of the last failed provisioning attempt."""
        ...

    async def ensure_binaries(self) -> bool:
        """Make sure the executable exists; False on failure."""
        ...
