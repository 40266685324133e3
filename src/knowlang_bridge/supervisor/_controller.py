"""Lifecycle state machine for the supervised service.

This module provides the ServiceController class that sequences
provisioning, configuration patching, process start and readiness
polling, and publishes every status change to its subscribers.
"""

from collections.abc import Callable
from contextlib import AsyncExitStack
from types import TracebackType
from typing import TYPE_CHECKING, Final, Self, final

import anyio
import anyio.abc
import structlog

from knowlang_bridge.config import Config, ServiceConfig
from knowlang_bridge.exceptions import (
    HealthTimeoutError,
    ProcessError,
    ProvisioningError,
    ServiceError,
    StateTransitionError,
)
from knowlang_bridge.provisioning import BinaryProvisioner

from ._health import HealthMonitor
from ._models import ServiceStatus
from ._process import ProcessSupervisor

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._protocol import ConfigPatcher, OutputSink, Provisioner, StatusListener

_TRANSITIONS: Final[dict[ServiceStatus, frozenset[ServiceStatus]]] = {
    ServiceStatus.STOPPED: frozenset({ServiceStatus.STARTING}),
    ServiceStatus.STARTING: frozenset(
        {ServiceStatus.RUNNING, ServiceStatus.ERROR, ServiceStatus.STOPPING}
    ),
    ServiceStatus.RUNNING: frozenset({ServiceStatus.STOPPING}),
    ServiceStatus.STOPPING: frozenset({ServiceStatus.STOPPED}),
    ServiceStatus.ERROR: frozenset({ServiceStatus.STARTING, ServiceStatus.STOPPING}),
}


def is_allowed_transition(current: ServiceStatus, requested: ServiceStatus) -> bool:
    """Check whether the controller may move from one status to another."""
    return requested in _TRANSITIONS[current]


@final
class ServiceController:
    """Start, stop and observe the local service.

    The controller owns one ProcessSupervisor and must be entered with
    ``async with``. When ``auto_start`` is set, entering also schedules a
    start in the background. Leaving the block tears the process down
    without publishing stopping/stopped.

    Example:
        >>> async with ServiceController(config.service) as controller:
        ...     unsubscribe = controller.subscribe(print)
        ...     await controller.start_service()
        True

    Attributes:
        config: Immutable connection and lifecycle settings.
        last_error: The error that moved the controller to ERROR, or the
            last unexpected process exit.
    """

    __slots__ = (
        "_closing",
        "_config_patcher",
        "_exit_stack",
        "_health",
        "_listeners",
        "_logger",
        "_provisioner",
        "_start_done",
        "_start_result",
        "_start_scope",
        "_status",
        "_supervisor",
        "_task_group",
        "config",
        "last_error",
    )

    def __init__(
        self,
        config: ServiceConfig | None = None,
        *,
        provisioner: "Provisioner | None" = None,
        supervisor: ProcessSupervisor | None = None,
        health_monitor: HealthMonitor | None = None,
        config_patcher: "ConfigPatcher | None" = None,
        output_sink: "OutputSink | None" = None,
        logger: "FilteringBoundLogger | None" = None,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Service settings. Defaults apply when None.
            provisioner: Source of the service executable.
            supervisor: Process supervisor; created from the config if None.
            health_monitor: Readiness poller; created from the config if None.
            config_patcher: Hook run after provisioning, before spawning.
            output_sink: Sink for process output when the supervisor is
                created here.
            logger: Logger shared by the default components.
        """
        self.config: ServiceConfig = config or ServiceConfig()
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(__name__)
        self._provisioner: Provisioner = provisioner or BinaryProvisioner(
            logger=self._logger
        )
        self._supervisor: ProcessSupervisor = supervisor or ProcessSupervisor(
            output_sink,
            stop_timeout=self.config.stop_timeout,
            logger=self._logger,
        )
        self._health: HealthMonitor = health_monitor or HealthMonitor(
            poll_interval=self.config.health_check_interval,
            logger=self._logger,
        )
        self._config_patcher: ConfigPatcher | None = config_patcher
        self._supervisor.crash_callback = self._on_process_crash

        self._status = ServiceStatus.STOPPED
        self._listeners: list[StatusListener] = []
        self._start_done: anyio.Event | None = None
        self._start_result = False
        self._start_scope: anyio.CancelScope | None = None
        self._closing = False
        self._exit_stack: AsyncExitStack | None = None
        self._task_group: anyio.abc.TaskGroup | None = None
        self.last_error: ServiceError | None = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        config_patcher: "ConfigPatcher | None" = None,
        output_sink: "OutputSink | None" = None,
        logger: "FilteringBoundLogger | None" = None,
    ) -> Self:
        """Build a controller and its default components from a Config."""
        return cls(
            config.service,
            provisioner=BinaryProvisioner(config.provisioning, logger=logger),
            config_patcher=config_patcher,
            output_sink=output_sink,
            logger=logger,
        )

    async def __aenter__(self) -> Self:
        async with AsyncExitStack() as stack:
            _ = await stack.enter_async_context(self._supervisor)
            self._task_group = await stack.enter_async_context(
                anyio.create_task_group()
            )
            self._exit_stack = stack.pop_all()

        if self.config.auto_start:
            self._task_group.start_soon(self.start_service)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        await self.aclose()
        if self._task_group is not None:
            self._task_group.cancel_scope.cancel()
        stack, self._exit_stack, self._task_group = self._exit_stack, None, None
        if stack is None:
            return None
        return await stack.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def status(self) -> ServiceStatus:
        """Return the current service status."""
        return self._status

    @property
    def is_running(self) -> bool:
        """Return True when the service is up and healthy."""
        return self._status == ServiceStatus.RUNNING

    @property
    def service_url(self) -> str:
        """Return the base URL of the service API."""
        return self.config.base_url

    @property
    def pid(self) -> int | None:
        """Return the process ID of the service, if a process is held."""
        return self._supervisor.pid

    @property
    def command_args(self) -> list[str]:
        """Return the command line arguments passed to the service."""
        return [f"--server.port={self.config.port}"]

    def subscribe(self, listener: "StatusListener") -> Callable[[], None]:
        """Register a listener for status changes.

        Args:
            listener: Called with the new status after every change.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_status(self, status: ServiceStatus) -> None:
        current = self._status
        if status == current:
            return
        if not is_allowed_transition(current, status):
            msg = f"Cannot move service from {current} to {status}"
            raise StateTransitionError(msg, current=current, requested=status)

        self._status = status
        self._logger.info("service_status_changed", previous=current, status=status)
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:  # noqa: BLE001
                self._logger.warning("status_listener_failed", exc_info=True)

    async def start_service(self) -> bool:
        """Bring the service up.

        A call while a start is in flight waits for that start and returns
        its outcome; a call while running returns True at once. A call
        while stopping is refused.

        Returns:
            True if the service reached RUNNING.
        """
        if self._status == ServiceStatus.RUNNING:
            return True
        if self._status == ServiceStatus.STARTING and self._start_done is not None:
            done = self._start_done
            await done.wait()
            return self._start_result
        if self._status == ServiceStatus.STOPPING:
            self._logger.warning("start_refused_while_stopping")
            return False
        if self._task_group is None:
            msg = "ServiceController must be entered with 'async with' before use"
            raise RuntimeError(msg)

        done = anyio.Event()
        self._start_done = done
        self._start_result = False
        self._set_status(ServiceStatus.STARTING)
        self.last_error = None

        settled = False
        try:
            with anyio.CancelScope() as scope:
                self._start_scope = scope
                self._start_result = await self._run_start()
            if scope.cancelled_caught:
                self._logger.info("service_start_cancelled")
            settled = True
        finally:
            self._start_scope = None
            self._start_done = None
            if not settled:
                await self._abandon_start()
            done.set()

        return self._start_result

    async def _abandon_start(self) -> None:
        # The caller's own scope was cancelled, or a step raised something
        # other than a ServiceError; the status must not stay STARTING
        if self._status != ServiceStatus.STARTING or self._closing:
            return
        self._logger.info("service_start_abandoned")
        self._set_status(ServiceStatus.STOPPING)
        with anyio.CancelScope(shield=True):
            await self._supervisor.stop_process(timeout=self.config.stop_timeout)
        self._set_status(ServiceStatus.STOPPED)

    async def _run_start(self) -> bool:
        try:
            await self._start_steps()
        except ServiceError as e:
            self.last_error = e
            self._logger.error(
                "service_start_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._supervisor.stop_process(timeout=self.config.stop_timeout)
            self._set_status(ServiceStatus.ERROR)
            return False

        self._set_status(ServiceStatus.RUNNING)
        self._logger.info("service_started", url=self.service_url, pid=self.pid)
        return True

    async def _start_steps(self) -> None:
        if not await self._provisioner.ensure_binaries():
            raise self._provisioner.last_error or ProvisioningError(
                "Service binaries are not available",
                path=self._provisioner.executable_path,
            )

        if self._config_patcher is not None:
            binary_dir = self._provisioner.binary_dir
            try:
                await self._config_patcher.patch(binary_dir)
            except Exception as e:
                msg = f"Failed to patch service configuration: {e}"
                raise ProvisioningError(msg, path=binary_dir, cause=e) from e

        executable = self._provisioner.executable_path
        if not await self._supervisor.start_process(executable, self.command_args):
            raise self._supervisor.last_error or ProcessError(
                "Failed to start service process", executable=executable
            )

        ready = await self._health.wait_for_ready(
            self.service_url,
            self._supervisor,
            self.config.health_timeout,
        )
        if ready:
            return
        if not self._supervisor.is_process_running():
            raise self._supervisor.last_error or ProcessError(
                "Service process exited before becoming healthy",
                executable=executable,
                exit_code=self._supervisor.exit_code,
            )
        msg = f"Service did not become healthy within {self.config.health_timeout}s"
        raise HealthTimeoutError(
            msg, url=self.service_url, timeout=self.config.health_timeout
        )

    async def stop_service(self) -> None:
        """Stop the service.

        Moves through STOPPING to STOPPED. A start in flight is cancelled.
        Does nothing when already stopped or stopping.
        """
        if self._status in (ServiceStatus.STOPPED, ServiceStatus.STOPPING):
            return

        self._set_status(ServiceStatus.STOPPING)
        if self._start_scope is not None:
            self._start_scope.cancel()
        await self._supervisor.stop_process(timeout=self.config.stop_timeout)
        self._set_status(ServiceStatus.STOPPED)
        self._logger.info("service_stopped")

    async def restart_service(self) -> bool:
        """Stop the service, pause for ``restart_delay``, then start it."""
        self._logger.info("service_restarting")
        await self.stop_service()
        await anyio.sleep(self.config.restart_delay)
        return await self.start_service()

    async def aclose(self) -> None:
        """Tear the process down without publishing status changes.

        Used on host shutdown or reload, when listeners may already be gone.
        """
        self._closing = True
        try:
            with anyio.CancelScope(shield=True):
                if self._start_scope is not None:
                    self._start_scope.cancel()
                await self._supervisor.stop_process(timeout=self.config.stop_timeout)
            self._status = ServiceStatus.STOPPED
        finally:
            self._closing = False

    def _on_process_crash(self, error: ProcessError) -> None:
        if self._status != ServiceStatus.RUNNING:
            return
        self.last_error = error
        self._logger.error(
            "service_process_crashed",
            exit_code=error.exit_code,
            url=self.service_url,
        )
