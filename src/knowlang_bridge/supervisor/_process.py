"""Child process supervision for the service executable.

This module provides the ProcessSupervisor class that spawns the service
as a child process, streams its output to an OutputSink, detects
unexpected exits, and terminates it on request.
"""

import subprocess
from collections.abc import Callable, Sequence
from types import TracebackType
from typing import TYPE_CHECKING, Literal, Self, final

import anyio
import anyio.abc
import structlog
from anyio.streams.text import TextReceiveStream

from knowlang_bridge.exceptions import ProcessError

from ._models import SERVICE_NAME, ServiceEvent, ServiceEventType, get_timestamp
from ._output import LoggingOutputSink

if TYPE_CHECKING:
    from pathlib import Path

    from structlog.typing import FilteringBoundLogger

    from ._protocol import OutputSink

CrashCallback = Callable[[ProcessError], None]


@final
class ProcessSupervisor:
    """Owns at most one child process of the service.

    Must be entered with ``async with`` before a process is started; the
    task group it opens runs the output streaming and exit watching tasks.
    Leaving the block stops any process that is still alive.

    Example:
        >>> async with ProcessSupervisor() as supervisor:
        ...     await supervisor.start_process(path, ["--server.port=8080"])
    """

    __slots__ = (
        "_logger",
        "_output_sink",
        "_process",
        "_stop_requested",
        "_task_group",
        "crash_callback",
        "last_error",
        "last_exit_code",
        "service_name",
        "stop_timeout",
    )

    def __init__(
        self,
        output_sink: "OutputSink | None" = None,
        *,
        stop_timeout: float = 5.0,
        service_name: str = SERVICE_NAME,
        logger: "FilteringBoundLogger | None" = None,
    ) -> None:
        """Initialize the process supervisor.

        Args:
            output_sink: Sink for process output and events. Defaults to a
                LoggingOutputSink on the same logger.
            stop_timeout: Seconds to wait after terminate before killing.
            service_name: Name used in output prefixes and events.
            logger: Logger for supervisor events.
        """
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(__name__)
        self._output_sink: OutputSink = output_sink or LoggingOutputSink(self._logger)
        self._process: anyio.abc.Process | None = None
        self._stop_requested = False
        self._task_group: anyio.abc.TaskGroup | None = None
        self.crash_callback: CrashCallback | None = None
        self.last_error: ProcessError | None = None
        self.last_exit_code: int | None = None
        self.service_name = service_name
        self.stop_timeout = stop_timeout

    async def __aenter__(self) -> Self:
        task_group = anyio.create_task_group()
        _ = await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        task_group = self._task_group
        if task_group is None:
            return None
        with anyio.CancelScope(shield=True):
            await self.stop_process()
        task_group.cancel_scope.cancel()
        self._task_group = None
        return await task_group.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def pid(self) -> int | None:
        """Return the process ID if a process is held, None otherwise."""
        return self._process.pid if self._process is not None else None

    @property
    def exit_code(self) -> int | None:
        """Return the exit code of the held or last process, None while it runs."""
        if self._process is not None:
            return self._process.returncode
        return self.last_exit_code

    def is_process_running(self) -> bool:
        """Check whether a child process exists and has not exited."""
        return self._process is not None and self._process.returncode is None

    async def start_process(
        self,
        executable_path: "Path",
        args: Sequence[str] = (),
    ) -> bool:
        """Spawn the service executable.

        The working directory is the executable's directory. Output is
        streamed line by line to the output sink in the background.

        Args:
            executable_path: Path of the service executable.
            args: Command line arguments.

        Returns:
            True if the process is running afterwards, False if it could
            not be spawned (the error is kept in ``last_error``).

        Raises:
            RuntimeError: If the supervisor has not been entered.
        """
        if self._task_group is None:
            msg = "ProcessSupervisor must be entered with 'async with' before use"
            raise RuntimeError(msg)

        if self.is_process_running():
            self._logger.warning("process_already_running", pid=self.pid)
            return True

        command = [str(executable_path), *args]
        try:
            process = await anyio.open_process(
                command,
                cwd=executable_path.parent,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            msg = f"Failed to start service process: {e}"
            self.last_error = ProcessError(msg, executable=executable_path, cause=e)
            self._logger.error(
                "process_spawn_failed",
                executable=str(executable_path),
                error=str(e),
            )
            return False

        self._process = process
        self._stop_requested = False
        self.last_error = None
        self.last_exit_code = None
        self._logger.info("process_started", pid=process.pid, command=command)
        await self._emit_event(
            ServiceEventType.STARTED,
            pid=process.pid,
            message=f"Started with command: {' '.join(command)}",
        )
        self._task_group.start_soon(self._watch, process, executable_path)
        return True

    async def stop_process(self, timeout: float | None = None) -> None:
        """Terminate the child process.

        Sends terminate, waits up to the grace period, then kills. The
        handle is dropped whatever happens, so this never blocks for
        longer than twice the grace period. Does nothing when no process
        is held.

        Args:
            timeout: Grace period in seconds. Uses ``stop_timeout`` if None.
        """
        process = self._process
        if process is None:
            return

        self._stop_requested = True
        grace = self.stop_timeout if timeout is None else timeout
        pid = process.pid

        try:
            if process.returncode is None:
                process.terminate()
                with anyio.move_on_after(grace):
                    _ = await process.wait()

            if process.returncode is None:
                self._logger.warning("process_kill", pid=pid, grace=grace)
                process.kill()
                with anyio.move_on_after(grace):
                    _ = await process.wait()
        except ProcessLookupError:
            # Exited between the returncode check and the signal
            pass
        except OSError as e:
            self._logger.error("process_stop_failed", pid=pid, error=str(e))
        finally:
            if self._process is process:
                self._process = None
            self.last_exit_code = process.returncode

        self._logger.info("process_stopped", pid=pid, exit_code=process.returncode)
        await self._emit_event(
            ServiceEventType.STOPPED,
            pid=pid,
            exit_code=process.returncode,
            message="Stopped by request",
        )

    async def _watch(self, process: anyio.abc.Process, executable_path: "Path") -> None:
        """Stream output until the process exits, then report unexpected exits."""
        try:
            async with anyio.create_task_group() as tg:
                if process.stdout is not None:
                    tg.start_soon(self._stream_output, process, process.stdout, "stdout")
                if process.stderr is not None:
                    tg.start_soon(self._stream_output, process, process.stderr, "stderr")
                exit_code = await process.wait()
        finally:
            await process.aclose()

        if self._process is not process or self._stop_requested:
            return

        self._process = None
        self.last_exit_code = exit_code
        msg = f"Service process exited unexpectedly with code {exit_code}"
        error = ProcessError(msg, executable=executable_path, exit_code=exit_code)
        self.last_error = error
        self._logger.error("process_crashed", pid=process.pid, exit_code=exit_code)
        await self._emit_event(
            ServiceEventType.CRASHED,
            pid=process.pid,
            exit_code=exit_code,
            message=f"Exited with code {exit_code}",
        )
        if self.crash_callback is not None:
            try:
                self.crash_callback(error)
            except Exception:  # noqa: BLE001
                self._logger.warning("crash_callback_failed", exc_info=True)

    async def _stream_output(
        self,
        process: anyio.abc.Process,
        stream: anyio.abc.ByteReceiveStream,
        stream_name: Literal["stdout", "stderr"],
    ) -> None:
        """Split a byte stream into lines and forward them to the output sink."""
        pending = ""
        try:
            async for chunk in TextReceiveStream(stream, errors="replace"):
                pending += chunk
                *lines, pending = pending.split("\n")
                for line in lines:
                    await self._write_line(process.pid, stream_name, line.rstrip("\r"))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Stream closed, which is expected on process exit
            pass
        if pending:
            await self._write_line(process.pid, stream_name, pending.rstrip("\r"))

    async def _write_line(
        self,
        pid: int,
        stream_name: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        try:
            await self._output_sink.write_line(self.service_name, pid, stream_name, line)
        except Exception:  # noqa: BLE001
            self._logger.warning("output_sink_failed", exc_info=True)

    async def _emit_event(
        self,
        event_type: ServiceEventType,
        *,
        pid: int | None = None,
        exit_code: int | None = None,
        message: str | None = None,
    ) -> None:
        event = ServiceEvent(
            service_name=self.service_name,
            event_type=event_type,
            timestamp=get_timestamp(),
            pid=pid,
            exit_code=exit_code,
            message=message,
        )
        try:
            await self._output_sink.write_event(self.service_name, event)
        except Exception:  # noqa: BLE001
            self._logger.warning("output_sink_failed", exc_info=True)
