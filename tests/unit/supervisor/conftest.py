"""Fakes shared by the supervisor unit tests."""

from pathlib import Path
from typing import Literal

import anyio
import pytest

from knowlang_bridge.exceptions import ProcessError, ProvisioningError
from knowlang_bridge.supervisor import ServiceEvent


class RecordingSink:
    """Output sink that keeps everything it is given."""

    def __init__(self) -> None:
        self.lines: list[tuple[str, int, str, str]] = []
        self.events: list[ServiceEvent] = []

    async def write_line(
        self,
        service_name: str,
        pid: int,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        self.lines.append((service_name, pid, stream, line))

    async def write_event(self, service_name: str, event: ServiceEvent) -> None:
        self.events.append(event)

    def stream_lines(self, stream: str) -> list[str]:
        return [line for _, _, name, line in self.lines if name == stream]


class FakeProvisioner:
    def __init__(self, root: Path, *, ok: bool = True) -> None:
        self.binary_dir = root / "linux"
        self.executable_path = self.binary_dir / "main"
        self.last_error: ProvisioningError | None = None
        self.ok = ok
        self.calls = 0

    async def ensure_binaries(self) -> bool:
        self.calls += 1
        if not self.ok:
            self.last_error = ProvisioningError("download failed", path=self.executable_path)
        return self.ok


class FakeSupervisor:
    """Stands in for ProcessSupervisor without spawning anything."""

    def __init__(self) -> None:
        self.crash_callback = None
        self.last_error: ProcessError | None = None
        self.running = False
        self.start_ok = True
        self.started: list[tuple[Path, list[str]]] = []
        self.stops = 0
        self.stop_gate: anyio.Event | None = None
        self.exit_code: int | None = None

    async def __aenter__(self) -> "FakeSupervisor":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop_process()

    @property
    def pid(self) -> int | None:
        return 4242 if self.running else None

    def is_process_running(self) -> bool:
        return self.running

    async def start_process(self, executable_path: Path, args: list[str]) -> bool:
        self.started.append((executable_path, list(args)))
        if not self.start_ok:
            self.last_error = ProcessError("spawn failed", executable=executable_path)
            return False
        self.running = True
        return True

    async def stop_process(self, timeout: float | None = None) -> None:
        if self.stop_gate is not None:
            await self.stop_gate.wait()
        if self.running:
            self.stops += 1
        self.running = False

    def crash(self, exit_code: int = 1) -> None:
        self.running = False
        error = ProcessError("crashed", exit_code=exit_code)
        self.last_error = error
        if self.crash_callback is not None:
            self.crash_callback(error)


class FakeHealthMonitor:
    def __init__(self, supervisor: FakeSupervisor) -> None:
        self.supervisor = supervisor
        self.ready = True
        self.die = False
        self.gate: anyio.Event | None = None
        self.calls = 0

    async def wait_for_ready(self, url: str, process: object, timeout_seconds: float) -> bool:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.die:
            self.supervisor.running = False
            return False
        return self.ready


class FakeLiveness:
    def __init__(self, *, running: bool = True) -> None:
        self.running = running

    def is_process_running(self) -> bool:
        return self.running


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
