"""Unit tests for ServiceController with fake collaborators."""

from pathlib import Path

import anyio
import pytest

from knowlang_bridge.config import ServiceConfig
from knowlang_bridge.exceptions import (
    HealthTimeoutError,
    ProcessError,
    ProvisioningError,
    StateTransitionError,
)
from knowlang_bridge.supervisor import ServiceController, ServiceStatus, is_allowed_transition
from tests.conftest import wait_until
from tests.unit.supervisor.conftest import FakeHealthMonitor, FakeProvisioner, FakeSupervisor

S = ServiceStatus


class Harness:
    def __init__(self, root: Path, *, auto_start: bool = False) -> None:
        self.provisioner = FakeProvisioner(root)
        self.supervisor = FakeSupervisor()
        self.health = FakeHealthMonitor(self.supervisor)
        self.patched: list[tuple[Path, int]] = []
        self.patch_error: Exception | None = None
        self.statuses: list[ServiceStatus] = []
        self.controller = ServiceController(
            ServiceConfig(auto_start=auto_start, restart_delay=0.0, stop_timeout=0.1),
            provisioner=self.provisioner,
            supervisor=self.supervisor,  # pyright: ignore[reportArgumentType]
            health_monitor=self.health,  # pyright: ignore[reportArgumentType]
            config_patcher=self,
        )
        _ = self.controller.subscribe(self.statuses.append)

    async def patch(self, binary_dir: Path) -> None:
        if self.patch_error is not None:
            raise self.patch_error
        self.patched.append((binary_dir, len(self.supervisor.started)))


@pytest.fixture
def harness(tmp_path: Path) -> Harness:
    return Harness(tmp_path)


class TestTransitions:
    def test_allowed_edges(self) -> None:
        allowed = {
            (current, requested)
            for current in S
            for requested in S
            if is_allowed_transition(current, requested)
        }

        assert allowed == {
            (S.STOPPED, S.STARTING),
            (S.STARTING, S.RUNNING),
            (S.STARTING, S.ERROR),
            (S.STARTING, S.STOPPING),
            (S.RUNNING, S.STOPPING),
            (S.STOPPING, S.STOPPED),
            (S.ERROR, S.STARTING),
            (S.ERROR, S.STOPPING),
        }

    def test_illegal_edge_raises(self, harness: Harness) -> None:
        with pytest.raises(StateTransitionError) as exc_info:
            harness.controller._set_status(S.RUNNING)  # pyright: ignore[reportPrivateUsage]

        assert exc_info.value.current == S.STOPPED
        assert exc_info.value.requested == S.RUNNING
        assert harness.controller.status == S.STOPPED


class TestProperties:
    def test_initial_state(self, harness: Harness) -> None:
        controller = harness.controller

        assert controller.status == S.STOPPED
        assert not controller.is_running
        assert controller.pid is None
        assert controller.service_url == "http://127.0.0.1:8080/api/v1"
        assert controller.command_args == ["--server.port=8080"]

    @pytest.mark.anyio
    async def test_start_requires_context(self, harness: Harness) -> None:
        with pytest.raises(RuntimeError, match="async with"):
            _ = await harness.controller.start_service()


class TestStartService:
    @pytest.mark.anyio
    async def test_start_and_stop(self, harness: Harness) -> None:
        async with harness.controller as controller:
            assert await controller.start_service() is True

            assert controller.is_running
            assert controller.pid == 4242
            assert harness.supervisor.started == [
                (harness.provisioner.executable_path, ["--server.port=8080"])
            ]
            assert harness.patched == [(harness.provisioner.binary_dir, 0)]

            await controller.stop_service()

        assert harness.statuses == [S.STARTING, S.RUNNING, S.STOPPING, S.STOPPED]
        assert harness.supervisor.stops == 1

    @pytest.mark.anyio
    async def test_start_when_running_returns_true(self, harness: Harness) -> None:
        async with harness.controller as controller:
            _ = await controller.start_service()

            assert await controller.start_service() is True

        assert harness.provisioner.calls == 1
        assert harness.statuses == [S.STARTING, S.RUNNING]

    @pytest.mark.anyio
    async def test_provisioning_failure(self, harness: Harness) -> None:
        harness.provisioner.ok = False

        async with harness.controller as controller:
            assert await controller.start_service() is False

            assert controller.status == S.ERROR
            assert controller.last_error is harness.provisioner.last_error

        assert harness.statuses == [S.STARTING, S.ERROR]
        assert harness.supervisor.started == []

    @pytest.mark.anyio
    async def test_provisioning_failure_without_detail(self, harness: Harness) -> None:
        async def fail() -> bool:
            return False

        harness.provisioner.ensure_binaries = fail  # pyright: ignore[reportAttributeAccessIssue]

        async with harness.controller as controller:
            assert await controller.start_service() is False

            assert isinstance(controller.last_error, ProvisioningError)

    @pytest.mark.anyio
    async def test_patcher_failure(self, harness: Harness) -> None:
        harness.patch_error = OSError("read-only")

        async with harness.controller as controller:
            assert await controller.start_service() is False

            assert isinstance(controller.last_error, ProvisioningError)
            assert controller.last_error.cause is harness.patch_error

        assert harness.supervisor.started == []

    @pytest.mark.anyio
    async def test_spawn_failure(self, harness: Harness) -> None:
        harness.supervisor.start_ok = False

        async with harness.controller as controller:
            assert await controller.start_service() is False

            assert controller.status == S.ERROR
            assert controller.last_error is harness.supervisor.last_error

        assert harness.health.calls == 0

    @pytest.mark.anyio
    async def test_health_timeout_stops_process(self, harness: Harness) -> None:
        harness.health.ready = False

        async with harness.controller as controller:
            assert await controller.start_service() is False

            assert isinstance(controller.last_error, HealthTimeoutError)
            assert controller.last_error.timeout == 60.0
            assert not harness.supervisor.running

        assert harness.supervisor.stops == 1
        assert harness.statuses == [S.STARTING, S.ERROR]

    @pytest.mark.anyio
    async def test_process_exit_during_readiness(self, harness: Harness) -> None:
        harness.health.die = True

        async with harness.controller as controller:
            assert await controller.start_service() is False

            assert isinstance(controller.last_error, ProcessError)
            assert not isinstance(controller.last_error, HealthTimeoutError)

    @pytest.mark.anyio
    async def test_start_again_after_error(self, harness: Harness) -> None:
        harness.health.ready = False

        async with harness.controller as controller:
            assert await controller.start_service() is False
            harness.health.ready = True

            assert await controller.start_service() is True
            assert controller.last_error is None

        assert harness.statuses == [S.STARTING, S.ERROR, S.STARTING, S.RUNNING]

    @pytest.mark.anyio
    async def test_concurrent_starts_share_one_attempt(self, harness: Harness) -> None:
        harness.health.gate = anyio.Event()
        results: list[bool] = []

        async def start() -> None:
            results.append(await harness.controller.start_service())

        async with harness.controller, anyio.create_task_group() as tg:
            tg.start_soon(start)
            tg.start_soon(start)
            await wait_until(lambda: harness.health.calls == 1)
            await anyio.sleep(0.05)
            harness.health.gate.set()

        assert results == [True, True]
        assert harness.provisioner.calls == 1
        assert harness.health.calls == 1
        assert len(harness.supervisor.started) == 1
        assert harness.statuses == [S.STARTING, S.RUNNING]

    @pytest.mark.anyio
    async def test_auto_start(self, tmp_path: Path) -> None:
        harness = Harness(tmp_path, auto_start=True)

        async with harness.controller as controller:
            await wait_until(lambda: controller.is_running)

        assert harness.statuses == [S.STARTING, S.RUNNING]


class TestStopService:
    @pytest.mark.anyio
    async def test_stop_when_stopped_is_noop(self, harness: Harness) -> None:
        async with harness.controller as controller:
            await controller.stop_service()

        assert harness.statuses == []

    @pytest.mark.anyio
    async def test_stop_twice_publishes_once(self, harness: Harness) -> None:
        async with harness.controller as controller:
            _ = await controller.start_service()
            await controller.stop_service()
            await controller.stop_service()

        assert harness.statuses == [S.STARTING, S.RUNNING, S.STOPPING, S.STOPPED]

    @pytest.mark.anyio
    async def test_stop_from_error(self, harness: Harness) -> None:
        harness.provisioner.ok = False

        async with harness.controller as controller:
            _ = await controller.start_service()
            await controller.stop_service()

        assert harness.statuses == [S.STARTING, S.ERROR, S.STOPPING, S.STOPPED]

    @pytest.mark.anyio
    async def test_stop_cancels_start_in_flight(self, harness: Harness) -> None:
        harness.health.gate = anyio.Event()
        results: list[bool] = []

        async def start() -> None:
            results.append(await harness.controller.start_service())

        async with harness.controller as controller, anyio.create_task_group() as tg:
            tg.start_soon(start)
            await wait_until(lambda: harness.health.calls == 1)

            await controller.stop_service()

        assert results == [False]
        assert harness.statuses == [S.STARTING, S.STOPPING, S.STOPPED]
        assert not harness.supervisor.running

    @pytest.mark.anyio
    async def test_caller_cancel_stops_start_in_flight(self, harness: Harness) -> None:
        harness.health.gate = anyio.Event()

        async with harness.controller as controller:
            with anyio.move_on_after(0.2) as scope:
                _ = await controller.start_service()

            assert scope.cancelled_caught
            assert controller.status == S.STOPPED
            assert not harness.supervisor.running
            assert harness.supervisor.stops == 1

            harness.health.gate = None
            assert await controller.start_service() is True

        assert harness.statuses[:4] == [S.STARTING, S.STOPPING, S.STOPPED, S.STARTING]

    @pytest.mark.anyio
    async def test_start_refused_while_stopping(self, harness: Harness) -> None:
        async with harness.controller as controller:
            _ = await controller.start_service()
            harness.supervisor.stop_gate = anyio.Event()

            async with anyio.create_task_group() as tg:
                tg.start_soon(controller.stop_service)
                await wait_until(lambda: controller.status == S.STOPPING)

                assert await controller.start_service() is False

                harness.supervisor.stop_gate.set()

            assert controller.status == S.STOPPED

    @pytest.mark.anyio
    async def test_restart(self, harness: Harness) -> None:
        async with harness.controller as controller:
            _ = await controller.start_service()

            assert await controller.restart_service() is True

        assert harness.statuses == [
            S.STARTING,
            S.RUNNING,
            S.STOPPING,
            S.STOPPED,
            S.STARTING,
            S.RUNNING,
        ]
        assert len(harness.supervisor.started) == 2


class TestTeardown:
    @pytest.mark.anyio
    async def test_aclose_is_silent(self, harness: Harness) -> None:
        async with harness.controller as controller:
            _ = await controller.start_service()

            await controller.aclose()

            assert controller.status == S.STOPPED
            assert not harness.supervisor.running

        assert harness.statuses == [S.STARTING, S.RUNNING]

    @pytest.mark.anyio
    async def test_leaving_context_stops_without_events(self, harness: Harness) -> None:
        async with harness.controller as controller:
            _ = await controller.start_service()

        assert controller.status == S.STOPPED
        assert not harness.supervisor.running
        assert harness.statuses == [S.STARTING, S.RUNNING]


class TestListeners:
    @pytest.mark.anyio
    async def test_failing_listener_does_not_break_others(self, harness: Harness) -> None:
        def broken(_: ServiceStatus) -> None:
            raise RuntimeError("listener bug")

        seen: list[ServiceStatus] = []
        _ = harness.controller.subscribe(broken)
        _ = harness.controller.subscribe(seen.append)

        async with harness.controller as controller:
            assert await controller.start_service() is True

        assert seen == [S.STARTING, S.RUNNING]

    @pytest.mark.anyio
    async def test_unsubscribe(self, harness: Harness) -> None:
        seen: list[ServiceStatus] = []
        unsubscribe = harness.controller.subscribe(seen.append)

        async with harness.controller as controller:
            _ = await controller.start_service()
            unsubscribe()
            unsubscribe()
            await controller.stop_service()

        assert seen == [S.STARTING, S.RUNNING]


class TestCrash:
    @pytest.mark.anyio
    async def test_crash_while_running_records_error(self, harness: Harness) -> None:
        async with harness.controller as controller:
            _ = await controller.start_service()

            harness.supervisor.crash(exit_code=139)

            assert controller.status == S.RUNNING
            assert isinstance(controller.last_error, ProcessError)
            assert controller.last_error.exit_code == 139

        assert harness.statuses == [S.STARTING, S.RUNNING]

    @pytest.mark.anyio
    async def test_crash_when_not_running_is_ignored(self, harness: Harness) -> None:
        async with harness.controller as controller:
            harness.supervisor.crash()

            assert controller.last_error is None
