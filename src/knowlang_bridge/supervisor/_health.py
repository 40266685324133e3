"""Readiness polling for the supervised service."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, ClassVar, Final

import anyio
import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError
from tenacity import AsyncRetrying, retry_if_result, stop_after_delay, wait_fixed

from knowlang_bridge.exceptions import ProcessError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._protocol import ProcessProbe

HEALTHY_STATUS: Final = "healthy"


class HealthResponse(BaseModel):
    """Body of the service's ``/health`` endpoint."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore")

    status: str = ""
    service: str = ""

    @property
    def is_healthy(self) -> bool:
        return self.status == HEALTHY_STATUS


def _is_unhealthy(healthy: bool) -> bool:  # noqa: FBT001
    return not healthy


def _give_up(_retry_state: object) -> bool:
    return False


class HealthMonitor:
    """Poll the service health endpoint until it reports healthy.

    Attributes:
        poll_interval: Seconds between readiness polls.
        request_timeout: Timeout in seconds for a single health request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        poll_interval: float = 1.0,
        request_timeout: float = 5.0,
        logger: "FilteringBoundLogger | None" = None,
    ) -> None:
        """Initialize the health monitor.

        Args:
            client: HTTP client to poll with. When None a client is created
                for each check or wait and closed afterwards.
            poll_interval: Seconds between readiness polls.
            request_timeout: Timeout in seconds for a single health request.
            logger: Logger for health events.
        """
        self._client = client
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(__name__)
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient() as client:
            yield client

    async def check_health(self, url: str) -> bool:
        """Perform one health check against ``{url}/health``.

        Returns:
            True if the response body reports status "healthy". Any
            transport error, error status or malformed body gives False.
        """
        async with self._http() as client:
            return await self._check(client, url)

    async def _check(self, client: httpx.AsyncClient, url: str) -> bool:
        health_url = f"{url.rstrip('/')}/health"
        try:
            response = await client.get(health_url, timeout=self.request_timeout)
            _ = response.raise_for_status()
            health = HealthResponse.model_validate_json(response.content)
        except (httpx.HTTPError, ValidationError) as e:
            self._logger.debug("health_check_failed", url=health_url, error=str(e))
            return False

        if not health.is_healthy:
            self._logger.debug("health_check_unhealthy", url=health_url, status=health.status)
        return health.is_healthy

    async def wait_for_ready(
        self,
        url: str,
        process: "ProcessProbe",
        timeout_seconds: float = 60.0,
    ) -> bool:
        """Poll until the service is healthy, its process dies, or time runs out.

        Args:
            url: Base URL of the service API.
            process: Liveness probe of the service process; checked before
                every poll so a crash ends the wait at once.
            timeout_seconds: Overall time budget for the wait.

        Returns:
            True on the first healthy response, False on crash or timeout.
        """

        async def probe(client: httpx.AsyncClient) -> bool:
            if not process.is_process_running():
                msg = "Service process exited before becoming healthy"
                raise ProcessError(msg)
            return await self._check(client, url)

        retrying = AsyncRetrying(
            stop=stop_after_delay(timeout_seconds),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(_is_unhealthy),
            retry_error_callback=_give_up,
            sleep=anyio.sleep,
        )

        self._logger.info("health_wait_started", url=url, timeout=timeout_seconds)
        try:
            async with self._http() as client:
                ready: bool = await retrying(probe, client)
        except ProcessError:
            self._logger.error("health_wait_process_exited", url=url)
            return False

        if ready:
            self._logger.info("service_healthy", url=url)
        else:
            self._logger.error("health_wait_timed_out", url=url, timeout=timeout_seconds)
        return ready
