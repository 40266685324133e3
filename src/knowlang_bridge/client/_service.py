# pyright: reportExplicitAny=false, reportAny=false
"""REST calls against a running service."""

from typing import TYPE_CHECKING, Any, Self

import httpx
import orjson
import structlog

from knowlang_bridge.exceptions import ServiceRequestError
from knowlang_bridge.supervisor import HealthResponse

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from knowlang_bridge.config import ServiceConfig

    from ._models import ParseRequest


class ServiceClient:
    """Thin JSON client for the service REST API.

    Example:
        >>> async with ServiceClient("http://127.0.0.1:8080/api/v1") as client:
        ...     await client.parse(ParseRequest(path="/path/to/project"))
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
        logger: "FilteringBoundLogger | None" = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: HTTP base URL of the service API.
            client: HTTP client to send requests with. When None one is
                created and closed by ``aclose``.
            timeout: Timeout in seconds for each request.
            logger: Logger for request events.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(__name__)

    @classmethod
    def from_config(cls, service: "ServiceConfig", **kwargs: Any) -> Self:
        """Build a client for the service described by the config section."""
        return cls(service.base_url, **kwargs)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def get_json(self, endpoint: str) -> Any:
        """Send a GET request and return the decoded JSON body.

        Raises:
            ServiceRequestError: On transport errors, error statuses or
                a body that is not JSON.
        """
        url = self._url(endpoint)
        return await self._send("GET", url)

    async def post_json(self, endpoint: str, data: Any) -> Any:
        """Send a POST request with a JSON body and return the decoded reply.

        Raises:
            ServiceRequestError: On transport errors, error statuses or
                a body that is not JSON.
        """
        url = self._url(endpoint)
        return await self._send("POST", url, content=orjson.dumps(data))

    async def _send(self, method: str, url: str, content: bytes | None = None) -> Any:
        self._logger.debug("service_request", method=method, url=url)
        try:
            response = await self._client.request(
                method,
                url,
                content=content,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            msg = f"Request failed: {e}"
            raise ServiceRequestError(msg, url=url) from e

        if response.is_error:
            msg = f"Request failed: HTTP {response.status_code}\nResponse: {response.text}"
            raise ServiceRequestError(
                msg,
                url=url,
                status_code=response.status_code,
                body=response.text,
            )

        if not response.content:
            return None
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            msg = f"Response is not valid JSON: {e}"
            raise ServiceRequestError(
                msg,
                url=url,
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def health(self) -> HealthResponse:
        """Fetch the health endpoint.

        Raises:
            ServiceRequestError: If the request fails.
        """
        data = await self.get_json("/health")
        return HealthResponse.model_validate(data if isinstance(data, dict) else {})

    async def parse(self, request: "ParseRequest") -> Any:
        """Ask the service to parse a codebase.

        Optional fields left unset are omitted from the request body.

        Returns:
            The decoded JSON reply of the service.

        Raises:
            ServiceRequestError: If the request fails.
        """
        self._logger.info("parse_requested", path=request.path)
        return await self.post_json("/parse", request.model_dump(exclude_none=True))
