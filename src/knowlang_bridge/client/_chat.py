"""Streaming chat over the service WebSocket endpoint.

One call opens one connection, sends the query as the only client
message, and reads frames until the first terminal frame arrives.
Transport failures are reported as error results; only cancellation and
the overall deadline surface as exceptions.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Final, Protocol, Self

import anyio
import httpx
import structlog
from httpx_ws import HTTPXWSException, WebSocketDisconnect, aconnect_ws

from knowlang_bridge.exceptions import ChatCancelledError, ChatTimeoutError, ProtocolError

from ._codec import decode_frame, is_terminal
from ._models import StreamingChatResult

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from knowlang_bridge.config import ChatConfig, ServiceConfig

STREAM_PATH: Final = "/ws/chat/stream"

_TRANSPORT_ERRORS: Final = (HTTPXWSException, httpx.HTTPError, OSError)

MessageCallback = Callable[[StreamingChatResult], None]


class ChatConnection(Protocol):
    """The part of a WebSocket session the chat exchange relies on."""

    async def send_text(self, data: str) -> None: ...

    async def receive_text(self) -> str: ...


ConnectFactory = Callable[[str], AbstractAsyncContextManager[ChatConnection]]


def to_websocket_url(base_url: str) -> str:
    """Convert an HTTP base URL to the streaming chat WebSocket URL.

    Example:
        >>> to_websocket_url("http://127.0.0.1:8080/api/v1")
        'ws://127.0.0.1:8080/api/v1/ws/chat/stream'
    """
    url = base_url.rstrip("/")
    if url.startswith("https://"):
        url = "wss://" + url.removeprefix("https://")
    elif url.startswith("http://"):
        url = "ws://" + url.removeprefix("http://")
    return f"{url}{STREAM_PATH}"


class StreamingChatSession:
    """Client for the streaming chat endpoint of a running service.

    Attributes:
        base_url: HTTP base URL of the service API.
        timeout: Overall wall-clock budget of one chat, in seconds.
        legacy_error_heuristic: End the stream on answers containing
            "error processing" even when the status is not terminal.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        legacy_error_heuristic: bool = False,
        client: httpx.AsyncClient | None = None,
        connect: ConnectFactory | None = None,
        logger: "FilteringBoundLogger | None" = None,
    ) -> None:
        """Initialize the session.

        Args:
            base_url: HTTP base URL of the service API.
            timeout: Overall wall-clock budget of one chat, in seconds.
            legacy_error_heuristic: See the class attribute.
            client: HTTP client the WebSocket connection is opened with.
            connect: Factory returning an async context manager that yields
                a connection for a URL. Defaults to ``httpx_ws.aconnect_ws``.
            logger: Logger for chat events.
        """
        self.base_url = base_url
        self.timeout = timeout
        self.legacy_error_heuristic = legacy_error_heuristic
        self._client = client
        self._connect: ConnectFactory = connect or self._connect_ws
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        service: "ServiceConfig",
        chat: "ChatConfig",
        *,
        client: httpx.AsyncClient | None = None,
        logger: "FilteringBoundLogger | None" = None,
    ) -> Self:
        """Build a session for the service described by the config sections."""
        return cls(
            service.base_url,
            timeout=chat.timeout,
            legacy_error_heuristic=chat.legacy_error_heuristic,
            client=client,
            logger=logger,
        )

    @property
    def stream_url(self) -> str:
        """Return the WebSocket URL of the streaming chat endpoint."""
        return to_websocket_url(self.base_url)

    def _connect_ws(self, url: str) -> AbstractAsyncContextManager[ChatConnection]:
        return aconnect_ws(url, self._client)

    async def stream_chat(
        self,
        query: str,
        on_message: MessageCallback | None = None,
        *,
        cancel_event: anyio.Event | None = None,
    ) -> StreamingChatResult:
        """Send a query and stream frames until the chat ends.

        Args:
            query: The question, sent verbatim as the only client message.
            on_message: Called with every decoded frame, terminal or not.
            cancel_event: Setting this event closes the connection and
                aborts the chat.

        Returns:
            The first terminal frame, or a synthetic error result when the
            connection fails, closes early, or sends an undecodable frame.

        Raises:
            ChatCancelledError: If ``cancel_event`` was set before the chat ended.
            ChatTimeoutError: If the chat did not end within ``timeout``.
        """
        result: StreamingChatResult | None = None
        cancelled = False

        async def watch_cancel(event: anyio.Event, scope: anyio.CancelScope) -> None:
            nonlocal cancelled
            await event.wait()
            cancelled = True
            scope.cancel()

        self._logger.info("chat_started", url=self.stream_url, query_length=len(query))
        try:
            with anyio.fail_after(self.timeout):
                async with anyio.create_task_group() as tg:
                    if cancel_event is not None:
                        tg.start_soon(watch_cancel, cancel_event, tg.cancel_scope)
                    result = await self._exchange(query, on_message)
                    tg.cancel_scope.cancel()
        except TimeoutError as e:
            self._logger.warning("chat_timed_out", timeout=self.timeout)
            msg = f"Chat did not complete within {self.timeout}s"
            raise ChatTimeoutError(msg, timeout=self.timeout) from e

        if result is None:
            if cancelled:
                self._logger.info("chat_cancelled")
                msg = "Chat was cancelled"
                raise ChatCancelledError(msg)
            # Only reachable if the task group was cancelled from outside
            msg = "Chat ended without a result"
            raise ChatCancelledError(msg)

        self._logger.info(
            "chat_finished",
            status=result.status,
            context_count=len(result.retrieved_context),
        )
        return result

    async def _exchange(
        self,
        query: str,
        on_message: MessageCallback | None,
    ) -> StreamingChatResult:
        try:
            async with self._connect(self.stream_url) as connection:
                # The session runs its body in a task group, so receive errors
                # must be caught in here or they leave as an exception group
                try:
                    await connection.send_text(query)
                    return await self._receive_until_terminal(connection, on_message)
                except WebSocketDisconnect as e:
                    return self._closed_early(e)
                except _TRANSPORT_ERRORS as e:
                    return self._connection_failed(e)
        except WebSocketDisconnect as e:
            return self._closed_early(e)
        except _TRANSPORT_ERRORS as e:
            return self._connection_failed(e)

    def _closed_early(self, error: WebSocketDisconnect) -> StreamingChatResult:
        self._logger.warning("chat_connection_closed", code=error.code, reason=error.reason)
        return StreamingChatResult.error("Connection closed unexpectedly", "Connection terminated")

    def _connection_failed(self, error: Exception) -> StreamingChatResult:
        self._logger.warning("chat_connection_failed", error=str(error))
        return StreamingChatResult.error(f"WebSocket error: {error}", "Connection error")

    async def _receive_until_terminal(
        self,
        connection: ChatConnection,
        on_message: MessageCallback | None,
    ) -> StreamingChatResult:
        while True:
            text = await connection.receive_text()
            try:
                frame = decode_frame(text)
            except ProtocolError as e:
                self._logger.warning("chat_frame_invalid", error=str(e))
                return StreamingChatResult.error(
                    f"Error parsing server response: {e}", "Client-side parsing error"
                )

            self._deliver(on_message, frame)
            if is_terminal(frame, legacy_heuristic=self.legacy_error_heuristic):
                return frame

    def _deliver(
        self,
        on_message: MessageCallback | None,
        frame: StreamingChatResult,
    ) -> None:
        if on_message is None:
            return
        try:
            on_message(frame)
        except Exception:  # noqa: BLE001
            self._logger.warning("chat_message_callback_failed", exc_info=True)
