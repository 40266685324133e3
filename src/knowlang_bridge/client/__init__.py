"""Clients for a running KnowLang service.

- StreamingChatSession: Streaming chat over WebSocket
- ServiceClient: REST calls such as ``POST /parse``
- decode_frame: The single decoding boundary for chat frames
"""

from ._chat import (
    STREAM_PATH,
    ChatConnection,
    ConnectFactory,
    MessageCallback,
    StreamingChatSession,
    to_websocket_url,
)
from ._codec import LEGACY_ERROR_MARKER, decode_frame, is_terminal
from ._models import ChatStatus, ParseRequest, SearchResult, StreamingChatResult
from ._service import ServiceClient

__all__ = [
    "LEGACY_ERROR_MARKER",
    "STREAM_PATH",
    "ChatConnection",
    "ChatStatus",
    "ConnectFactory",
    "MessageCallback",
    "ParseRequest",
    "SearchResult",
    "ServiceClient",
    "StreamingChatResult",
    "StreamingChatSession",
    "decode_frame",
    "is_terminal",
    "to_websocket_url",
]
