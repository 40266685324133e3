"""Embed a local KnowLang code analysis service in a host application.

The package provisions the service binaries, supervises the service as a
child process, and talks to it over REST and a streaming WebSocket chat.

Example:
    >>> from knowlang_bridge import Config, ServiceController, StreamingChatSession
    >>> config = Config.load()
    >>> async with ServiceController.from_config(config) as controller:
    ...     if await controller.start_service():
    ...         session = StreamingChatSession.from_config(config.service, config.chat)
    ...         result = await session.stream_chat("explain function foo")
"""

from knowlang_bridge.client import (
    ChatStatus,
    ParseRequest,
    SearchResult,
    ServiceClient,
    StreamingChatResult,
    StreamingChatSession,
    decode_frame,
)
from knowlang_bridge.config import ChatConfig, Config, ProvisioningConfig, ServiceConfig
from knowlang_bridge.exceptions import (
    ChatCancelledError,
    ChatTimeoutError,
    ClientError,
    ConfigError,
    HealthTimeoutError,
    KnowLangError,
    ProcessError,
    ProtocolError,
    ProvisioningError,
    ServiceError,
    ServiceRequestError,
    StateTransitionError,
)
from knowlang_bridge.provisioning import BinaryProvisioner, PlatformLayout, PlatformResolver
from knowlang_bridge.supervisor import (
    HealthMonitor,
    ProcessSupervisor,
    ServiceController,
    ServiceStatus,
)

__all__ = [
    "BinaryProvisioner",
    "ChatCancelledError",
    "ChatConfig",
    "ChatStatus",
    "ChatTimeoutError",
    "ClientError",
    "Config",
    "ConfigError",
    "HealthMonitor",
    "HealthTimeoutError",
    "KnowLangError",
    "ParseRequest",
    "PlatformLayout",
    "PlatformResolver",
    "ProcessError",
    "ProcessSupervisor",
    "ProtocolError",
    "ProvisioningConfig",
    "ProvisioningError",
    "SearchResult",
    "ServiceClient",
    "ServiceConfig",
    "ServiceController",
    "ServiceError",
    "ServiceRequestError",
    "ServiceStatus",
    "StateTransitionError",
    "StreamingChatResult",
    "StreamingChatSession",
    "decode_frame",
]
