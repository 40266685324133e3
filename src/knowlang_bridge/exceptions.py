"""knowlang-bridge exceptions."""

from pathlib import Path
from typing import Any


class KnowLangError(Exception):
    """Base exception for knowlang-bridge errors."""


class ConfigError(KnowLangError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when configuration fails validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: Any,  # pyright: ignore[reportAny,reportExplicitAny]
        expected: str,
        source: str | None = None,
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str = key
        self.value: Any = value  # pyright: ignore[reportExplicitAny]
        self.expected: str = expected
        self.source: str | None = source


# =============================================================================
# Service Lifecycle Exceptions
# =============================================================================


class ServiceError(KnowLangError):
    """Base exception for service lifecycle errors."""


class ProvisioningError(ServiceError):
    """Raised when the service binary cannot be made available locally.

    Attributes:
        path: The path involved in the failing step, if any.
        exit_code: Exit code of the archive tool, if it ran.
        cause: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        exit_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and provisioning context.

        Args:
            message: Human-readable error message.
            path: The path involved in the failing step.
            exit_code: Exit code of the archive tool.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.path: Path | None = path
        self.exit_code: int | None = exit_code
        self.cause: Exception | None = cause


class ProcessError(ServiceError):
    """Raised when the service process fails to spawn or exits unexpectedly.

    Attributes:
        executable: Path of the executable that was launched.
        exit_code: Exit code if the process terminated.
        cause: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        executable: Path | None = None,
        exit_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and process context.

        Args:
            message: Human-readable error message.
            executable: Path of the executable that was launched.
            exit_code: Exit code if the process terminated.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.executable: Path | None = executable
        self.exit_code: int | None = exit_code
        self.cause: Exception | None = cause


class HealthTimeoutError(ServiceError):
    """Raised when the service never reports healthy within its budget."""

    def __init__(self, message: str, *, url: str, timeout: float) -> None:
        """Initialize with error message and health check context."""
        super().__init__(message)
        self.url: str = url
        self.timeout: float = timeout


class StateTransitionError(ServiceError):
    """Raised on an attempt to move along an undefined status edge."""

    def __init__(self, message: str, *, current: str, requested: str) -> None:
        """Initialize with error message and the rejected edge."""
        super().__init__(message)
        self.current: str = current
        self.requested: str = requested


# =============================================================================
# Client Exceptions
# =============================================================================


class ClientError(KnowLangError):
    """Base exception for errors talking to a running service."""


class ProtocolError(ClientError):
    """Raised when a streaming frame or connection violates the chat protocol.

    Attributes:
        payload: The raw frame text that failed, if any.
        cause: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        payload: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and frame context."""
        super().__init__(message)
        self.payload: str | None = payload
        self.cause: Exception | None = cause


class ChatTimeoutError(ClientError, TimeoutError):
    """Raised when a streaming chat exceeds its overall deadline."""

    def __init__(self, message: str, *, timeout: float) -> None:
        """Initialize with error message and the deadline that expired."""
        super().__init__(message)
        self.timeout: float = timeout


class ChatCancelledError(ClientError):
    """Raised when a streaming chat is cancelled by its caller."""


class ServiceRequestError(ClientError):
    """Raised when a REST request to the service fails.

    Attributes:
        url: The request URL.
        status_code: HTTP status code, if a response was received.
        body: Response body text, if a response was received.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        """Initialize with error message and request context."""
        super().__init__(message)
        self.url: str = url
        self.status_code: int | None = status_code
        self.body: str | None = body
