"""Data models for the service supervisor.

This module defines the core data types for service lifecycle management:
- ServiceStatus: Controller states of the supervised service
- ServiceEventType: Types of process lifecycle events
- ServiceEvent: Immutable event records
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Final

import pendulum

SERVICE_NAME: Final = "knowlang"


def get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    return pendulum.now("UTC").to_iso8601_string()


class ServiceStatus(StrEnum):
    """Service lifecycle states.

    - STOPPED: No process exists (initial state)
    - STARTING: Provisioning, spawning or waiting for the service to be healthy
    - RUNNING: The service answered its health check
    - STOPPING: The process is being terminated
    - ERROR: The last start attempt failed
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class ServiceEventType(StrEnum):
    """Types of process lifecycle events.

    - STARTED: The process has been spawned
    - STOPPED: The process exited after a stop request
    - CRASHED: The process exited without a stop request
    """

    STARTED = "started"
    STOPPED = "stopped"
    CRASHED = "crashed"


@dataclass(frozen=True, slots=True)
class ServiceEvent:
    """Immutable process lifecycle event.

    Attributes:
        service_name: Name of the service that generated the event.
        event_type: Type of lifecycle event.
        timestamp: ISO 8601 formatted timestamp.
        pid: Process ID if applicable.
        exit_code: Exit code if process terminated.
        message: Optional human-readable message.
    """

    service_name: str
    event_type: ServiceEventType
    timestamp: str
    pid: int | None = None
    exit_code: int | None = None
    message: str | None = None
