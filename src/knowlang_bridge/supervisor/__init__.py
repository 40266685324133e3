"""Service lifecycle supervision.

This package runs the KnowLang service as a local child process:
- ServiceController: State machine sequencing provisioning, spawn and readiness
- ProcessSupervisor: Spawns, watches and terminates the child process
- HealthMonitor: Polls the health endpoint until the service is ready
- OutputSink implementations for logging and console output
"""

from ._controller import ServiceController, is_allowed_transition
from ._health import HEALTHY_STATUS, HealthMonitor, HealthResponse
from ._models import SERVICE_NAME, ServiceEvent, ServiceEventType, ServiceStatus, get_timestamp
from ._output import ConsoleOutputSink, LoggingOutputSink
from ._process import CrashCallback, ProcessSupervisor
from ._protocol import ConfigPatcher, OutputSink, ProcessProbe, Provisioner, StatusListener

__all__ = [
    "HEALTHY_STATUS",
    "SERVICE_NAME",
    "ConfigPatcher",
    "ConsoleOutputSink",
    "CrashCallback",
    "HealthMonitor",
    "HealthResponse",
    "LoggingOutputSink",
    "OutputSink",
    "ProcessProbe",
    "ProcessSupervisor",
    "Provisioner",
    "ServiceController",
    "ServiceEvent",
    "ServiceEventType",
    "ServiceStatus",
    "StatusListener",
    "get_timestamp",
    "is_allowed_transition",
]
