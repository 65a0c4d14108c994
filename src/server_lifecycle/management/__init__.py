"""Server process lifecycle control."""

from .connection import ConnectionInfo, HttpConnectionInfo
from .controller import ServerController
from .exceptions import (
    EarlyExitError,
    InvalidTransitionError,
    LaunchError,
    LifecycleError,
    ProbeError,
    ShutdownProbeError,
    StartupTimeoutError,
    StopTimeoutError,
)
from .lifecycle import (
    FailureCause,
    LifecycleOutcome,
    LifecycleState,
    LifecycleStateMachine,
)
from .process_launcher import ProcessHandle, ProcessLauncher
from .server_info import ServerInfo
from .shutdown import ShutdownCoordinator
from .startup_monitor import StartupMonitor
from .stream_drain import StreamDrain

__all__ = [
    "ConnectionInfo",
    "EarlyExitError",
    "FailureCause",
    "HttpConnectionInfo",
    "InvalidTransitionError",
    "LaunchError",
    "LifecycleError",
    "LifecycleOutcome",
    "LifecycleState",
    "LifecycleStateMachine",
    "ProbeError",
    "ProcessHandle",
    "ProcessLauncher",
    "ServerController",
    "ServerInfo",
    "ShutdownCoordinator",
    "ShutdownProbeError",
    "StartupMonitor",
    "StartupTimeoutError",
    "StopTimeoutError",
    "StreamDrain",
]
