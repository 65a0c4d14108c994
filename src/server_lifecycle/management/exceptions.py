"""Errors raised while supervising the server process."""

from typing import Any, Dict, Optional


class LifecycleError(Exception):
    """Lifecycle error with user-friendly messages."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionError(LifecycleError):
    """A lifecycle state change that the state machine does not allow."""


class LaunchError(LifecycleError):
    """The operating system refused to spawn the server process."""


class ProbeError(LifecycleError):
    """A single management probe failed."""


class ShutdownProbeError(LifecycleError):
    """The graceful shutdown management call failed."""


class StartupTimeoutError(LifecycleError):
    """The server did not report a running state within the startup timeout."""

    def __init__(self, timeout: float, last_state: Optional[str] = None):
        super().__init__(
            f"Server did not start within {timeout} seconds",
            "Check the server log for startup errors or raise the startup timeout",
            {"timeout": timeout, "last_state": last_state},
        )
        self.timeout = timeout
        self.last_state = last_state


class EarlyExitError(LifecycleError):
    """The server process exited before reaching a running state."""

    def __init__(self, exit_code: Optional[int]):
        super().__init__(
            f"Server process exited with code {exit_code} before it started",
            "Check the server output above for the reason it stopped",
            {"exit_code": exit_code},
        )
        self.exit_code = exit_code


class StopTimeoutError(LifecycleError):
    """The server process survived both graceful and forced termination."""

    def __init__(self, pid: Optional[int], waited: float):
        super().__init__(
            f"Server process {pid} is still alive after being killed",
            "The process may be unkillable or a zombie, stop it manually",
            {"pid": pid, "waited": waited},
        )
        self.pid = pid
        self.waited = waited
