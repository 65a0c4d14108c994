"""Controller coordinating one server process lifecycle."""

import asyncio
from typing import Optional

import structlog

from ..config.logging import log_performance
from ..config.settings import LifecycleSettings
from .exceptions import InvalidTransitionError, LaunchError, LifecycleError
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
from .stream_drain import LineSink, StreamDrain

logger = structlog.get_logger(__name__)


class ServerController:
    """Starts, watches and stops exactly one server process."""

    def __init__(
        self,
        settings: Optional[LifecycleSettings] = None,
        launcher: Optional[ProcessLauncher] = None,
        output_sink: Optional[LineSink] = None,
    ):
        """Initialize server controller.

        Args:
            settings: Timing policy (default: read from the environment)
            launcher: Process launcher (default: :class:`ProcessLauncher`)
            output_sink: Receives each line of server output (default: log it)
        """
        self.settings = settings or LifecycleSettings()
        self.launcher = launcher or ProcessLauncher()
        self.state_machine = LifecycleStateMachine()
        self.startup_monitor = StartupMonitor(self.settings, self.state_machine)
        self.shutdown_coordinator = ShutdownCoordinator(
            self.settings, self.state_machine
        )
        self.drain = StreamDrain(output_sink)

        self.server_info: Optional[ServerInfo] = None
        self.handle: Optional[ProcessHandle] = None
        self.start_outcome: Optional[LifecycleOutcome] = None
        self.stop_outcome: Optional[LifecycleOutcome] = None

    @property
    def state(self) -> LifecycleState:
        return self.state_machine.state

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.handle is not None and self.state_machine.can_transition(
            LifecycleState.STOPPING
        ):
            await self.stop()

    async def start(self, server_info: ServerInfo) -> ProcessHandle:
        """Spawn the server process and start draining its output.

        Raises:
            LaunchError: If the process could not be spawned
            InvalidTransitionError: If this controller was already started
        """
        if not self.state_machine.can_transition(LifecycleState.STARTING):
            raise InvalidTransitionError(
                f"Controller cannot start from state {self.state.value}",
                "Use a new controller for each server process",
            )

        self.server_info = server_info
        try:
            handle = await self.launcher.start(server_info)
        except LaunchError as e:
            logger.error("Failed to launch server", error=e.message)
            self.state_machine.transition(LifecycleState.START_FAILED)
            self.start_outcome = LifecycleOutcome(
                state=LifecycleState.START_FAILED,
                cause=FailureCause.LAUNCH_ERROR,
                error=e,
            )
            raise

        self.handle = handle
        self.state_machine.transition(LifecycleState.STARTING)
        # Attach before anything else looks at the process
        self.drain.attach(handle)
        return handle

    async def await_started(self, timeout: Optional[float] = None) -> LifecycleOutcome:
        """Wait until the server runs, exits or times out.

        Cancelling the waiting task stops the server before the cancellation
        propagates.

        Args:
            timeout: Startup timeout in seconds (default: the server info's)
        """
        handle = self._require_handle()
        if timeout is None:
            timeout = self.server_info.startup_timeout

        try:
            outcome = await self.startup_monitor.await_started(
                handle, self.server_info.connection_info, timeout
            )
        except asyncio.CancelledError:
            logger.warning("Startup wait cancelled, stopping server", pid=handle.pid)
            await asyncio.shield(self.stop())
            raise

        self.start_outcome = outcome
        log_performance(
            logger,
            "server_startup",
            outcome.elapsed * 1000,
            state=outcome.state.value,
            polls=outcome.polls,
        )
        return outcome

    async def start_and_wait(self, server_info: ServerInfo) -> LifecycleOutcome:
        """Start the server and wait for it; clean up if it fails to start."""
        await self.start(server_info)
        outcome = await self.await_started()
        if not outcome.succeeded:
            await self.stop()
        return outcome

    async def stop(self) -> LifecycleOutcome:
        """Stop the server process."""
        handle = self._require_handle()
        outcome = await self.shutdown_coordinator.stop(
            handle, self.server_info.connection_info
        )

        if not await self.drain.wait(self.settings.drain_close_timeout):
            logger.warning("Output streams still open after stop", pid=handle.pid)
            self.drain.cancel()
        if outcome.succeeded:
            handle.close()

        self.stop_outcome = outcome
        log_performance(
            logger, "server_shutdown", outcome.elapsed * 1000, state=outcome.state.value
        )
        return outcome

    async def wait_for_exit(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for the server process to exit on its own."""
        return await self._require_handle().wait_for_exit(timeout)

    async def read_server_state(self) -> Optional[str]:
        """Read the server state once; ``None`` if the server cannot be reached."""
        if self.server_info is None:
            return None
        try:
            return await asyncio.wait_for(
                self.server_info.connection_info.read_server_state(),
                self.settings.probe_timeout,
            )
        except Exception as e:
            logger.debug("Server state not available", error=str(e))
            return None

    def _require_handle(self) -> ProcessHandle:
        if self.handle is None:
            raise LifecycleError(
                "Server process has not been started",
                "Call start() before waiting for or stopping the server",
            )
        return self.handle
