"""Waiting for a freshly spawned server to become fully operational."""

import asyncio
from typing import Optional

import structlog

from ..config.settings import LifecycleSettings
from .connection import SERVER_STATE_RUNNING, ConnectionInfo
from .exceptions import EarlyExitError, StartupTimeoutError
from .lifecycle import (
    FailureCause,
    LifecycleOutcome,
    LifecycleState,
    LifecycleStateMachine,
)
from .process_launcher import ProcessHandle

logger = structlog.get_logger(__name__)


class StartupMonitor:
    """Drives STARTING to STARTED or START_FAILED.

    The management connection is probed every ``poll_interval`` seconds,
    each probe bounded by ``probe_timeout``. A failed probe only means the
    server is not ready yet. Polling ends on the first of: a ``running``
    state, the process exiting, or the startup timeout elapsing. Process
    liveness and the deadline are checked before every probe, and every
    probe is raced against process exit, so an exit is never hidden behind
    a slow or stale answer.
    """

    def __init__(
        self,
        settings: Optional[LifecycleSettings] = None,
        state_machine: Optional[LifecycleStateMachine] = None,
    ):
        self.settings = settings or LifecycleSettings()
        self.state_machine = state_machine or LifecycleStateMachine(
            LifecycleState.STARTING
        )

    @property
    def state(self) -> LifecycleState:
        return self.state_machine.state

    async def await_started(
        self,
        handle: ProcessHandle,
        connection_info: ConnectionInfo,
        timeout: float,
    ) -> LifecycleOutcome:
        """Wait for the server behind ``handle`` to report it is running.

        Args:
            handle: The spawned server process
            connection_info: Management connection used for probing
            timeout: Startup timeout in seconds

        Returns:
            LifecycleOutcome: STARTED, or START_FAILED with a timeout or
            early-exit cause
        """
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        deadline = started_at + timeout
        polls = 0
        last_state: Optional[str] = None

        logger.info(
            "Waiting for server to start",
            pid=handle.pid,
            timeout=timeout,
            poll_interval=self.settings.poll_interval,
        )

        while True:
            if not handle.is_alive():
                exit_code = handle.exit_code
                logger.error(
                    "Server process exited during startup",
                    pid=handle.pid,
                    exit_code=exit_code,
                    polls=polls,
                )
                return self._finish(
                    LifecycleState.START_FAILED,
                    started_at,
                    polls,
                    cause=FailureCause.EARLY_EXIT,
                    exit_code=exit_code,
                    error=EarlyExitError(exit_code),
                )

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.error(
                    "Server startup timed out",
                    pid=handle.pid,
                    timeout=timeout,
                    last_state=last_state,
                    polls=polls,
                )
                return self._finish(
                    LifecycleState.START_FAILED,
                    started_at,
                    polls,
                    cause=FailureCause.TIMEOUT,
                    error=StartupTimeoutError(timeout, last_state),
                )

            polls += 1
            server_state = await self._probe(
                handle, connection_info, min(self.settings.probe_timeout, remaining)
            )
            if server_state is not None:
                last_state = server_state

            # A "running" answer from a process that has since died does not count
            if server_state == SERVER_STATE_RUNNING and handle.is_alive():
                logger.info(
                    "Server started",
                    pid=handle.pid,
                    polls=polls,
                    elapsed=round(loop.time() - started_at, 3),
                )
                return self._finish(LifecycleState.STARTED, started_at, polls)

            # Sleep until the next poll, waking early if the process exits
            remaining = deadline - loop.time()
            if remaining > 0:
                await handle.wait_for_exit(min(self.settings.poll_interval, remaining))

    async def _probe(
        self,
        handle: ProcessHandle,
        connection_info: ConnectionInfo,
        timeout: float,
    ) -> Optional[str]:
        """One management probe raced against process exit.

        Returns ``None`` when the call did not succeed in time or the
        process exited first; the probe is abandoned in both cases.
        """
        probe = asyncio.ensure_future(connection_info.read_server_state())
        try:
            done, _ = await asyncio.wait(
                {probe, handle.exited},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if not probe.done():
                probe.cancel()

        if probe not in done:
            if done:
                logger.debug("Process exited during management probe", pid=handle.pid)
            else:
                logger.debug("Management probe timed out", timeout=timeout)
            return None

        try:
            return probe.result()
        except Exception as e:
            logger.debug("Management probe failed", error=str(e))
        return None

    def _finish(
        self,
        state: LifecycleState,
        started_at: float,
        polls: int,
        cause: Optional[FailureCause] = None,
        exit_code: Optional[int] = None,
        error=None,
    ) -> LifecycleOutcome:
        self.state_machine.transition(state)
        return LifecycleOutcome(
            state=state,
            cause=cause,
            exit_code=exit_code,
            elapsed=asyncio.get_running_loop().time() - started_at,
            polls=polls,
            error=error,
        )
