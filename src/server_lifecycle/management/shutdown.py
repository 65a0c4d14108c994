"""Stopping the server: graceful request first, forced kill as fallback."""

import asyncio
from typing import Optional

import structlog

from ..config.settings import LifecycleSettings
from .connection import ConnectionInfo
from .exceptions import StopTimeoutError
from .lifecycle import (
    FailureCause,
    LifecycleOutcome,
    LifecycleState,
    LifecycleStateMachine,
)
from .process_launcher import ProcessHandle

logger = structlog.get_logger(__name__)


class ShutdownCoordinator:
    """Drives STOPPING to STOPPED or STOP_FAILED.

    Sequence: a best-effort graceful shutdown call, a wait of up to
    ``shutdown_grace_period`` for the process to exit, then a forced kill
    with a further wait of up to ``kill_timeout``. Only a process that
    survives the kill yields STOP_FAILED.
    """

    def __init__(
        self,
        settings: Optional[LifecycleSettings] = None,
        state_machine: Optional[LifecycleStateMachine] = None,
    ):
        self.settings = settings or LifecycleSettings()
        self.state_machine = state_machine or LifecycleStateMachine(
            LifecycleState.STARTED
        )

    @property
    def state(self) -> LifecycleState:
        return self.state_machine.state

    async def stop(
        self, handle: ProcessHandle, connection_info: ConnectionInfo
    ) -> LifecycleOutcome:
        """Stop the server behind ``handle``.

        Returns:
            LifecycleOutcome: STOPPED with the exit code, or STOP_FAILED with
            a :class:`StopTimeoutError` attached
        """
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        self.state_machine.transition(LifecycleState.STOPPING)

        if not handle.is_alive():
            logger.info(
                "Server process already exited",
                pid=handle.pid,
                exit_code=handle.exit_code,
            )
            return self._finish(LifecycleState.STOPPED, started_at, handle.exit_code)

        logger.info("Stopping server", pid=handle.pid)
        await self._request_shutdown(connection_info)

        exit_code = await handle.wait_for_exit(self.settings.shutdown_grace_period)
        if not handle.is_alive():
            logger.info("Server stopped gracefully", pid=handle.pid, exit_code=exit_code)
            return self._finish(LifecycleState.STOPPED, started_at, exit_code)

        logger.warning(
            "Server did not stop within grace period, killing it",
            pid=handle.pid,
            grace_period=self.settings.shutdown_grace_period,
        )
        handle.kill()

        exit_code = await handle.wait_for_exit(self.settings.kill_timeout)
        if not handle.is_alive():
            logger.info("Server killed", pid=handle.pid, exit_code=exit_code)
            return self._finish(LifecycleState.STOPPED, started_at, exit_code)

        waited = loop.time() - started_at
        logger.error("Server process survived kill", pid=handle.pid, waited=waited)
        return self._finish(
            LifecycleState.STOP_FAILED,
            started_at,
            None,
            cause=FailureCause.STOP_TIMEOUT,
            error=StopTimeoutError(handle.pid, waited),
        )

    async def _request_shutdown(self, connection_info: ConnectionInfo) -> None:
        try:
            await asyncio.wait_for(
                connection_info.shutdown(), self.settings.probe_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Graceful shutdown request timed out",
                timeout=self.settings.probe_timeout,
            )
        except Exception as e:
            logger.warning("Graceful shutdown request failed", error=str(e))

    def _finish(
        self,
        state: LifecycleState,
        started_at: float,
        exit_code: Optional[int],
        cause: Optional[FailureCause] = None,
        error=None,
    ) -> LifecycleOutcome:
        self.state_machine.transition(state)
        return LifecycleOutcome(
            state=state,
            cause=cause,
            exit_code=exit_code,
            elapsed=asyncio.get_running_loop().time() - started_at,
            error=error,
        )
