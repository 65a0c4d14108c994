"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Callable, List, Optional

import pytest

from server_lifecycle.config.settings import LifecycleSettings
from server_lifecycle.management.connection import ConnectionInfo
from server_lifecycle.management.process_launcher import ProcessHandle


class FakeProcess:
    """Stands in for ``asyncio.subprocess.Process`` with scripted exits."""

    def __init__(self, pid: int = 424242, exit_on_kill: bool = True):
        self.pid = pid
        self.returncode: Optional[int] = None
        self.exit_on_kill = exit_on_kill
        self.stdout = None
        self.stderr = None
        self._exited = asyncio.Event()

    def exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def kill(self) -> None:
        if self.exit_on_kill:
            self.exit(-9)


class ScriptedConnection(ConnectionInfo):
    """Management connection answering probes from a script.

    Script items are returned in order; exceptions are raised. Once the
    script is used up every probe returns ``default``.
    """

    def __init__(
        self,
        states=(),
        default: str = "starting",
        probe_delay: float = 0.0,
        on_shutdown: Optional[Callable[[], None]] = None,
        shutdown_error: Optional[Exception] = None,
        shutdown_delay: float = 0.0,
    ):
        self.states: List = list(states)
        self.default = default
        self.probe_delay = probe_delay
        self.on_shutdown = on_shutdown
        self.shutdown_error = shutdown_error
        self.shutdown_delay = shutdown_delay
        self.probe_count = 0
        self.shutdown_count = 0

    async def read_server_state(self) -> str:
        self.probe_count += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        item = self.states.pop(0) if self.states else self.default
        if isinstance(item, Exception):
            raise item
        return item

    async def shutdown(self) -> None:
        self.shutdown_count += 1
        if self.shutdown_delay:
            await asyncio.sleep(self.shutdown_delay)
        if self.shutdown_error is not None:
            raise self.shutdown_error
        if self.on_shutdown is not None:
            self.on_shutdown()


@pytest.fixture
def fast_settings() -> LifecycleSettings:
    """Lifecycle timings short enough for unit tests."""
    return LifecycleSettings(
        poll_interval=0.01,
        probe_timeout=0.05,
        shutdown_grace_period=0.1,
        kill_timeout=0.1,
        drain_close_timeout=0.5,
    )


@pytest.fixture
def fake_process_factory():
    """Create a fake process and the handle wrapping it.

    Must be called from inside a running event loop.
    """

    def _create(**kwargs):
        process = FakeProcess(**kwargs)
        return process, ProcessHandle(process, ["java"], kill_process_tree=False)

    return _create


@pytest.fixture
def scripted_connection_factory():
    """Create scripted management connections."""
    return ScriptedConnection


@pytest.fixture
def server_home(tmp_path):
    """An empty server installation directory."""
    home = tmp_path / "wildfly"
    home.mkdir()
    return home
