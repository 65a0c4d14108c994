"""Spawning the server process and observing it afterwards."""

import asyncio
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import psutil
import structlog

from .exceptions import LaunchError
from .server_info import ServerInfo

logger = structlog.get_logger(__name__)


class ProcessHandle:
    """A spawned server process.

    Wraps an ``asyncio.subprocess.Process`` (or anything with the same
    ``pid``/``returncode``/``wait()``/``kill()`` surface) and watches its
    exit in a background task from the moment it is created.
    """

    def __init__(
        self,
        process: Any,
        command: Sequence[str] = (),
        kill_process_tree: bool = True,
    ):
        self.process = process
        self.command = list(command)
        self.kill_process_tree = kill_process_tree
        self.kill_count = 0
        self._exit_task = asyncio.ensure_future(process.wait())

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid

    @property
    def stdout(self) -> Optional[asyncio.StreamReader]:
        return self.process.stdout

    @property
    def stderr(self) -> Optional[asyncio.StreamReader]:
        return self.process.stderr

    @property
    def exit_code(self) -> Optional[int]:
        """Exit code, or ``None`` while the process is running."""
        return self.process.returncode

    @property
    def exited(self) -> "asyncio.Future[int]":
        """Future resolved with the exit code once the process has exited."""
        return self._exit_task

    def is_alive(self) -> bool:
        return self.process.returncode is None

    async def wait_for_exit(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for the process to exit.

        Args:
            timeout: Seconds to wait, ``None`` to wait without bound

        Returns:
            Optional[int]: The exit code, or ``None`` if still running at the
            deadline
        """
        if not self.is_alive():
            return self.exit_code

        try:
            # Shielded so that a timeout leaves the exit watcher running
            return await asyncio.wait_for(asyncio.shield(self._exit_task), timeout)
        except asyncio.TimeoutError:
            return None

    def kill(self) -> None:
        """Forcibly terminate the process and, optionally, its descendants."""
        self.kill_count += 1

        if self.kill_process_tree:
            for child in self._descendants():
                try:
                    child.kill()
                except psutil.NoSuchProcess:
                    pass

        try:
            self.process.kill()
        except ProcessLookupError:
            # Already gone
            pass

        logger.warning("Killed server process", pid=self.pid, kills=self.kill_count)

    def close(self) -> None:
        """Stop watching the process. Does not affect the process itself."""
        if not self._exit_task.done():
            self._exit_task.cancel()

    def _descendants(self) -> List[psutil.Process]:
        try:
            return psutil.Process(self.pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []


class ProcessLauncher:
    """Turns a :class:`ServerInfo` into a running server process."""

    ENTRY_POINT = "jboss-modules.jar"
    MAIN_MODULE = "org.jboss.as.standalone"

    def __init__(self, kill_process_tree: bool = True):
        self.kill_process_tree = kill_process_tree

    async def start(self, server_info: ServerInfo) -> ProcessHandle:
        """Start the server described by ``server_info``.

        Raises:
            LaunchError: If the Java executable cannot be found or the
                operating system refuses to spawn the process
        """
        command = self.build_command(server_info)
        env = self.build_environment(server_info)

        logger.info(
            "Starting server process",
            server_home=str(server_info.server_home),
            command=command,
        )
        return await self.spawn(command, server_info.server_home, env)

    async def spawn(
        self,
        command: Sequence[str],
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessHandle:
        """Spawn ``command`` with piped output streams."""
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise LaunchError(
                f"Cannot execute {command[0]}: {e.strerror or e}",
                "Check the Java home and server home settings",
                {"command": list(command)},
            ) from e
        except PermissionError as e:
            raise LaunchError(
                f"Permission denied executing {command[0]}",
                "Make sure the Java executable is executable by this user",
                {"command": list(command)},
            ) from e
        except OSError as e:
            raise LaunchError(
                f"Failed to spawn server process: {e}",
                details={"command": list(command), "errno": e.errno},
            ) from e

        logger.info("Server process spawned", pid=process.pid)
        return ProcessHandle(process, command, self.kill_process_tree)

    def build_command(self, server_info: ServerInfo) -> List[str]:
        """Build the argument vector used to launch the server."""
        home = server_info.server_home
        modules_path = os.pathsep.join(str(path) for path in server_info.modules_dirs)

        command = [
            str(self.resolve_java_executable(server_info.java_home)),
            f"-Djboss.modules.path={modules_path}",
        ]
        command.extend(server_info.jvm_args or ())
        command.extend(
            [
                f"-Dorg.jboss.boot.log.file={home / 'standalone' / 'log' / 'server.log'}",
                "-Dlogging.configuration=file:"
                f"{home / 'standalone' / 'configuration' / 'logging.properties'}",
                "-jar",
                str(home / self.ENTRY_POINT),
                "-mp",
                modules_path,
                self.MAIN_MODULE,
                f"-Djboss.home.dir={home}",
            ]
        )

        if server_info.server_config:
            command.extend(["-c", server_info.server_config])
        if server_info.properties_file:
            command.extend(["-P", server_info.properties_file])

        return command

    def build_environment(self, server_info: ServerInfo) -> Dict[str, str]:
        """Ambient environment plus the Java home override."""
        env = os.environ.copy()
        if server_info.java_home:
            env["JAVA_HOME"] = str(server_info.java_home)
        return env

    def resolve_java_executable(self, java_home: Optional[str]) -> Path:
        """Find the Java executable.

        Uses ``java_home`` when given, then ``$JAVA_HOME``, then ``PATH``.
        """
        name = "java.exe" if os.name == "nt" else "java"

        if java_home:
            executable = Path(java_home) / "bin" / name
            if not executable.is_file():
                raise LaunchError(
                    f"Java executable not found: {executable}",
                    "Point the Java home at a JDK or JRE installation",
                    {"java_home": str(java_home)},
                )
            return executable

        ambient_home = os.environ.get("JAVA_HOME")
        if ambient_home:
            executable = Path(ambient_home) / "bin" / name
            if executable.is_file():
                return executable

        found = shutil.which(name)
        if found is None:
            raise LaunchError(
                "No Java executable found",
                "Set JAVA_HOME or pass an explicit Java home",
            )
        return Path(found)
