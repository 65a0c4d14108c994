"""Resolved server configuration."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from ..config.exceptions import ConfigurationError
from .connection import ConnectionInfo

PathLike = Union[str, Path]


@dataclass(frozen=True)
class ServerInfo:
    """Server configuration information.

    Build instances with :meth:`of`; the constructor does no validation.
    """

    connection_info: ConnectionInfo
    java_home: Optional[str]
    server_home: Path
    modules_dirs: Tuple[Path, ...]
    jvm_args: Optional[Tuple[str, ...]]
    server_config: Optional[str]
    properties_file: Optional[str]
    startup_timeout: float

    @classmethod
    def of(
        cls,
        connection_info: ConnectionInfo,
        java_home: Optional[str],
        server_home: Optional[PathLike],
        modules_dir: Optional[str],
        jvm_args: Optional[Iterable[str]],
        server_config: Optional[str],
        properties_file: Optional[str],
        startup_timeout: float,
    ) -> "ServerInfo":
        """Creates the server information.

        Args:
            connection_info: the connection information for the management client
            java_home: the Java home directory, ``None`` for the ambient default
            server_home: the home directory of the application server
            modules_dir: ``;`` separated module directories, ``None`` for
                ``<server_home>/modules``
            jvm_args: the JVM arguments, ``None`` for none
            server_config: the path to the server configuration file
            properties_file: the path to a properties file to load
            startup_timeout: the startup timeout in seconds

        Returns:
            ServerInfo: the server configuration information

        Raises:
            ConfigurationError: If the server home is missing or the timeout
                is not positive
        """
        if server_home is None:
            raise ConfigurationError("Server home directory is required")

        home = Path(server_home)
        if not home.is_dir():
            raise ConfigurationError(
                f"Server home directory does not exist: {home}",
                {"server_home": str(home)},
            )

        if startup_timeout is None or startup_timeout <= 0:
            raise ConfigurationError(
                f"Startup timeout must be positive: {startup_timeout}",
                {"startup_timeout": startup_timeout},
            )

        return cls(
            connection_info=connection_info,
            java_home=java_home,
            server_home=home,
            modules_dirs=resolve_modules_dirs(home, modules_dir),
            jvm_args=tuple(jvm_args) if jvm_args is not None else None,
            server_config=server_config,
            properties_file=properties_file,
            startup_timeout=startup_timeout,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging. Connection details are left out."""
        return {
            "java_home": self.java_home,
            "server_home": str(self.server_home),
            "modules_dirs": [str(path) for path in self.modules_dirs],
            "jvm_args": list(self.jvm_args) if self.jvm_args is not None else None,
            "server_config": self.server_config,
            "properties_file": self.properties_file,
            "startup_timeout": self.startup_timeout,
        }


def resolve_modules_dirs(
    server_home: Path, modules_dir: Optional[str]
) -> Tuple[Path, ...]:
    """Resolve the module search path.

    Segments keep their order and duplicates are kept, since the server
    searches them in order.
    """
    if modules_dir is None:
        return (server_home / "modules",)
    return tuple(Path(each) for each in modules_dir.split(";"))
