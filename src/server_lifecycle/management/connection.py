"""Management connection used to query and stop the running server."""

import abc
import asyncio
from typing import Any, Dict, Optional

import aiohttp
import structlog

from .exceptions import ProbeError, ShutdownProbeError

logger = structlog.get_logger(__name__)

SERVER_STATE_RUNNING = "running"


class ConnectionInfo(abc.ABC):
    """How to reach the server's management endpoint.

    Each call is independent and idempotent, so one instance can be shared
    by concurrent probes.
    """

    @abc.abstractmethod
    async def read_server_state(self) -> str:
        """Return the server's current runtime state, e.g. ``"running"``.

        Raises:
            ProbeError: If the management call fails
        """

    @abc.abstractmethod
    async def shutdown(self) -> None:
        """Ask the server to shut down gracefully.

        Raises:
            ShutdownProbeError: If the request could not be delivered
        """


class HttpConnectionInfo(ConnectionInfo):
    """Management connection over the server's HTTP management API."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9990,
        protocol: str = "http",
        username: Optional[str] = None,
        password: Optional[str] = None,
        request_timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.protocol = protocol
        self.username = username
        self.password = password
        self.request_timeout = request_timeout

    @property
    def url(self) -> str:
        """Get management endpoint URL."""
        return f"{self.protocol}://{self.host}:{self.port}/management"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "host": self.host,
            "port": self.port,
            "protocol": self.protocol,
            "username": self.username,
            "password": self.password,
        }

    async def read_server_state(self) -> str:
        try:
            response = await self._execute(
                {"operation": "read-attribute", "name": "server-state"}
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProbeError(
                f"Management call to {self.url} failed: {e}",
                details={"url": self.url},
            ) from e

        if response.get("outcome") != "success":
            raise ProbeError(
                "Reading server state failed",
                details={"failure": response.get("failure-description")},
            )
        return str(response.get("result"))

    async def shutdown(self) -> None:
        try:
            response = await self._execute({"operation": "shutdown"})
        except aiohttp.ServerDisconnectedError:
            # The server can go away before it answers
            logger.debug("Server closed the connection on shutdown", url=self.url)
            return
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ShutdownProbeError(
                f"Shutdown request to {self.url} failed: {e}",
                details={"url": self.url},
            ) from e

        if response.get("outcome") != "success":
            raise ShutdownProbeError(
                "Server rejected the shutdown request",
                details={"failure": response.get("failure-description")},
            )

    async def _execute(self, operation: Dict[str, Any]) -> Dict[str, Any]:
        """Run one management operation and return the decoded response.

        Credentials answer the server's HTTP Digest challenge.
        """
        middlewares = ()
        if self.username is not None:
            middlewares = (
                aiohttp.DigestAuthMiddleware(self.username, self.password or ""),
            )

        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            middlewares=middlewares,
        ) as session:
            async with session.post(self.url, json=operation) as response:
                if response.status == 401:
                    raise ValueError("authentication required")
                # Failed operations come back as 500 with a JSON body
                body = await response.json(content_type=None)

        if body is None:
            return {}
        if not isinstance(body, dict):
            raise ValueError(f"unexpected management response: {body!r}")
        return body
