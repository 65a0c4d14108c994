"""Draining the server's output so it never blocks on a full pipe."""

import asyncio
from typing import Callable, List, Optional

import structlog

from .process_launcher import ProcessHandle

logger = structlog.get_logger(__name__)

LineSink = Callable[[str, str], None]


def log_line(line: str, stream: str) -> None:
    """Default sink: forward server output to the log."""
    logger.info(line, stream=stream)


class StreamDrain:
    """Reads stdout and stderr of a process concurrently, line by line.

    Each complete line is passed to ``sink(line, stream_name)``. Errors
    never reach the caller; they are logged and draining carries on where
    possible.
    """

    def __init__(self, sink: Optional[LineSink] = None):
        self.sink = sink or log_line
        self.lines_drained = 0
        self._tasks: List[asyncio.Task] = []

    def attach(self, handle: ProcessHandle) -> None:
        """Start draining ``handle``'s output streams."""
        for name, reader in (("stdout", handle.stdout), ("stderr", handle.stderr)):
            if reader is not None:
                self._tasks.append(asyncio.ensure_future(self._drain(name, reader)))

    @property
    def finished(self) -> bool:
        return all(task.done() for task in self._tasks)

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for both streams to reach end-of-stream.

        Returns:
            bool: True if draining finished within ``timeout``
        """
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(self._tasks, timeout=timeout)
        return not pending

    def cancel(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()

    async def _drain(self, name: str, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                line = await reader.readline()
            except ValueError:
                # Line longer than the reader limit; the buffer was discarded
                logger.warning("Dropped over-long output line", stream=name)
                continue
            except Exception as e:
                logger.warning("Output stream failed", stream=name, error=str(e))
                return

            if not line:
                logger.debug("Output stream closed", stream=name)
                return

            self._emit(line.decode(errors="replace").rstrip("\r\n"), name)

    def _emit(self, line: str, stream: str) -> None:
        self.lines_drained += 1
        try:
            self.sink(line, stream)
        except Exception as e:
            logger.warning("Output sink failed", stream=stream, error=str(e))
