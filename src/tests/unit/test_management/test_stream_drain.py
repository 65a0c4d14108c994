"""Tests for output draining."""

import asyncio
from types import SimpleNamespace

import pytest

from server_lifecycle.management.stream_drain import StreamDrain


def _reader(data: bytes = b"", limit: int = 2 ** 16, eof: bool = True):
    reader = asyncio.StreamReader(limit=limit)
    if data:
        reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


class TestStreamDrain:
    """Test the StreamDrain class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.lines = []
        self.drain = StreamDrain(lambda line, stream: self.lines.append((stream, line)))

    @pytest.mark.asyncio
    async def test_drains_both_streams(self):
        """Lines from stdout and stderr reach the sink with their stream name."""
        handle = SimpleNamespace(
            stdout=_reader(b"WFLYSRV0049: starting\nWFLYSRV0025: started\n"),
            stderr=_reader(b"WARN something\n"),
        )

        self.drain.attach(handle)

        assert await self.drain.wait(timeout=1.0)
        assert self.drain.finished
        assert ("stdout", "WFLYSRV0049: starting") in self.lines
        assert ("stdout", "WFLYSRV0025: started") in self.lines
        assert ("stderr", "WARN something") in self.lines
        assert self.drain.lines_drained == 3

    @pytest.mark.asyncio
    async def test_line_order_preserved_per_stream(self):
        """Lines of one stream arrive in the order they were written."""
        handle = SimpleNamespace(stdout=_reader(b"one\ntwo\nthree\n"), stderr=None)

        self.drain.attach(handle)
        await self.drain.wait(timeout=1.0)

        assert [line for _, line in self.lines] == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_strips_line_endings(self):
        """Windows and unix line endings are removed."""
        handle = SimpleNamespace(stdout=_reader(b"crlf\r\nlf\nlast"), stderr=None)

        self.drain.attach(handle)
        await self.drain.wait(timeout=1.0)

        assert [line for _, line in self.lines] == ["crlf", "lf", "last"]

    @pytest.mark.asyncio
    async def test_invalid_bytes_replaced(self):
        """Undecodable output does not stop draining."""
        handle = SimpleNamespace(stdout=_reader(b"bad \xff byte\nnext\n"), stderr=None)

        self.drain.attach(handle)
        await self.drain.wait(timeout=1.0)

        assert len(self.lines) == 2
        assert self.lines[1] == ("stdout", "next")

    @pytest.mark.asyncio
    async def test_over_long_line_skipped(self):
        """A line over the reader limit is dropped and draining continues."""
        handle = SimpleNamespace(
            stdout=_reader(b"x" * 200 + b"\nshort\n", limit=32), stderr=None
        )

        self.drain.attach(handle)
        await self.drain.wait(timeout=1.0)

        assert self.lines == [("stdout", "short")]

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_stop_draining(self):
        """Sink errors are logged and swallowed."""
        seen = []

        def sink(line, stream):
            seen.append(line)
            if line == "first":
                raise RuntimeError("sink broken")

        drain = StreamDrain(sink)
        drain.attach(SimpleNamespace(stdout=_reader(b"first\nsecond\n"), stderr=None))

        assert await drain.wait(timeout=1.0)
        assert seen == ["first", "second"]

    @pytest.mark.asyncio
    async def test_stream_error_is_swallowed(self):
        """An I/O error ends that stream quietly."""
        broken = _reader(b"before\n", eof=False)
        broken.set_exception(OSError("pipe broken"))

        self.drain.attach(SimpleNamespace(stdout=broken, stderr=_reader(b"ok\n")))

        assert await self.drain.wait(timeout=1.0)
        assert ("stderr", "ok") in self.lines

    @pytest.mark.asyncio
    async def test_wait_times_out_on_open_stream(self):
        """wait() reports streams that are still open."""
        self.drain.attach(SimpleNamespace(stdout=_reader(eof=False), stderr=None))

        assert not await self.drain.wait(timeout=0.05)

        self.drain.cancel()

    @pytest.mark.asyncio
    async def test_no_streams(self):
        """Nothing to drain finishes immediately."""
        self.drain.attach(SimpleNamespace(stdout=None, stderr=None))

        assert await self.drain.wait(timeout=0.01)
