"""In-memory session streams for runner tests."""

import asyncio

import pytest

from pty_trafficgen.session import StreamClosedError


class LoopbackStream:
    """Everything written becomes readable on the same stream."""

    def __init__(self):
        self.written = bytearray()
        self.close_calls = 0
        self.closed = False
        self._buf = bytearray()
        self._eof = False
        self._ready = asyncio.Event()
        self._closed_event = asyncio.Event()

    async def read(self, n: int = -1) -> bytes:
        while not self._buf and not self._eof:
            self._ready.clear()
            await self._ready.wait()
        if n < 0:
            n = len(self._buf)
        data = bytes(self._buf[:n])
        del self._buf[:n]
        return data

    async def write(self, data: bytes) -> int:
        if self.closed:
            raise StreamClosedError("write on closed stream")
        await asyncio.sleep(0)
        self._feed(data)
        self.written += data
        return len(data)

    def _feed(self, data: bytes) -> None:
        self._buf += data
        self._ready.set()

    def hang_up(self) -> None:
        """Remote end finishes: pending and future reads see end-of-stream."""
        self._eof = True
        self._ready.set()

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self._closed_event.set()
        self.hang_up()


class SinkStream(LoopbackStream):
    """Accepts writes, never sends anything back."""

    def _feed(self, data: bytes) -> None:
        pass


class StallingStream(SinkStream):
    """Blocks forever on the Nth byte written, until the stream is closed."""

    def __init__(self, stall_at: int):
        super().__init__()
        self.stall_at = stall_at
        self.stalled = asyncio.Event()

    async def write(self, data: bytes) -> int:
        if len(self.written) + len(data) >= self.stall_at:
            self.stalled.set()
            await self._closed_event.wait()
            raise StreamClosedError("stream closed during write")
        return await super().write(data)


class FailingWriteStream(SinkStream):
    async def write(self, data: bytes) -> int:
        raise OSError("write boom")


class FailingReadStream(LoopbackStream):
    async def read(self, n: int = -1) -> bytes:
        await asyncio.sleep(0.05)
        raise OSError("read boom")


class FailingStream(FailingReadStream):
    async def write(self, data: bytes) -> int:
        raise OSError("write boom")


@pytest.fixture
def loopback():
    return LoopbackStream()


@pytest.fixture
def sink():
    return SinkStream()
