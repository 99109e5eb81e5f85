"""Byte-counting wrapper around a session stream."""

from .scope import Scope
from .session import SessionStream


class TrafficMeter:
    """Counts bytes read from and written to a stream.

    Reads and writes fail fast with the scope's reason once the scope has
    ended, so nothing touches a stream that is being closed. Only bytes of
    successful operations are counted. The counters are updated on the
    event loop thread between awaits, so increments never interleave.
    """

    def __init__(self, stream: SessionStream, scope: Scope):
        self._stream = stream
        self._scope = scope
        self._bytes_read = 0
        self._bytes_written = 0

    async def read(self, n: int = -1) -> bytes:
        err = self._scope.err()
        if err is not None:
            raise err
        data = await self._stream.read(n)
        self._bytes_read += len(data)
        return data

    async def write(self, data: bytes) -> int:
        err = self._scope.err()
        if err is not None:
            raise err
        n = await self._stream.write(data)
        self._bytes_written += n
        return n

    async def close(self) -> None:
        await self._stream.close()

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    @property
    def bytes_written(self) -> int:
        return self._bytes_written
