"""Paced writer: one random payload per tick, written a byte at a time."""

import logging

from .meter import TrafficMeter
from .payload import encode_payload
from .scope import Scope, ScopeError, Ticker
from .session import StreamClosedError

logger = logging.getLogger(__name__)

# Write errors meaning the stream has ended rather than failed.
WRITE_END_ERRORS = (EOFError, StreamClosedError, BrokenPipeError, ScopeError)


async def write_random_data(
    scope: Scope,
    dst: TrafficMeter,
    size: int,
    ticker: Ticker,
) -> None:
    """Write one `size`-character payload to dst on every tick until scope ends.

    Returns normally when the scope ends or the stream closes. Raises on
    serialization failures and unexpected I/O errors.
    """
    while True:
        try:
            await scope.first(ticker.tick())
        except ScopeError:
            return

        data = encode_payload(size)
        sent = await copy_bytes(scope, dst, data)
        if sent < len(data):
            logger.debug("Payload cut short: %d/%d bytes", sent, len(data))
            return


async def copy_bytes(scope: Scope, dst: TrafficMeter, data: bytes) -> int:
    """Write data to dst one byte per call, stopping early when scope ends.

    Returns the number of bytes written. Stream end, deadline expiry and any
    error raised after the scope has ended count as a clean stop.
    """
    count = 0
    for idx in range(len(data)):
        if scope.done():
            return count
        try:
            n = await dst.write(data[idx : idx + 1])
        except WRITE_END_ERRORS as e:
            logger.debug("Write stopped after %d bytes: %r", count, e)
            return count
        except Exception:
            if scope.done():
                return count
            raise
        count += n
    return count
