"""Drain reader: consume everything the remote sends without interpreting it."""

import asyncio
import logging
from typing import Optional

from .meter import TrafficMeter
from .scope import Scope, ScopeError
from .session import StreamClosedError

logger = logging.getLogger(__name__)

READ_END_ERRORS = (EOFError, StreamClosedError, ScopeError)

# Detached read tasks abandoned on cancel; held so they are not collected
# before the stream close unblocks them.
_abandoned: set[asyncio.Task] = set()


async def drain(scope: Scope, src: TrafficMeter, buf_size: int) -> None:
    """Read from src until end-of-stream or until scope ends.

    Reads happen on a detached task. When the scope ends first, that task
    is told to stop and left behind: its pending read returns once the
    stream is closed, and the result is discarded.
    """
    loop = asyncio.get_running_loop()
    outcome: asyncio.Future[Optional[BaseException]] = loop.create_future()
    stop = asyncio.Event()
    task = asyncio.create_task(_read_bytes(src, buf_size, stop, outcome))
    _abandoned.add(task)
    task.add_done_callback(_abandoned.discard)

    waiter = asyncio.ensure_future(scope.wait())
    try:
        await asyncio.wait({outcome, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        stop.set()
        raise
    finally:
        waiter.cancel()

    if scope.done() or not outcome.done():
        stop.set()
        return

    err = outcome.result()
    if err is None or isinstance(err, READ_END_ERRORS):
        return
    raise err


async def _read_bytes(
    src: TrafficMeter,
    buf_size: int,
    stop: asyncio.Event,
    outcome: asyncio.Future,
) -> None:
    buf = bytearray()
    while not stop.is_set():
        try:
            chunk = await src.read(1)
        except Exception as e:
            _report(outcome, e)
            return
        if not chunk:
            _report(outcome, None)
            return
        buf += chunk
        if len(buf) > buf_size:
            del buf[: len(buf) - buf_size]
    logger.debug("Reader stopped")


def _report(outcome: asyncio.Future, err: Optional[BaseException]) -> None:
    if not outcome.done():
        outcome.set_result(err)
