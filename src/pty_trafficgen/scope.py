"""Cancellation scopes and tick sources for the traffic runner.

A Scope is a cooperative cancellation token shared by every task of a run.
Child scopes end when their parent ends, or when their own deadline passes.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScopeError(Exception):
    """Raised (or returned by Scope.err) once a scope has ended."""


class ScopeCancelled(ScopeError):
    pass


class DeadlineExceeded(ScopeError):
    pass


class Scope:
    """Cancellation token, optionally bound to an absolute loop deadline."""

    def __init__(self, parent: Optional["Scope"] = None, deadline: Optional[float] = None):
        self._parent = parent
        self._deadline = deadline
        self._reason: Optional[type[ScopeError]] = None
        self._event = asyncio.Event()
        self._children: set["Scope"] = set()
        self._callbacks: list[Callable[["Scope"], None]] = []
        self._timer: Optional[asyncio.TimerHandle] = None

        if parent is not None:
            if parent._reason is not None:
                self._finish(parent._reason)
                return
            parent._children.add(self)

        if deadline is not None:
            loop = asyncio.get_running_loop()
            if deadline <= loop.time():
                self._finish(DeadlineExceeded)
            else:
                self._timer = loop.call_at(deadline, self._finish, DeadlineExceeded)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def with_deadline(self, when: float) -> "Scope":
        """Derive a child scope that ends at loop time `when`."""
        if self._deadline is not None and self._deadline < when:
            when = self._deadline
        return Scope(self, when)

    def with_timeout(self, seconds: float) -> "Scope":
        return self.with_deadline(asyncio.get_running_loop().time() + seconds)

    def done(self) -> bool:
        return self._reason is not None

    def err(self) -> Optional[ScopeError]:
        """Return why the scope ended, or None while it is still running."""
        if self._reason is None:
            return None
        if self._reason is DeadlineExceeded:
            return DeadlineExceeded("deadline exceeded")
        return ScopeCancelled("scope cancelled")

    def cancel(self) -> None:
        self._finish(ScopeCancelled)

    async def wait(self) -> None:
        await self._event.wait()

    def add_done_callback(self, fn: Callable[["Scope"], None]) -> None:
        if self._reason is not None:
            fn(self)
        else:
            self._callbacks.append(fn)

    async def first(self, aw: Awaitable[T]) -> T:
        """Await `aw` unless the scope ends first.

        Raises the scope's ScopeError if it ends before `aw` completes; `aw`
        is cancelled in that case.
        """
        if self._reason is not None:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise self.err()

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task.done() and not task.cancelled():
            return task.result()
        raise self.err()

    def _finish(self, reason: type[ScopeError]) -> None:
        if self._reason is not None:
            return
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._parent is not None:
            self._parent._children.discard(self)

        for child in list(self._children):
            child._finish(reason)
        self._children.clear()

        callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            try:
                fn(self)
            except Exception:
                logger.exception("Scope done callback failed")

    def __enter__(self) -> "Scope":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class Ticker:
    """Periodic tick source.

    Holds at most one pending tick; ticks that arrive while one is still
    pending are dropped, so a slow consumer never sees a burst.
    """

    def __init__(self, interval: float):
        if interval <= 0:
            raise ValueError(f"tick interval must be positive, got {interval}")
        self.interval = interval
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[float] = asyncio.Queue(maxsize=1)
        self._next = self._loop.time() + interval
        self._handle: Optional[asyncio.TimerHandle] = self._loop.call_at(self._next, self._fire)

    def _fire(self) -> None:
        now = self._loop.time()
        try:
            self._queue.put_nowait(now)
        except asyncio.QueueFull:
            pass
        self._next += self.interval
        while self._next <= now:
            self._next += self.interval
        self._handle = self._loop.call_at(self._next, self._fire)

    async def tick(self) -> float:
        """Wait for the next tick; returns the loop time it fired at."""
        return await self._queue.get()

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
