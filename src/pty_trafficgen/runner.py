"""Traffic generation runner for one remote terminal session.

Opens a session, then for `duration` seconds writes a random payload every
tick while draining whatever the remote sends back, and reports the bytes
moved in each direction.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional, TextIO

from .config import Config
from .errors import ConnectError, ReadError, WriteError
from .meter import TrafficMeter
from .reader import drain
from .scope import Scope, Ticker
from .session import Dimensions, SessionOpener
from .writer import write_random_data

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    duration: float
    bytes_written: int
    bytes_read: int

    def as_dict(self) -> dict:
        elapsed = self.duration
        return {
            "duration_s": round(elapsed, 2),
            "bytes_sent": self.bytes_written,
            "bytes_received": self.bytes_read,
            "send_kbps": round(self.bytes_written * 8 / (elapsed * 1000), 1) if elapsed > 0 else 0,
            "recv_kbps": round(self.bytes_read * 8 / (elapsed * 1000), 1) if elapsed > 0 else 0,
        }


class Runner:
    """Runs one traffic session against a target agent."""

    def __init__(self, config: Config, open_session: SessionOpener):
        self.config = config
        self._open_session = open_session
        self.result: Optional[RunResult] = None

    async def run(self, scope: Scope, label: str = "", logs: Optional[TextIO] = None) -> RunResult:
        """Run the session until the configured duration elapses.

        Args:
            scope: Caller's scope; cancelling it stops the run early (cleanly).
            label: Run name, used as the logger suffix.
            logs: Optional text stream receiving this run's debug log.

        Returns:
            RunResult with elapsed time and bytes sent/received.

        Raises:
            ConfigError: configuration rejected, nothing was opened.
            ConnectError: the session could not be opened.
            WriteError / ReadError: an unexpected I/O failure ended the run.
        """
        self.config.validate()

        # Dots in host:port labels would otherwise nest one logger per octet
        log = logger.getChild(label.replace(".", "_")) if label else logger
        handler = None
        old_level = log.level
        old_propagate = log.propagate
        if logs is not None:
            handler = logging.StreamHandler(logs)
            handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
            log.addHandler(handler)
            log.setLevel(logging.DEBUG)
            # Debug records go to the sink only
            log.propagate = False
        try:
            return await self._run(scope, log)
        finally:
            if handler is not None:
                handler.flush()
                log.removeHandler(handler)
                log.setLevel(old_level)
                log.propagate = old_propagate

    async def cleanup(self, scope: Scope, label: str = "") -> None:
        """Nothing to do: run() releases the session itself."""

    async def _run(self, scope: Scope, log: logging.Logger) -> RunResult:
        cfg = self.config
        agent_id = cfg.target_id
        reconnect = uuid.uuid4()
        bytes_per_tick = cfg.bytes_per_tick

        log.debug("connect to agent: agent_id=%s reconnect=%s", agent_id, reconnect)
        try:
            stream = await self._open_session(
                agent_id, reconnect, Dimensions(cfg.height, cfg.width), cfg.command
            )
        except Exception as e:
            log.error("connect to agent: agent_id=%s error=%s", agent_id, e)
            raise ConnectError(f"connect to agent {agent_id}: {e}") from e

        closed = False

        async def close_stream() -> None:
            nonlocal closed
            if closed:
                return
            closed = True
            log.debug("close agent connection: agent_id=%s", agent_id)
            try:
                await stream.close()
            except OSError as e:
                log.debug("close agent connection: %s", e)

        start = time.monotonic()
        deadline = asyncio.get_running_loop().time() + cfg.duration
        try:
            with scope.with_deadline(deadline) as run_scope:
                run_scope.add_done_callback(
                    lambda s: log.debug(
                        "run scope done: reason=%s duration=%.3fs", s.err(), time.monotonic() - start
                    )
                )
                meter = TrafficMeter(stream, run_scope)
                ticker = Ticker(cfg.tick_interval)

                write_task = asyncio.create_task(
                    self._write(run_scope, meter, bytes_per_tick, ticker, log)
                )
                read_task = asyncio.create_task(
                    self._read(run_scope, meter, bytes_per_tick * 2, close_stream, log)
                )
                try:
                    # Writer first: its error wins when both fail
                    write_err = await _join(write_task)
                    read_err = await _join(read_task)
                finally:
                    ticker.stop()
                    for task in (write_task, read_task):
                        if not task.done():
                            task.cancel()
        finally:
            await close_stream()

        if write_err is not None:
            raise WriteError(f"write to stream failed: {write_err}") from write_err
        if read_err is not None:
            raise ReadError(f"read from stream failed: {read_err}") from read_err

        result = RunResult(
            duration=time.monotonic() - start,
            bytes_written=meter.bytes_written,
            bytes_read=meter.bytes_read,
        )
        log.info(
            "results: duration=%.3fs sent=%d rcvd=%d",
            result.duration,
            result.bytes_written,
            result.bytes_read,
        )
        self.result = result
        return result

    async def _write(self, scope, meter, size, ticker, log) -> None:
        log.debug("writing to agent: agent_id=%s", self.config.target_id)
        try:
            await write_random_data(scope, meter, size, ticker)
        finally:
            log.debug("done writing to agent: agent_id=%s", self.config.target_id)

    async def _read(self, scope, meter, buf_size, close_stream, log) -> None:
        log.debug("reading from agent: agent_id=%s", self.config.target_id)
        try:
            await drain(scope, meter, buf_size)
        finally:
            log.debug("done reading from agent: agent_id=%s", self.config.target_id)
            # Unblocks a writer stuck in a byte write
            await close_stream()


async def _join(task: asyncio.Task) -> Optional[BaseException]:
    try:
        await task
    except Exception as e:
        return e
    return None
