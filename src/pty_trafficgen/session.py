"""Session streams to a remote agent's interactive terminal.

The runner only needs a duplex byte stream. Two transports are provided:
the reconnecting-PTY websocket endpoint of a workspace agent, and a raw
TCP socket (PTY relays, local echo servers).
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosedError,
    ConnectionClosedOK,
    InvalidHandshake,
    InvalidURI,
)

logger = logging.getLogger(__name__)

DEFAULT_HEIGHT = 65535
DEFAULT_WIDTH = 65535
DEFAULT_COMMAND = "/bin/sh"
SESSION_TOKEN_HEADER = "Coder-Session-Token"
PTY_PATH = "/api/v2/workspaceagents/{agent_id}/pty"
OPEN_TIMEOUT = 10.0


class SessionError(Exception):
    """The session endpoint refused or failed the handshake."""


class StreamClosedError(ConnectionError):
    """Operation on a stream that has already been closed locally."""


@dataclass(frozen=True)
class Dimensions:
    height: int = DEFAULT_HEIGHT
    width: int = DEFAULT_WIDTH


class SessionStream(Protocol):
    async def read(self, n: int = -1) -> bytes:
        """Return up to n bytes, or b"" once the remote end has finished."""
        ...

    async def write(self, data: bytes) -> int:
        ...

    async def close(self) -> None:
        ...


SessionOpener = Callable[[str, uuid.UUID, Dimensions, str], Awaitable[SessionStream]]


# ---- Raw TCP ----


class TcpStream:
    """SessionStream over an asyncio TCP connection."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def read(self, n: int = -1) -> bytes:
        return await self._reader.read(n)

    async def write(self, data: bytes) -> int:
        if self._closed:
            raise StreamClosedError("write on closed stream")
        self._writer.write(data)
        try:
            await self._writer.drain()
        except ConnectionResetError as e:
            if self._closed:
                raise StreamClosedError("stream closed during write") from e
            raise
        return len(data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug("TCP close: %s", e)


def parse_host_port(target: str) -> tuple[str, int]:
    host, sep, port = target.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"expected host:port, got {target!r}")
    return host.strip("[]"), int(port)


def tcp_opener() -> SessionOpener:
    """Opener that treats the target id as host:port of a raw PTY stream."""

    async def open_session(
        target_id: str, reconnect: uuid.UUID, dims: Dimensions, command: str
    ) -> SessionStream:
        host, port = parse_host_port(target_id)
        logger.info("TCP session: %s:%d reconnect=%s", host, port, reconnect)
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=OPEN_TIMEOUT
        )
        return TcpStream(reader, writer)

    return open_session


# ---- Reconnecting PTY websocket ----


class WebSocketStream:
    """SessionStream over binary websocket messages."""

    def __init__(self, ws: ClientConnection):
        self._ws = ws
        self._pending = b""
        self._closed = False

    async def read(self, n: int = -1) -> bytes:
        if not self._pending:
            try:
                msg = await self._ws.recv()
            except ConnectionClosedOK:
                return b""
            except ConnectionClosedError as e:
                raise ConnectionResetError(f"websocket closed abnormally: {e}") from e
            self._pending = msg.encode() if isinstance(msg, str) else msg

        if n < 0 or n >= len(self._pending):
            data, self._pending = self._pending, b""
        else:
            data, self._pending = self._pending[:n], self._pending[n:]
        return data

    async def write(self, data: bytes) -> int:
        if self._closed:
            raise StreamClosedError("write on closed stream")
        try:
            await self._ws.send(data)
        except ConnectionClosedOK as e:
            raise StreamClosedError(str(e)) from e
        except ConnectionClosedError as e:
            raise ConnectionResetError(f"websocket closed abnormally: {e}") from e
        return len(data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._ws.close()


def pty_url(
    base_url: str,
    agent_id: str,
    reconnect: uuid.UUID,
    dims: Dimensions,
    command: str,
) -> str:
    """Build the reconnecting-PTY websocket URL for an agent."""
    parts = urlsplit(base_url)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    if scheme not in ("ws", "wss"):
        raise ValueError(f"unsupported URL scheme: {parts.scheme!r}")
    path = parts.path.rstrip("/") + PTY_PATH.format(agent_id=agent_id)
    query = urlencode({
        "reconnect": str(reconnect),
        "height": dims.height,
        "width": dims.width,
        "command": command,
    })
    return urlunsplit((scheme, parts.netloc, path, query, ""))


def websocket_opener(base_url: str, session_token: Optional[str] = None) -> SessionOpener:
    """Opener for the agent's reconnecting-PTY websocket endpoint."""

    async def open_session(
        target_id: str, reconnect: uuid.UUID, dims: Dimensions, command: str
    ) -> SessionStream:
        url = pty_url(base_url, target_id, reconnect, dims, command)
        headers = {SESSION_TOKEN_HEADER: session_token} if session_token else None
        logger.info("PTY session: %s", url)
        try:
            ws = await connect(
                url,
                additional_headers=headers,
                max_size=None,
                open_timeout=OPEN_TIMEOUT,
            )
        except (InvalidHandshake, InvalidURI) as e:
            raise SessionError(f"open PTY for agent {target_id}: {e}") from e
        return WebSocketStream(ws)

    return open_session
