"""MCP server for PTY traffic generation."""

import json
import logging
import traceback

from mcp.server import Server
from mcp.types import TextContent, Tool

from .config import DEFAULT_BYTES_PER_SECOND, DEFAULT_DURATION, DEFAULT_TICKS_PER_SECOND
from .session import DEFAULT_COMMAND

logger = logging.getLogger(__name__)


TOOLS = [
    Tool(
        name="pty_traffic",
        description=(
            "Open a terminal session to an agent and, for a fixed duration, write "
            "random payloads at a target rate while draining the output. "
            "Reports bytes sent and received."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "agent_id": {
                    "type": "string",
                    "description": "Agent ID (websocket) or host:port (tcp)",
                },
                "transport": {
                    "type": "string",
                    "description": "Session transport (default: websocket)",
                    "enum": ["websocket", "tcp"],
                    "default": "websocket",
                },
                "url": {
                    "type": "string",
                    "description": "Deployment base URL, required for websocket transport",
                },
                "session_token": {
                    "type": "string",
                    "description": "API session token (optional)",
                },
                "ticks_per_second": {
                    "type": "integer",
                    "description": f"Writes per second (default: {DEFAULT_TICKS_PER_SECOND})",
                    "default": DEFAULT_TICKS_PER_SECOND,
                },
                "bytes_per_second": {
                    "type": "integer",
                    "description": f"Payload bytes per second (default: {DEFAULT_BYTES_PER_SECOND})",
                    "default": DEFAULT_BYTES_PER_SECOND,
                },
                "duration": {
                    "type": "number",
                    "description": f"Test duration in seconds (default: {DEFAULT_DURATION:g})",
                    "default": DEFAULT_DURATION,
                },
                "command": {
                    "type": "string",
                    "description": f"Command the terminal runs (default: {DEFAULT_COMMAND})",
                    "default": DEFAULT_COMMAND,
                },
            },
            "required": ["agent_id"],
        },
    ),
    Tool(
        name="pty_traffic_payload",
        description="Return one sample payload envelope as it would be written per tick.",
        inputSchema={
            "type": "object",
            "properties": {
                "ticks_per_second": {
                    "type": "integer",
                    "description": f"Writes per second (default: {DEFAULT_TICKS_PER_SECOND})",
                    "default": DEFAULT_TICKS_PER_SECOND,
                },
                "bytes_per_second": {
                    "type": "integer",
                    "description": f"Payload bytes per second (default: {DEFAULT_BYTES_PER_SECOND})",
                    "default": DEFAULT_BYTES_PER_SECOND,
                },
            },
        },
    ),
]


def _text(content: str) -> list[TextContent]:
    return [TextContent(type="text", text=content)]


def _json(data) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data, indent=2))]


def create_server() -> Server:
    server = Server("pty-trafficgen")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        try:
            return await _dispatch(name, arguments)
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return _text(f"Error: {e}\n\n{traceback.format_exc()}")

    return server


async def _dispatch(name: str, args: dict) -> list[TextContent]:
    from . import payload, session
    from .config import Config
    from .runner import Runner
    from .scope import Scope

    match name:
        case "pty_traffic":
            config = Config.from_dict(args)
            transport = args.get("transport", "websocket")
            match transport:
                case "websocket":
                    if not args.get("url"):
                        return _text("Error: url is required for websocket transport")
                    opener = session.websocket_opener(args["url"], args.get("session_token"))
                case "tcp":
                    opener = session.tcp_opener()
                case _:
                    return _text(f"Error: unknown transport: {transport}")

            result = await Runner(config, opener).run(Scope(), label=config.target_id)
            return _json({
                "agent_id": config.target_id,
                "transport": transport,
                **result.as_dict(),
                "bytes_per_tick": config.bytes_per_tick,
                "tick_interval_s": config.tick_interval,
            })

        case "pty_traffic_payload":
            config = Config.from_dict({"target_id": "-", **args})
            config.validate()
            data = payload.encode_payload(config.bytes_per_tick)
            return _json({
                "bytes_per_tick": config.bytes_per_tick,
                "wire_length": len(data),
                "envelope": data.decode(),
            })

        case _:
            return _text(f"Unknown tool: {name}")
