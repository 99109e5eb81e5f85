"""Entry point: serve the MCP tools (default) or run one session directly."""

import asyncio
import argparse
import json
import logging
import sys

from .config import DEFAULT_BYTES_PER_SECOND, DEFAULT_DURATION, DEFAULT_TICKS_PER_SECOND, Config
from .errors import TrafficGenError
from .session import DEFAULT_COMMAND

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="PTY Traffic Generator")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
    )
    parser.add_argument("--log-file", default=None, help="Log to file instead of stderr")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the MCP server on stdio (default)")

    run = sub.add_parser("run", help="Run one traffic session and print the results")
    run.add_argument("--agent-id", required=True, help="Agent ID, or host:port for tcp")
    run.add_argument("--transport", default="websocket", choices=["websocket", "tcp"])
    run.add_argument("--url", default=None, help="Deployment base URL (websocket transport)")
    run.add_argument("--session-token", default=None, help="API session token")
    run.add_argument("--ticks-per-second", type=int, default=DEFAULT_TICKS_PER_SECOND)
    run.add_argument("--bytes-per-second", type=int, default=DEFAULT_BYTES_PER_SECOND)
    run.add_argument("--duration", type=float, default=DEFAULT_DURATION, help="Seconds")
    run.add_argument("--pty-command", default=DEFAULT_COMMAND, help="Command the terminal runs")
    return parser.parse_args(argv)


async def _serve() -> None:
    from mcp.server.stdio import stdio_server

    from .server import create_server

    server = create_server()
    init_options = server.create_initialization_options()

    async with stdio_server() as (read_stream, write_stream):
        logger.info("PTY traffic generator MCP server starting")
        await server.run(read_stream, write_stream, init_options)


async def _run_once(args: argparse.Namespace) -> dict:
    from . import session
    from .runner import Runner
    from .scope import Scope

    config = Config(
        target_id=args.agent_id,
        ticks_per_second=args.ticks_per_second,
        bytes_per_second=args.bytes_per_second,
        duration=args.duration,
        command=args.pty_command,
    )
    if args.transport == "tcp":
        opener = session.tcp_opener()
    else:
        if not args.url:
            raise TrafficGenError("--url is required for websocket transport")
        opener = session.websocket_opener(args.url, args.session_token)

    result = await Runner(config, opener).run(Scope(), label=config.target_id)
    return {"agent_id": config.target_id, "transport": args.transport, **result.as_dict()}


def main(argv=None) -> int:
    args = parse_args(argv)

    handler = logging.FileHandler(args.log_file) if args.log_file else logging.StreamHandler()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        handlers=[handler],
    )

    if args.command == "run":
        try:
            report = asyncio.run(_run_once(args))
        except TrafficGenError as e:
            logger.error("%s", e)
            return 1
        print(json.dumps(report, indent=2))
        return 0

    asyncio.run(_serve())
    return 0


if __name__ == "__main__":
    sys.exit(main())
