"""Entry point for marionette-mcp server."""

import argparse
import asyncio
import logging
import os
import sys

from . import __version__
from .server import create_server, get_connector


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Configure logging based on arguments and environment.

    Logs go to stderr (or ``log_file``); stdout carries the MCP stdio channel.
    """
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[handler],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Marionette MCP Server - Drive a running app's UI via MCP"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to $LOG_LEVEL or INFO.",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Append logs to this file instead of stderr.",
    )
    parser.add_argument(
        "--sse-port",
        type=int,
        default=None,
        help="Serve MCP over SSE on this port instead of stdio.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    logger = logging.getLogger(__name__)

    logger.info(f"Starting Marionette MCP Server {__version__}...")

    mcp = create_server()
    connector = get_connector()

    uri = os.environ.get("MARIONETTE_VM_SERVICE_URI")
    if uri:
        try:
            await connector.connect(uri)
        except Exception as e:
            logger.warning(f"Auto-connect to {uri} failed: {e}")

    try:
        if args.sse_port is not None:
            mcp.settings.port = args.sse_port
            await mcp.run_sse_async()
        else:
            await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        # Cleanup connection
        await connector.disconnect()
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
