#!/usr/bin/env python3
"""
Async hackbox portal server.
Serves the JSON API for challenges, progress, timers and the event lifecycle,
plus the WebSocket progress hub.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from hackbox.config import HackboxConfig
from hackbox.errors import ConfigurationError
from hackbox.portal import HackboxPortal

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"

logger = logging.getLogger("hackbox")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # Requests are logged by hackbox.http
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


async def main():
    """Main function with command line interface."""

    parser = argparse.ArgumentParser(
        description="Hackbox portal server with JSON API and WebSocket hub",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("WEB_PORT", "8080")),
        help="Web server port (env: WEB_PORT)"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "hackbox_config.json"),
        help="Configuration file path (env: CONFIG_PATH)"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (env: HOST)"
    )

    args = parser.parse_args()

    config_path = Path(args.config)

    if config_path.exists() and not config_path.is_file():
        print(f"Error: {args.config} exists but is not a file")
        return 1

    try:
        config = HackboxConfig(args.config)
        setup_logging(config.get("logging", "level"))
        portal = HackboxPortal(config, host=args.host, web_port=args.port)
        await portal.run()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 1
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Server interrupted")


if __name__ == "__main__":
    run()
