"""Tic-tac-toe server entry point.

Usage:
    Serve on the default port:   python -m tictactoe.main
    Custom address:              python -m tictactoe.main --bind 127.0.0.1 --port 9000
    Drop stalled connections:    python -m tictactoe.main --idle-timeout 60
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from tictactoe.config import DEFAULT_HOST, DEFAULT_PORT, IDLE_TIMEOUT_S
from tictactoe.networking.server import serve


def main() -> None:
    parser = argparse.ArgumentParser(description="Two-player tic-tac-toe session server")
    parser.add_argument(
        "--bind", type=str, default=DEFAULT_HOST,
        help="Address to listen on",
    )
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help="TCP port to listen on",
    )
    parser.add_argument(
        "--idle-timeout", type=float, default=IDLE_TIMEOUT_S, metavar="SECONDS",
        help="Close connections that stall mid-read for this long",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        asyncio.run(serve(args.bind, args.port, idle_timeout=args.idle_timeout))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Shutting down")


if __name__ == "__main__":
    main()
