"""
=============================================================================
SQUARE SERVER CLI ENTRY POINT
=============================================================================

    python -m squareserver serve                   # one client at a time
    python -m squareserver serve --threaded        # thread per connection
    python -m squareserver serve --port 5000 --log-level DEBUG

    python -m squareserver client                  # square 1..100
    python -m squareserver client --count 10 --port 5000

Settings not given on the command line fall back to SQUARE_* environment
variables (see ServerConfig.from_env), then to the defaults.

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .client import SquareClient
from .config import DEFAULT_PORT, ServerConfig
from .errors import ListenerFailure, SquareError
from .server import SquareServer, ThreadedSquareServer


logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the CLI."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for both subcommands."""
    parser = argparse.ArgumentParser(
        prog="squareserver",
        description="Line-oriented TCP service that squares integers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m squareserver serve                 # Single-threaded server on 4949
  python -m squareserver serve --threaded      # Thread per connection
  python -m squareserver client --count 10     # Square 1..10
        """,
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"squareserver {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run a square server")
    serve.add_argument("--host", "-H", default=None, help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", "-p", type=int, default=None, help=f"Port to listen on (default: {DEFAULT_PORT})")
    serve.add_argument(
        "--threaded", "-t",
        action="store_true",
        default=None,
        help="Handle each client on its own thread",
    )
    serve.add_argument(
        "--idle-timeout",
        type=float,
        default=None,
        help="Drop clients idle for this many seconds (default: never)",
    )
    serve.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    client = subparsers.add_parser("client", help="Square 1..N against a running server")
    client.add_argument("--host", "-H", default="localhost", help="Server host (default: localhost)")
    client.add_argument("--port", "-p", type=int, default=DEFAULT_PORT, help=f"Server port (default: {DEFAULT_PORT})")
    client.add_argument("--count", "-n", type=int, default=100, help="How many numbers to square (default: 100)")

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Overlay command-line flags on the environment configuration."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.threaded is not None:
        config.threaded = args.threaded
    if args.idle_timeout is not None:
        config.idle_timeout = args.idle_timeout
    if args.log_level is not None:
        config.log_level = args.log_level

    return config


def run_server(config: ServerConfig) -> int:
    """Bind and serve. Returns the process exit code."""
    configure_logging(config.log_level)

    server_class = ThreadedSquareServer if config.threaded else SquareServer
    try:
        server = server_class(config)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        server.serve()
    except ListenerFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def run_client(host: str, port: int, count: int) -> int:
    """
    Use a square server to square all the integers from 1 to count.

    Sends every request first, then collects the replies.
    """
    try:
        with SquareClient(host, port) as client:
            for x in range(1, count + 1):
                client.send_request(x)
                print(f"{x}^2 = ?")

            for x in range(1, count + 1):
                y = client.get_reply()
                print(f"{x}^2 = {y}")
    except (OSError, SquareError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        return run_server(config_from_args(args))
    return run_client(args.host, args.port, args.count)


if __name__ == "__main__":
    sys.exit(main())
