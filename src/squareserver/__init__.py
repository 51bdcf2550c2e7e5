"""
=============================================================================
SQUARESERVER - A Line-Oriented Square Service
=============================================================================

Clients send newline-terminated non-negative integers over a persistent
TCP connection; the server replies with each square, or "err" for a line
that isn't a number. Replies on one connection come back in request
order.

    Request ::= Number "\\n"
    Number  ::= [0-9]+
    Reply   ::= (Number | "err") "\\n"

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    squareserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m squareserver)
    ├── server.py            # SquareServer, ThreadedSquareServer
    ├── client.py            # SquareClient
    ├── protocol.py          # Line codec (no I/O)
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # Exception hierarchy
    └── core/
        ├── socket_server.py # Listening socket and accept loop
        ├── connection.py    # Line reader/writer over one socket
        ├── handler.py       # Per-connection request loop
        └── worker.py        # Thread per connection

=============================================================================
QUICK START
=============================================================================

    from squareserver import ThreadedSquareServer, ServerConfig, SquareClient

    server = ThreadedSquareServer(ServerConfig(port=4949))
    server.serve()

    # elsewhere
    with SquareClient("localhost", 4949) as client:
        for x in range(1, 4):
            client.send_request(x)
        print([client.get_reply() for _ in range(3)])   # [1, 4, 9]

=============================================================================
"""

__version__ = "1.0.0"

from .client import SquareClient
from .config import DEFAULT_PORT, ServerConfig
from .errors import (
    ClientClosedError,
    ClientError,
    ConnectionIOFailure,
    ListenerFailure,
    PeerClosedError,
    ProtocolViolation,
    RequestRejected,
    SquareError,
)
from .server import SquareServer, ThreadedSquareServer, create_server

__all__ = [
    "ClientClosedError",
    "ClientError",
    "ConnectionIOFailure",
    "DEFAULT_PORT",
    "ListenerFailure",
    "PeerClosedError",
    "ProtocolViolation",
    "RequestRejected",
    "ServerConfig",
    "SquareClient",
    "SquareError",
    "SquareServer",
    "ThreadedSquareServer",
    "__version__",
    "create_server",
]
