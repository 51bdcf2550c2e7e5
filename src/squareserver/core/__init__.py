"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing shared by both listener variants:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds the listening socket at construction                       │
    │  • Runs the accept() loop                                           │
    │  • Hands every accepted socket, wrapped, to a callback              │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │          inline (SquareServer) or ConnectionWorker thread           │
    │                  (ThreadedSquareServer)                             │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                      handle_connection()                            │
    │  • read line → decode → square → encode → write + flush             │
    │  • closes the connection on every exit path                         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .handler import handle_connection
from .socket_server import SocketServer
from .worker import ConnectionWorker

__all__ = [
    "Connection",
    "ConnectionState",
    "ConnectionWorker",
    "SocketServer",
    "handle_connection",
]
