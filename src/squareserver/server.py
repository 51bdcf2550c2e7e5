"""
=============================================================================
SQUARE SERVERS
=============================================================================

Two listeners, one handler:

    ┌───────────────────────────┬─────────────────────────────────────────┐
    │ SquareServer              │ ThreadedSquareServer                    │
    ├───────────────────────────┼─────────────────────────────────────────┤
    │ accept()                  │ accept()                                │
    │ handle_connection(conn)   │ ConnectionWorker(conn).start()          │
    │   ...until client leaves  │ accept() again immediately              │
    │ accept() again            │                                         │
    ├───────────────────────────┼─────────────────────────────────────────┤
    │ at most 1 client served,  │ N clients served at once,               │
    │ the rest wait in backlog  │ one thread each                         │
    └───────────────────────────┴─────────────────────────────────────────┘

Single-threaded state machine:

    LISTENING ──accept──► HANDLING ──handler returns──► LISTENING

=============================================================================
FAILURE SCOPES
=============================================================================

- A connection that fails mid-session (reset, timeout, overlong line) is
  logged and closed. The server keeps accepting.
- A listening socket that fails ends serve() with ListenerFailure.
- shutdown() on the single-threaded server also shuts down the socket of
  the client being served, so a handler blocked in a read returns at once.

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .config import DEFAULT_PORT, ServerConfig
from .core import Connection, ConnectionWorker, SocketServer, handle_connection
from .errors import ConnectionIOFailure


logger = logging.getLogger(__name__)


class SquareServer:
    """
    Square server that handles one client at a time.

    The listening socket is bound when the server is constructed, so an
    address already in use raises OSError here and not from serve().

    Usage:
        server = SquareServer(ServerConfig(port=4949))
        server.serve()   # blocks until shutdown() or ListenerFailure
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Bind the listening socket.

        Args:
            config: Server configuration. Defaults listen on 127.0.0.1:4949.

        Raises:
            ValueError: If the configuration is invalid.
            OSError: If the address cannot be bound.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        # The connection _dispatch is serving inline, if any
        self._current: Optional[Connection] = None

        self._socket_server = SocketServer(self.config, on_shutdown=self._interrupt_current)

        self.connections_accepted = 0

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port)."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def serve(self):
        """
        Run the server, listening for connections and handling them.

        Blocks until shutdown() is called. The listening socket is closed
        when this returns.

        Raises:
            ListenerFailure: If the listening socket is broken.
        """
        logger.info(f"Starting {type(self).__name__}")
        self._socket_server.start(self._dispatch)
        logger.info("Server stopped")

    def _dispatch(self, conn: Connection):
        """Handle the connection inline; the next accept waits for it."""
        self.connections_accepted += 1
        self._current = conn
        try:
            if self._socket_server.stop_requested:
                # Shutdown raced the accept: on_shutdown may have missed us
                conn.close()
                return
            handle_connection(conn)
        except ConnectionIOFailure as e:
            # but don't terminate serve()
            logger.warning(f"[{conn.id}] Connection failed: {e}")
        finally:
            self._current = None

    def _interrupt_current(self):
        """Unblock the inline handler so serve() can return."""
        conn = self._current
        if conn is not None:
            logger.info(f"[{conn.id}] Interrupting client for shutdown")
            conn.interrupt()

    def shutdown(self):
        """
        Stop serve() at its next accept poll. Safe from any thread and from
        a signal handler. A client being served inline is cut off.
        """
        self._socket_server.shutdown()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_for_shutdown(timeout)

    def close(self):
        """Release the listening socket without serving."""
        self._socket_server.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        self.close()
        return False


class ThreadedSquareServer(SquareServer):
    """
    Square server that handles each client on its own thread.

    Handlers share nothing but the process: each owns its connection,
    and only the accept loop touches the listening socket, so there is
    nothing to lock.
    """

    def _dispatch(self, conn: Connection):
        """Spawn a worker for the connection and return at once."""
        self.connections_accepted += 1
        worker = ConnectionWorker(conn)
        try:
            worker.start()
        except RuntimeError as e:
            # can't start new thread
            logger.error(f"[{conn.id}] Could not start worker: {e}")
            conn.close()


def create_server(
    port: int = DEFAULT_PORT,
    threaded: bool = False,
    host: str = "127.0.0.1",
    **kwargs,
) -> SquareServer:
    """
    Build and bind a square server.

    Args:
        port: Port to listen on (0 for any free port).
        threaded: True for ThreadedSquareServer.
        host: Address to bind to.
        **kwargs: Any other ServerConfig field.

    Raises:
        OSError: If the address cannot be bound.
    """
    config = ServerConfig(host=host, port=port, threaded=threaded, **kwargs)
    server_class = ThreadedSquareServer if threaded else SquareServer
    return server_class(config)
