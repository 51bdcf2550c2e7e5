"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket and the accept loop. It knows
nothing about squaring numbers: every accepted socket is wrapped in a
Connection and handed to a callback. Whether that callback services the
connection inline or on a new thread is the caller's business.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create a socket file descriptor
    2. bind()      Associate the socket with an IP:PORT      ┐ in __init__
    3. listen()    Mark socket as a "listening" socket       ┘
    4. accept()    Wait for and accept an incoming connection   in start()
    5. close()     Release the socket resources                 in close()

Binding happens in the constructor, not in start(). A port that is
already in use is reported as soon as the server object is built, before
anyone calls serve().

=============================================================================
ACCEPT LOOP FAILURES
=============================================================================

    accept() times out     → normal, check for a stop request, loop again
    wrapping fails         → drop that one client, keep accepting
    accept() fails         → the listening socket is broken: raise
                             ListenerFailure and stop
    callback fails         → not our concern; the callback is expected to
                             contain connection-scoped failures itself

=============================================================================
SIGNAL HANDLING FOR GRACEFUL SHUTDOWN
=============================================================================

SIGINT (Ctrl+C) and SIGTERM call shutdown(). Python only allows signal
handlers to be installed from the main thread, so when the accept loop
runs on any other thread (tests, embedding) signals are left alone and
shutdown() must be called explicitly.

A handler blocked reading from a client does not notice a flag being
set, and PEP 475 restarts an interrupted read. The owner therefore passes
an on_shutdown hook that knocks such a read loose (see SquareServer).

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from ..errors import ListenerFailure
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Listening socket plus accept loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    __init__()        create socket, bind(), listen()                 │
    │        │                                                             │
    │        ▼                                                             │
    │    start(callback)   BLOCKS                                          │
    │        │                                                             │
    │        ├──► _setup_signals()  (main thread only)                     │
    │        │                                                             │
    │        └──► _accept_loop()                                           │
    │                 │                                                    │
    │                 └──► until stopped:                                  │
    │                         accept()                                     │
    │                         Connection(client_socket)                    │
    │                         callback(conn)                               │
    │                                                                      │
    │    shutdown()        stop requested, on_shutdown(), loop exits       │
    │                                                                      │
    │    close()           close the listening socket                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config)       # raises OSError if port in use
        server.start(handle_connection)     # blocks until shutdown
    """

    def __init__(
        self,
        config: ServerConfig,
        on_shutdown: Optional[Callable[[], None]] = None,
    ):
        """
        Create, bind and listen.

        Args:
            config: Server configuration (host, port, backlog, ...).
            on_shutdown: Called by shutdown(), after the stop request is
                         recorded. Lets the owner unblock work the accept
                         loop is waiting on.

        Raises:
            OSError: If the address cannot be bound.
        """
        self.config = config
        self.on_shutdown = on_shutdown

        self._running = False

        # Set by shutdown(), never cleared: a stop requested before start()
        # still applies.
        self._stop_requested = threading.Event()

        # Set once the accept loop has finished
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

        self._socket: Optional[socket.socket] = self._create_socket()

        try:
            self._socket.bind((config.host, config.port))
            self._socket.listen(config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {config.host}:{config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

    @property
    def is_running(self) -> bool:
        """Check if the accept loop is running."""
        return self._running

    @property
    def stop_requested(self) -> bool:
        """True once shutdown() has been called."""
        return self._stop_requested.is_set()

    @property
    def is_closed(self) -> bool:
        """Check if the listening socket has been released."""
        return self._socket is None

    @property
    def address(self) -> Tuple[str, int]:
        """The bound address (IP, port). The real port when config.port was 0."""
        if self._socket is None:
            return (self.config.host, self.config.port)
        host, port = self._socket.getsockname()[:2]
        return (host, port)

    def _create_socket(self) -> socket.socket:
        """
        Create and configure the listening socket.

        SO_REUSEADDR lets a restarted server rebind while old connections
        sit in TIME_WAIT. It does NOT let two live listeners share a port,
        which is what makes "port already in use" fail at bind time.
        SO_REUSEPORT would, so it is not set.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Replies are a few bytes each; don't let Nagle hold them back.
        # Accepted sockets inherit this on Linux.
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up periodically so shutdown() is noticed
        sock.settimeout(self.config.accept_poll_interval)

        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that call shutdown()."""
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() or a listener failure.

        The listening socket is closed when this returns or raises.

        Args:
            connection_handler: Receives each accepted Connection and
                                takes ownership of it.

        Raises:
            ListenerFailure: If accept() fails while running.
        """
        if self._socket is None:
            raise ListenerFailure("listening socket is closed")

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")

        try:
            if not self._stop_requested.is_set():
                self._accept_loop(connection_handler)
        finally:
            self._restore_signals()
            self._running = False
            self._shutdown_event.set()
            self.close()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Main loop for accepting connections.

        Only this loop ever touches the listening socket.
        """
        while not self._stop_requested.is_set():
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_requested.is_set():
                    break
                logger.error(f"Accept error: {e}")
                raise ListenerFailure(f"accept failed: {e}") from e

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            try:
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    timeout=self.config.idle_timeout,
                    max_line_length=self.config.max_line_length,
                )
            except OSError as e:
                # Scoped to this client: drop it and keep accepting
                logger.warning(f"Could not set up connection from {client_address[0]}:{client_address[1]}: {e}")
                client_socket.close()
                continue

            connection_handler(conn)

    def shutdown(self):
        """
        Ask the accept loop to stop.

        Safe to call from any thread, from a signal handler, before start()
        and more than once. The loop exits within accept_poll_interval of
        the request, once the on_shutdown hook has released whatever the
        loop is blocked on.
        """
        logger.info("Shutting down socket server...")
        self._stop_requested.set()
        self._running = False

        if self.on_shutdown is not None:
            self.on_shutdown()

    def close(self):
        """Close the listening socket. Idempotent."""
        if self._socket is None:
            return

        try:
            self._socket.close()
        except OSError:
            pass  # Already closed
        self._socket = None

        logger.info("Socket server stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the accept loop to finish.

        Returns:
            True if it finished, False on timeout.
        """
        return self._shutdown_event.wait(timeout)
