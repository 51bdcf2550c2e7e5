"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one connected socket with the only two operations the
square protocol needs:

    read_line()    read one line, or None at end-of-stream
    write_line()   write one line and flush it to the network

The same class is used on both ends: the server wraps each accepted
socket, and SquareClient wraps the socket it connected.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that sends "7\\n" and
then "8\\n" may be read as "7\\n8\\n", "7", "\\n8\\n", or any other split.

We therefore never recv() directly. The socket is wrapped in a buffered
binary reader (socket.makefile("rb")), and readline() keeps pulling bytes
until it sees the terminator:

    recv() chunks:     "7\\n8"      "\\n12"      "3\\n"
                          │           │           │
                          ▼           ▼           ▼
    buffer:           [7\\n8]  →  [8\\n12]  →  [123\\n]
                          │           │           │
    readline():        "7\\n"       "8\\n"      "123\\n"

=============================================================================
FLUSH AFTER EVERY REPLY
=============================================================================

The writer side is buffered too. A reply sitting in a buffer is a reply
the client never sees, and a pipelining client would wait forever for it.
write_line() therefore always calls flush() itself; nothing relies on a
line-buffered or auto-flushing stream.

=============================================================================
CLOSING EXACTLY ONCE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      close() sequence                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   state == CLOSED?  ──yes──►  return (idempotent)                   │
    │        │ no                                                          │
    │        ▼                                                             │
    │   close writer   ──fails?──►  log, carry on                         │
    │        │                                                             │
    │   close reader   ──fails?──►  log, carry on                         │
    │        │                                                             │
    │   close socket   ──fails?──►  log, carry on                         │
    │        │                                                             │
    │        ▼                                                             │
    │   state = CLOSED                                                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Closing the writer flushes it, which can fail if the peer already went
away. That failure must not leave the reader or the socket open.

=============================================================================
"""

import io
import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from ..errors import ConnectionIOFailure, ConnectionClosedError, LineTooLong
from ..protocol import read_line_text


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """
    Connection lifecycle states.

    Only OPEN connections may be read from or written to.
    """
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One side of an open, bidirectional, ordered byte stream.

    The Connection is owned by exactly one handler (or one client) for its
    whole life. It is not safe to share between threads, and it never
    needs to be: the threaded server gives each connection its own thread.

    Attributes:
        socket: The connected socket.
        address: Peer's (ip, port) tuple.
        id: Short unique identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when the connection was wrapped.
        requests_handled: Lines read successfully on this connection.
        timeout: Read/write timeout in seconds, None to block.
        max_line_length: Longest line accepted, in bytes.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.OPEN
    created_at: float = field(default_factory=time.time)
    requests_handled: int = 0

    timeout: Optional[float] = None
    max_line_length: int = 8192

    _reader: Optional[io.BufferedReader] = field(default=None, init=False, repr=False)
    _writer: Optional[io.BufferedWriter] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        """Configure the socket and build the buffered streams over it."""
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

        self._reader = self.socket.makefile("rb")
        self._writer = self.socket.makefile("wb")

    @property
    def is_open(self) -> bool:
        """The liveness flag. False once close() has started."""
        return self.state is ConnectionState.OPEN

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    def read_line(self) -> Optional[str]:
        """
        Read one line from the peer.

        A final line with no terminator (peer closed mid-line) is still
        returned as a line; the next call then reports end-of-stream.

        Returns:
            The line without its terminator, or None at end-of-stream.

        Raises:
            LineTooLong: If the line exceeds max_line_length.
            ConnectionIOFailure: If the read fails or times out.
            ConnectionClosedError: If the connection is already closed.
        """
        self._ensure_open()

        try:
            # Room for a full-length line plus "\r\n"
            raw = self._reader.readline(self.max_line_length + 2)
        except OSError as e:
            raise ConnectionIOFailure(f"read failed: {e}", self.id) from e

        if not raw:
            return None

        # The limit counts the line, not its terminator
        line = read_line_text(raw)
        if len(line) > self.max_line_length:
            raise LineTooLong(
                f"line exceeds {self.max_line_length} bytes", self.id
            )

        self.requests_handled += 1
        return line

    def write_line(self, line: str) -> None:
        """
        Write one already-terminated line and flush it.

        Raises:
            ConnectionIOFailure: If the write or flush fails.
            ConnectionClosedError: If the connection is already closed.
        """
        self._ensure_open()

        try:
            self._writer.write(line.encode("ascii"))
            self._writer.flush()
        except OSError as e:
            raise ConnectionIOFailure(f"write failed: {e}", self.id) from e

    def interrupt(self):
        """
        Shut down both directions of the socket without closing it.

        Safe to call from another thread or a signal handler while the
        owner is blocked in read_line(): that read then sees end-of-stream
        and the owner closes the connection as usual. A connection that
        is already closed is left alone.
        """
        if not self.is_open:
            return
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"[{self.id}] Error interrupting connection: {e}")

    def _ensure_open(self):
        if not self.is_open:
            raise ConnectionClosedError("connection is closed", self.id)

    def close(self):
        """
        Release the writer, the reader and the socket.

        Safe to call more than once; only the first call does anything.
        Each release is attempted even if an earlier one failed.
        """
        if self.state is not ConnectionState.OPEN:
            return

        self.state = ConnectionState.CLOSING

        for name, resource in (
            ("writer", self._writer),
            ("reader", self._reader),
            ("socket", self.socket),
        ):
            try:
                resource.close()
            except OSError as e:
                logger.debug(f"[{self.id}] Error closing {name}: {e}")

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed after {self.requests_handled} requests "
            f"({self.age:.3f}s)"
        )

    # =========================================================================
    # CONTEXT MANAGER: For use with 'with' statement
    # =========================================================================

    def __enter__(self):
        """
        Context manager entry.

            with conn:
                line = conn.read_line()
                conn.write_line(reply)
            # Connection closed here, on every exit path
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False  # Don't suppress exceptions
