"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure in the square service falls into one of a few buckets, and
each bucket has a different BLAST RADIUS:

    ┌──────────────────────┬────────────────────┬──────────────────────────┐
    │ Failure              │ Scope              │ What happens             │
    ├──────────────────────┼────────────────────┼──────────────────────────┤
    │ Malformed request    │ one request        │ reply "err", keep going  │
    │ ConnectionIOFailure  │ one connection     │ close it, keep listening │
    │ ListenerFailure      │ whole server       │ serve() stops            │
    │ ClientError          │ client caller      │ raised to the caller     │
    └──────────────────────┴────────────────────┴──────────────────────────┘

A malformed request is NOT an exception here. It is an ordinary decode
result (see protocol.RequestKind.MALFORMED), because the handler answers it
and moves on. Exceptions are reserved for things that end a scope.

=============================================================================
"""

from typing import Optional


class SquareError(Exception):
    """Base class for all square service errors."""


# =============================================================================
# SERVER SIDE
# =============================================================================

class ConnectionIOFailure(SquareError):
    """
    A read or write failed on one connection.

    The handler for that connection exits and the connection is closed.
    The listener and every other connection are unaffected.
    """

    def __init__(self, message: str, connection_id: Optional[str] = None):
        super().__init__(message)
        self.connection_id = connection_id


class LineTooLong(ConnectionIOFailure):
    """A line exceeded the configured max_line_length."""


class ConnectionClosedError(ConnectionIOFailure):
    """I/O was attempted on a connection that is already closed."""


class ListenerFailure(SquareError):
    """
    The listening socket itself failed.

    This is the only error that ends serve().
    """


# =============================================================================
# CLIENT SIDE
# =============================================================================

class ClientError(SquareError):
    """Base class for failures surfaced by SquareClient."""


class ProtocolViolation(ClientError):
    """The server sent a reply line that is neither a number nor 'err'."""

    def __init__(self, line: str):
        super().__init__(f"misformatted reply: {line!r}")
        self.line = line


class PeerClosedError(ClientError):
    """The server closed the connection before the reply arrived."""


class RequestRejected(ClientError):
    """The server answered 'err' to a request."""


class ClientClosedError(ClientError):
    """The client was used after close()."""
