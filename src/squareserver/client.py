"""
=============================================================================
SQUARE CLIENT
=============================================================================

A SquareClient sends requests to a square server and interprets its
replies. It is "open" from construction until close(), and may not be
used after that.

Sending and receiving are separate operations, so a caller can pipeline:

    client.send_request(1)          "1\\n" ──►
    client.send_request(2)          "2\\n" ──►
    client.send_request(3)          "3\\n" ──►
    client.get_reply()   → 1        ◄── "1\\n"
    client.get_reply()   → 4        ◄── "4\\n"
    client.get_reply()   → 9        ◄── "9\\n"

The Nth get_reply() always answers the Nth send_request(), because the
server replies to one connection strictly in order.

=============================================================================
"""

import socket
import logging
from typing import Optional

from .config import DEFAULT_PORT
from .core import Connection
from .errors import ClientClosedError, PeerClosedError, RequestRejected
from .protocol import decode_reply, encode_request


logger = logging.getLogger(__name__)


class SquareClient:
    """
    Client for the square protocol over one connection.

    Usage:
        with SquareClient("localhost", 4949) as client:
            client.send_request(7)
            assert client.get_reply() == 49
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = DEFAULT_PORT,
        timeout: Optional[float] = None,
        max_line_length: int = 8192,
    ):
        """
        Connect to a server running on host at port.

        Args:
            host: Server hostname or IP.
            port: Server port.
            timeout: Connect/read/write timeout in seconds, None to block.
            max_line_length: Longest reply line accepted, in bytes.

        Raises:
            OSError: If the server can't be reached (e.g.
                     ConnectionRefusedError).
        """
        sock = socket.create_connection((host, port), timeout=timeout)
        self._conn = Connection(
            socket=sock,
            address=(host, port),
            timeout=timeout,
            max_line_length=max_line_length,
        )
        self.pending = 0
        logger.debug(f"[{self._conn.id}] Connected to {host}:{port}")

    @property
    def is_open(self) -> bool:
        return self._conn.is_open

    def _ensure_open(self):
        if not self._conn.is_open:
            raise ClientClosedError("client is closed")

    def send_request(self, x: int) -> None:
        """
        Send a request to the server. Requires this is "open".

        Args:
            x: Non-negative integer to square.

        Raises:
            ValueError: If x is not a non-negative int.
            ConnectionIOFailure: If the write fails.
            ClientClosedError: If the client is closed.
        """
        self._ensure_open()
        self._conn.write_line(encode_request(x))
        self.pending += 1

    def get_reply(self) -> int:
        """
        Get the reply to the oldest request not yet answered.
        Requires this is "open". Blocks until a full line arrives.

        Returns:
            Square of the requested number.

        Raises:
            PeerClosedError: If the server closed the connection.
            RequestRejected: If the server answered "err".
            ProtocolViolation: If the reply line is ungrammatical.
            ConnectionIOFailure: If the read fails.
            ClientClosedError: If the client is closed.
        """
        self._ensure_open()

        line = self._conn.read_line()
        if line is None:
            raise PeerClosedError("connection terminated unexpectedly")

        self.pending = max(self.pending - 1, 0)

        reply = decode_reply(line)
        if reply.is_error:
            raise RequestRejected("server rejected the request")
        return reply.value

    def close(self) -> None:
        """
        Close the connection to the server. The client is now "closed".

        Raises:
            ClientClosedError: If the client was already closed.
        """
        self._ensure_open()
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._conn.is_open:
            self._conn.close()
        return False
