"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Drives one connection from acceptance to closure. Both listener variants
run exactly this function; they only differ in which thread runs it.

    ┌─────────────────────────────────────────────────────────────────┐
    │                    Handler Loop                                  │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   read_line() ──► decode_request()                               │
    │                        │                                         │
    │        ┌───────────────┼────────────────┐                        │
    │        ▼               ▼                ▼                        │
    │   END_OF_STREAM    MALFORMED          NUMBER                     │
    │        │               │                │                        │
    │     return        write "err"      write x*x                     │
    │                        │                │                        │
    │                        └──── flush ─────┘                        │
    │                               │                                  │
    │                         next read_line()                         │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Replies are written in the order lines are read, and nothing is read
until the previous reply has been flushed. That is all it takes to keep
replies FIFO on a connection.

=============================================================================
"""

import logging
from typing import Callable

from ..protocol import Reply, compute_reply, decode_request, encode_reply
from .connection import Connection


logger = logging.getLogger(__name__)


def handle_connection(conn: Connection, compute: Callable[[int], int] = compute_reply) -> int:
    """
    Handle one client connection. Returns when the client disconnects.

    The connection is closed on every exit path. A ConnectionIOFailure
    raised while reading or writing propagates to the caller after the
    connection has been closed.

    Args:
        conn: The accepted connection. Ownership passes to this function.
        compute: Maps a request number to its reply number.

    Returns:
        Number of replies written.
    """
    replies = 0

    with conn:
        logger.info(f"[{conn.id}] Client connected from {conn.address[0]}:{conn.address[1]}")

        while True:
            request = decode_request(conn.read_line())

            if request.is_end_of_stream:
                break

            if request.is_malformed:
                logger.debug(f"[{conn.id}] request: {request.text!r} -> err")
                reply = Reply.error()
            else:
                reply = Reply(compute(request.value))
                logger.debug(f"[{conn.id}] request: {request.value} -> reply: {reply.value}")

            conn.write_line(encode_reply(reply))
            replies += 1

    logger.info(f"[{conn.id}] Client disconnected after {replies} replies")
    return replies
