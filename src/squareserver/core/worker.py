"""
=============================================================================
PER-CONNECTION WORKER THREAD
=============================================================================

The threaded server gives every accepted connection its own thread:

    accept loop ──► ConnectionWorker(conn).start() ──► back to accept()
                           │
                           └──► handle_connection(conn)   (in new thread)

=============================================================================
SPAWN AND FORGET
=============================================================================

The accept loop never keeps a reference to a worker. There is no
registry to tear down and nothing to join: each worker owns its
connection outright and is gone when the client disconnects.

What IS guaranteed is local cleanup. run() wraps the handler in
`with self.conn:`, so the connection is closed even when the handler
dies with an exception nobody expected. The exception is logged here and
ends with this thread; it never reaches the accept loop or any other
worker.

There are no locks in this module because there is no shared state.
Each worker touches only its own Connection.

=============================================================================
"""

import threading
import time
import logging
from typing import Callable

from ..errors import ConnectionIOFailure
from .connection import Connection
from .handler import handle_connection


logger = logging.getLogger(__name__)


class ConnectionWorker(threading.Thread):
    """
    Daemon thread that services exactly one connection.

    Usage:
        worker = ConnectionWorker(conn)
        worker.start()   # and forget about it
    """

    def __init__(
        self,
        conn: Connection,
        handler: Callable[[Connection], int] = handle_connection,
    ):
        """
        Initialize the worker.

        Args:
            conn: The connection this worker now owns.
            handler: Function that services the connection.
        """
        super().__init__(name=f"Connection-{conn.id}", daemon=True)

        self.conn = conn
        self.handler = handler

    def run(self):
        """Run the handler, then make sure the connection is closed."""
        start_time = time.time()

        try:
            with self.conn:
                self.handler(self.conn)

        except ConnectionIOFailure as e:
            logger.warning(f"[{self.conn.id}] Connection failed: {e}")

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"[{self.conn.id}] Handler crashed after {elapsed:.3f}s: {e}"
            )
