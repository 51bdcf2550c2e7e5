"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the square server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m squareserver serve --port 5000                   │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── SQUARE_PORT=5000 python -m squareserver serve              │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Validation happens once, at server construction, so a bad port or
timeout fails before any socket is created.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_PORT = 4949
"""Default port number where the server listens for connections."""

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class ServerConfig:
    """
    Configuration for both listener variants.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, accept_poll_interval

    CONNECTION SETTINGS
    - idle_timeout, max_line_length

    DISPATCH
    - threaded

    LOGGING
    - log_level

    =========================================================================
    """

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0" - All network interfaces
    """

    port: int = DEFAULT_PORT
    """
    The port number to listen on. 0 lets the OS pick a free port;
    read the real one back from server.address.
    """

    backlog: int = 50
    """
    Maximum number of accepted-but-unserved connections the kernel
    queues. With the single-threaded server, every client after the
    first waits here.
    """

    idle_timeout: Optional[float] = None
    """
    Per-connection read timeout in seconds.
    None = handlers wait for input until the client disconnects.
    When set, a silent client is treated as an I/O failure and dropped.
    """

    max_line_length: int = 8192
    """
    Longest request line accepted, in bytes. A longer line ends the
    connection; it is never buffered without bound.
    """

    accept_poll_interval: float = 1.0
    """
    How often accept() wakes up to check whether shutdown() was called.
    """

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR).
    DEBUG logs every request and reply.
    """

    threaded: bool = False
    """
    False = SquareServer (one client at a time).
    True = ThreadedSquareServer (one thread per connection).
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        SQUARE_HOST          Server host (default: 127.0.0.1)
        SQUARE_PORT          Server port (default: 4949)
        SQUARE_IDLE_TIMEOUT  Idle timeout in seconds (default: none)
        SQUARE_LOG_LEVEL     Logging level (default: INFO)
        SQUARE_THREADED      1/true/yes/on for the threaded server

        =====================================================================
        """
        idle_timeout = os.getenv("SQUARE_IDLE_TIMEOUT")
        return cls(
            host=os.getenv("SQUARE_HOST", "127.0.0.1"),
            port=int(os.getenv("SQUARE_PORT", str(DEFAULT_PORT))),
            idle_timeout=float(idle_timeout) if idle_timeout else None,
            log_level=os.getenv("SQUARE_LOG_LEVEL", "INFO"),
            threaded=os.getenv("SQUARE_THREADED", "").lower() in _TRUE_VALUES,
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.idle_timeout is not None and self.idle_timeout <= 0:
            raise ValueError("idle_timeout must be > 0")

        if self.accept_poll_interval <= 0:
            raise ValueError("accept_poll_interval must be > 0")

        if self.max_line_length < 16:
            raise ValueError("max_line_length must be >= 16")
