"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Callable, Generator, List

import pytest

from squareserver import ServerConfig, SquareServer, ThreadedSquareServer
from squareserver.core import Connection


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration on an OS-chosen port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        accept_poll_interval=0.05,
        idle_timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """A connected (server side, client side) socket pair."""
    left, right = socket.socketpair()
    yield left, right
    for sock in (left, right):
        try:
            sock.close()
        except OSError:
            pass


@pytest.fixture
def make_connection(socket_pair) -> Callable[..., Connection]:
    """Wrap the server side of socket_pair in a Connection."""
    def _make(**kwargs) -> Connection:
        kwargs.setdefault("timeout", 5.0)
        return Connection(socket=socket_pair[0], address=("127.0.0.1", 0), **kwargs)
    return _make


class RunningServer:
    """Test helper that runs a server's serve() in a background thread."""

    def __init__(self, server: SquareServer):
        self.server = server
        self.errors: List[BaseException] = []
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start serving in a daemon thread."""
        def target():
            try:
                self.server.serve()
            except BaseException as e:
                self.errors.append(e)

        self._thread = threading.Thread(target=target, daemon=True)
        self._thread.start()

    def stop(self):
        """Stop the server and wait for serve() to return."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self.server.close()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


@pytest.fixture
def serial_server(config: ServerConfig) -> Generator[RunningServer, None, None]:
    """A running single-threaded SquareServer."""
    running = RunningServer(SquareServer(config))
    running.start()
    yield running
    running.stop()


@pytest.fixture
def threaded_server(config: ServerConfig) -> Generator[RunningServer, None, None]:
    """A running ThreadedSquareServer."""
    running = RunningServer(ThreadedSquareServer(config))
    running.start()
    yield running
    running.stop()


@pytest.fixture(params=["serial", "threaded"])
def any_server(request, config: ServerConfig) -> Generator[RunningServer, None, None]:
    """Each listener variant in turn."""
    server_class = SquareServer if request.param == "serial" else ThreadedSquareServer
    running = RunningServer(server_class(config))
    running.start()
    yield running
    running.stop()


class CannedServer:
    """
    Accepts one connection, sends fixed bytes, then closes.

    Used to feed SquareClient replies a real server would never send.
    """

    def __init__(self, payload: bytes):
        self.payload = payload
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self._sock.settimeout(5.0)
        self.received = b""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    @property
    def port(self) -> int:
        return self._sock.getsockname()[1]

    def _run(self):
        client, _ = self._sock.accept()
        with client:
            client.sendall(self.payload)
            client.shutdown(socket.SHUT_WR)
            client.settimeout(5.0)
            while True:
                chunk = client.recv(1024)
                if not chunk:
                    break
                self.received += chunk

    def close(self):
        self._thread.join(timeout=5.0)
        self._sock.close()


@pytest.fixture
def canned_server() -> Generator[Callable[[bytes], CannedServer], None, None]:
    """Factory for CannedServer instances, closed after the test."""
    servers: List[CannedServer] = []

    def _make(payload: bytes) -> CannedServer:
        server = CannedServer(payload)
        servers.append(server)
        return server

    yield _make

    for server in servers:
        server.close()


def read_lines(sock: socket.socket, count: int, timeout: float = 5.0) -> List[bytes]:
    """Read exactly `count` newline-terminated lines from a raw socket."""
    sock.settimeout(timeout)
    data = b""
    while data.count(b"\n") < count:
        chunk = sock.recv(4096)
        if not chunk:
            break
        data += chunk
    return data.split(b"\n")[:count]


@pytest.fixture
def recv_lines() -> Callable[..., List[bytes]]:
    """The read_lines helper, for tests that talk raw sockets."""
    return read_lines
