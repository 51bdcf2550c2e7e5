"""
Unit tests for Connection line I/O and close semantics.
"""

import logging
import socket
import threading
import time

import pytest

from squareserver.core.connection import Connection, ConnectionState
from squareserver.errors import ConnectionClosedError, ConnectionIOFailure, LineTooLong


class TestReadLine:
    """Tests for Connection.read_line()."""

    def test_reads_lines_in_order(self, socket_pair, make_connection):
        conn = make_connection()
        socket_pair[1].sendall(b"1\n22\n333\n")

        assert conn.read_line() == "1"
        assert conn.read_line() == "22"
        assert conn.read_line() == "333"
        assert conn.requests_handled == 3

    def test_reassembles_split_line(self, socket_pair, make_connection):
        """A line split across sends is read as one line."""
        conn = make_connection()
        socket_pair[1].sendall(b"12")
        socket_pair[1].sendall(b"34\n")

        assert conn.read_line() == "1234"

    def test_end_of_stream(self, socket_pair, make_connection):
        conn = make_connection()
        socket_pair[1].shutdown(socket.SHUT_WR)

        assert conn.read_line() is None

    def test_unterminated_final_line(self, socket_pair, make_connection):
        """A last line without terminator is returned, then EOF."""
        conn = make_connection()
        socket_pair[1].sendall(b"5")
        socket_pair[1].shutdown(socket.SHUT_WR)

        assert conn.read_line() == "5"
        assert conn.read_line() is None

    def test_line_too_long(self, socket_pair, make_connection):
        conn = make_connection(max_line_length=16)
        socket_pair[1].sendall(b"1" * 40 + b"\n")

        with pytest.raises(LineTooLong):
            conn.read_line()

    def test_line_at_limit(self, socket_pair, make_connection):
        conn = make_connection(max_line_length=16)
        socket_pair[1].sendall(b"1" * 16 + b"\n")

        assert conn.read_line() == "1" * 16

    def test_crlf_line_at_limit(self, socket_pair, make_connection):
        """The terminator does not count towards the limit."""
        conn = make_connection(max_line_length=16)
        socket_pair[1].sendall(b"1" * 16 + b"\r\n" + b"2\r\n")

        assert conn.read_line() == "1" * 16
        assert conn.read_line() == "2"

    def test_crlf_line_over_limit(self, socket_pair, make_connection):
        conn = make_connection(max_line_length=16)
        socket_pair[1].sendall(b"1" * 17 + b"\r\n")

        with pytest.raises(LineTooLong):
            conn.read_line()

    def test_timeout_is_io_failure(self, make_connection):
        conn = make_connection(timeout=0.1)

        with pytest.raises(ConnectionIOFailure) as exc_info:
            conn.read_line()

        assert exc_info.value.connection_id == conn.id


class TestWriteLine:
    """Tests for Connection.write_line()."""

    def test_write_is_flushed(self, socket_pair, make_connection):
        """The peer sees the line without any further writes or close."""
        conn = make_connection()
        conn.write_line("49\n")

        socket_pair[1].settimeout(5.0)
        assert socket_pair[1].recv(16) == b"49\n"

    def test_write_to_gone_peer_fails(self, socket_pair, make_connection):
        conn = make_connection()
        socket_pair[1].close()

        with pytest.raises(ConnectionIOFailure):
            # The first write may still land in the kernel buffer
            for _ in range(100):
                conn.write_line("1\n")


class TestInterrupt:
    """Tests for Connection.interrupt()."""

    def test_unblocks_pending_read(self, make_connection):
        conn = make_connection(timeout=None)
        results = []

        reader = threading.Thread(target=lambda: results.append(conn.read_line()))
        reader.start()
        time.sleep(0.1)

        conn.interrupt()
        reader.join(timeout=5.0)

        assert not reader.is_alive()
        assert results == [None]
        assert conn.is_open
        conn.close()

    def test_peer_sees_eof(self, socket_pair, make_connection):
        conn = make_connection()
        conn.interrupt()

        socket_pair[1].settimeout(5.0)
        assert socket_pair[1].recv(16) == b""
        conn.close()

    def test_closed_connection_is_left_alone(self, make_connection):
        conn = make_connection()
        conn.close()
        conn.interrupt()

        assert conn.state is ConnectionState.CLOSED


class TestClose:
    """Tests for Connection.close()."""

    def test_close_releases_socket(self, make_connection):
        conn = make_connection()
        conn.close()

        assert conn.state is ConnectionState.CLOSED
        assert not conn.is_open
        assert conn.socket.fileno() == -1

    def test_close_is_idempotent(self, make_connection):
        conn = make_connection()
        conn.close()
        conn.close()

        assert conn.state is ConnectionState.CLOSED

    def test_peer_sees_eof_after_close(self, socket_pair, make_connection):
        conn = make_connection()
        conn.close()

        socket_pair[1].settimeout(5.0)
        assert socket_pair[1].recv(16) == b""

    def test_no_io_after_close(self, make_connection):
        conn = make_connection()
        conn.close()

        with pytest.raises(ConnectionClosedError):
            conn.read_line()
        with pytest.raises(ConnectionClosedError):
            conn.write_line("1\n")

    def test_close_continues_when_writer_close_fails(self, make_connection):
        """A failing writer close still closes the reader and socket."""
        conn = make_connection()

        class FailingWriter:
            closed = False

            def close(self):
                self.closed = True
                raise BrokenPipeError("peer gone")

        real_writer = conn._writer
        conn._writer = FailingWriter()
        conn.close()
        real_writer.close()

        assert conn.state is ConnectionState.CLOSED
        assert conn._reader.closed
        assert conn.socket.fileno() == -1

    def test_close_logs_age(self, make_connection, caplog):
        conn = make_connection()

        with caplog.at_level(logging.DEBUG, logger="squareserver.core.connection"):
            conn.close()

        assert any(
            conn.id in r.getMessage() and r.getMessage().endswith("s)")
            for r in caplog.records
        )

    def test_context_manager_closes_on_error(self, make_connection):
        conn = make_connection()

        with pytest.raises(RuntimeError):
            with conn:
                raise RuntimeError("boom")

        assert conn.state is ConnectionState.CLOSED


def test_connection_has_short_id(make_connection):
    conn = make_connection()
    assert len(conn.id) == 8
    conn.close()


def test_constructor_applies_timeout(socket_pair):
    conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 0), timeout=2.5)
    assert conn.socket.gettimeout() == 2.5
    conn.close()
