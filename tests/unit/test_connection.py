"""
Unit tests for LineConnection, over a local socket pair.
"""

import socket
import time

import pytest

from linechat.core.connection import LineConnection
from linechat.errors import SessionTimeout, TransportFailure


@pytest.fixture
def pair():
    """(LineConnection, raw peer socket)."""
    ours, theirs = socket.socketpair()
    conn = LineConnection(socket=ours, address=("127.0.0.1", 5000), idle_timeout=2.0)

    yield conn, theirs

    conn.close()
    theirs.close()


class TestReadLine:
    """Tests for read_line()."""

    def test_splits_lines(self, pair):
        conn, peer = pair
        peer.sendall(b"list\nhelp\n")

        assert conn.read_line() == "list"
        assert conn.read_line() == "help"

    def test_reassembles_partial_lines(self, pair):
        conn, peer = pair
        peer.sendall(b"send_all he")
        peer.sendall(b"llo\r\n")

        assert conn.read_line() == "send_all hello"

    def test_eof(self, pair):
        conn, peer = pair
        peer.sendall(b"bye\nlast")
        peer.shutdown(socket.SHUT_WR)

        assert conn.read_line() == "bye"
        assert conn.read_line() == "last"
        assert conn.read_line() is None

    def test_timeout(self, pair):
        conn, _ = pair
        conn.set_idle_timeout(0.1)

        with pytest.raises(SessionTimeout):
            conn.read_line()

    def test_line_too_long(self, pair):
        conn, peer = pair
        conn.max_line_length = 16
        peer.sendall(b"x" * 64)

        with pytest.raises(TransportFailure):
            conn.read_line()


class TestWriteAndClose:
    """Tests for write_line() and close()."""

    def test_write_line(self, pair):
        conn, peer = pair

        assert conn.write_line("200 ok") is True
        assert peer.recv(64) == b"200 ok\n"

    def test_write_after_close(self, pair):
        conn, _ = pair
        conn.close()

        assert conn.write_line("late") is False
        assert not conn.is_open

    def test_close_idempotent(self, pair):
        conn, _ = pair

        conn.close()
        conn.close()

        assert conn.read_line() is None

    def test_peer_and_id(self, pair):
        conn, _ = pair

        assert conn.peer == "127.0.0.1:5000"
        assert len(conn.id) == 8


class TestWriteTimeout:
    """Tests for bounded writes to a peer that stops reading."""

    def test_stalled_peer_times_out(self, pair):
        conn, _ = pair
        conn.write_timeout = 0.2
        big = "x" * (256 * 1024)

        started = time.monotonic()
        results = [conn.write_line(big) for _ in range(40)]
        elapsed = time.monotonic() - started

        assert results[-1] is False
        assert conn.is_broken
        assert elapsed < 5.0

    def test_broken_stream_refuses_writes(self, pair):
        conn, peer = pair
        conn.write_timeout = 0.2
        while conn.write_line("x" * (256 * 1024)):
            pass

        peer.settimeout(0.5)
        while True:
            try:
                if not peer.recv(1024 * 1024):
                    break
            except socket.timeout:
                break

        assert conn.write_line("200 ok") is False

    def test_write_within_timeout(self, pair):
        conn, peer = pair
        conn.write_timeout = 1.0

        assert conn.write_line("300 msg_fromalicehi") is True
        assert peer.recv(64) == b"300 msg_fromalicehi\n"
        assert not conn.is_broken
