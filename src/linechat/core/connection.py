"""
=============================================================================
LINE CONNECTION
=============================================================================

This module wraps a connected client socket with the four operations the
chat protocol needs:

    read_line()            next line, None at end of stream
    write_line(text)       one line out, True if it was sent
    set_idle_timeout(s)    how long read_line() may block
    close()                release the socket (idempotent)

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client typing two commands:

    send("list\n")
    send("help\n")

may be received as any of:

    recv() → "list\nhelp\n"     (both combined)
    recv() → "li"               (partial)
    recv() → "st\nhelp\n"       (rest of first + second)

So received bytes are kept in a buffer and split on "\n". Anything after
the first newline stays in the buffer for the next read_line() call.

=============================================================================
SLOW READERS
=============================================================================

A client that stops reading lets its socket send buffer fill up, after
which sendall() blocks. A line therefore gets at most `write_timeout`
seconds to leave. When that runs out, or the send fails, the stream is
marked broken: part of the line may already be on the wire, so nothing more
is written to it and the owner is expected to close it.

=============================================================================
CONCURRENT WRITERS
=============================================================================

Only the session's own worker thread reads from a connection, but ANY
session may write to it (broadcasts and direct messages are written by the
sender's thread). Writes are therefore serialized with a per-connection
lock so two deliveries never interleave inside one line.

    ┌──────────────┐   write_line()   ┌──────────────────────────┐
    │ alice worker │ ───────────────► │                          │
    └──────────────┘                  │  bob's LineConnection    │
    ┌──────────────┐   write_line()   │  (_write_lock)           │
    │ carol worker │ ───────────────► │                          │
    └──────────────┘                  └────────────┬─────────────┘
                                                   │ read_line()
                                          ┌────────▼────────┐
                                          │   bob worker    │
                                          └─────────────────┘

=============================================================================
"""

import select
import socket
import threading
import time
import logging
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..errors import SessionTimeout, TransportFailure


logger = logging.getLogger(__name__)


@dataclass
class LineConnection:
    """
    A client socket speaking a newline-delimited text protocol.

    Attributes:
        socket: The connected client socket.
        address: Peer (ip, port) tuple.
        id: Short unique identifier (for logging).
        encoding: Text encoding of the protocol.
        idle_timeout: Current read timeout in seconds (None = block forever).
        write_timeout: Seconds one write_line() may take (None = no bound).
        max_line_length: Longest line accepted before the stream is
                         considered broken.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    encoding: str = "utf-8"
    idle_timeout: Optional[float] = None
    write_timeout: Optional[float] = None
    max_line_length: int = 64 * 1024

    # Internal state
    _buffer: bytes = field(default=b"", repr=False)
    _closed: bool = field(default=False, repr=False)
    _broken: bool = field(default=False, repr=False)
    _write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.idle_timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def peer(self) -> str:
        """Peer address as "ip:port"."""
        return f"{self.address[0]}:{self.address[1]}"

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def is_broken(self) -> bool:
        """True once a write failed or timed out."""
        return self._broken

    # =========================================================================
    # TIMEOUTS
    # =========================================================================

    def set_idle_timeout(self, seconds: Optional[float]) -> None:
        """
        Set how long read_line() may wait for the next line.

        The socket timeout applies per recv() call, and every line needs
        at least one recv(), so a peer that sends nothing at all is cut off
        after `seconds`.
        """
        self.idle_timeout = seconds
        if self._closed:
            return
        try:
            self.socket.settimeout(seconds)
        except OSError as e:
            logger.warning(f"[{self.id}] Could not set idle timeout: {e}")

    # =========================================================================
    # READING
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """
        Read the next line, without its terminator.

        A trailing "\\r" is stripped so telnet-style clients work too.

        Returns:
            The line, or None if the peer closed the stream. A final line
            without a newline is still returned before None.

        Raises:
            SessionTimeout: No data arrived within idle_timeout.
            TransportFailure: The stream broke, or a line grew past
                              max_line_length.
        """
        try:
            while b"\n" not in self._buffer:
                chunk = self.socket.recv(4096)
                if not chunk:
                    return self._drain_partial_line()

                self._buffer += chunk

                if len(self._buffer) > self.max_line_length:
                    raise TransportFailure(
                        f"Line too long: more than {self.max_line_length} bytes"
                    )
        except socket.timeout:
            raise SessionTimeout(
                f"No input for {self.idle_timeout} seconds"
            ) from None
        except OSError as e:
            if self._closed:
                return None
            raise TransportFailure(f"Read failed: {e}") from e

        raw, _, self._buffer = self._buffer.partition(b"\n")
        return self._decode(raw)

    def _drain_partial_line(self) -> Optional[str]:
        if not self._buffer:
            return None
        raw, self._buffer = self._buffer, b""
        return self._decode(raw)

    def _decode(self, raw: bytes) -> str:
        return raw.decode(self.encoding, errors="replace").rstrip("\r")

    # =========================================================================
    # WRITING
    # =========================================================================

    def write_line(self, text: str) -> bool:
        """
        Send one line, appending the newline.

        With `write_timeout` set, the whole line must leave within that
        many seconds. The bound relies on the socket having a read timeout
        (sessions always set one), which keeps the descriptor non-blocking.

        Returns:
            True if the line was sent, False if the connection is closed,
            broken, or the send failed or timed out. Failures are logged,
            never raised: a dead recipient must not break the sender's
            command.
        """
        data = (text + "\n").encode(self.encoding)

        with self._write_lock:
            if self._closed or self._broken:
                return False
            try:
                if self.write_timeout is None:
                    self.socket.sendall(data)
                else:
                    self._send_within(data, self.write_timeout)
            except OSError as e:
                self._broken = True
                logger.warning(f"[{self.id}] Send failed: {e}")
                return False

        return True

    def _send_within(self, data: bytes, seconds: float) -> None:
        """sendall() with a deadline. Raises socket.timeout when it passes."""
        deadline = time.monotonic() + seconds
        view = memoryview(data)

        while view:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout(f"write stalled for {seconds} seconds")

            _, writable, _ = select.select([], [self.socket], [], remaining)
            if not writable:
                raise socket.timeout(f"write stalled for {seconds} seconds")

            sent = self.socket.send(view)
            view = view[sent:]

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the connection. Safe to call more than once and from any
        thread.

        shutdown(SHUT_RDWR) comes first: closing a socket does not wake a
        thread blocked in recv() on it, shutting it down does (recv()
        returns b""). That is how a session blocked in read_line() is
        released when the server stops.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.close()
        except OSError as e:
            logger.debug(f"[{self.id}] Socket close failed: {e}")

        logger.debug(f"[{self.id}] Connection to {self.peer} closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
