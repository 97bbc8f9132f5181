"""
=============================================================================
LISTENER AND ADMISSION CONTROL
=============================================================================

The listener owns the listening socket. It accepts TCP connections on the
caller's thread and decides, before any session exists, whether the chat
room still has space.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create the TCP socket
    2. bind()      Reserve host:port (port 0 = let the OS pick)
    3. listen()    Kernel starts queueing incoming connections
    4. accept()    Loop: one new socket per client
    5. close()     Release the listening socket on shutdown

=============================================================================
ADMISSION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         accept() returns                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   admission.acquire()                                                │
    │        │                                                             │
    │        ├── below limit ──► count += 1                                │
    │        │                   connection_handler(conn)                  │
    │        │                   (session built, submitted to the pool)    │
    │        │                                                             │
    │        └── at limit ─────► CapacityExceeded                          │
    │                            "Chat room full - try again later. :)"    │
    │                            conn.close()                              │
    │                            (no session, no registry, no worker)      │
    │                                                                      │
    │   Session teardown ──► release() ──► count -= 1                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHUTDOWN
=============================================================================

accept() blocks, so flipping a flag is not enough to stop the loop
promptly. shutdown() therefore also opens a throwaway local connection to
the listening socket, which makes the blocked accept() return, and then
closes the listening socket. The accept timeout (1 second) is a fallback
if the dummy connection cannot be made.

SIGINT (Ctrl+C) and SIGTERM (kill, docker stop) call shutdown() when the
listener runs on the main thread. Signal handlers can only be installed
from the main thread, so an embedded listener (tests, other apps) skips
them and must be stopped explicitly.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from ..errors import AcceptFailure, CapacityExceeded, SetupFailure
from ..protocol.responses import ROOM_FULL_NOTICE
from .connection import LineConnection


logger = logging.getLogger(__name__)


class AdmissionCounter:
    """
    Lock-protected count of admitted connections, bounded by `limit`.

    Usage:
        counter = AdmissionCounter(10)
        counter.acquire()      # raises CapacityExceeded at the limit
        ...
        counter.release()
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def acquire(self) -> None:
        """
        Take one slot.

        Raises:
            CapacityExceeded: If `limit` slots are already taken.
        """
        with self._lock:
            if self._count >= self.limit:
                raise CapacityExceeded(self.limit)
            self._count += 1

    def release(self) -> None:
        """Give one slot back. Never drops below zero."""
        with self._lock:
            if self._count == 0:
                logger.warning("Admission counter released more often than acquired")
                return
            self._count -= 1


class SocketServer:
    """
    TCP listener with admission control.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(handler)      Blocks until shutdown                         │
    │        ├──► _create_socket()   SO_REUSEADDR, TCP_NODELAY             │
    │        ├──► bind()             SetupFailure on error                 │
    │        ├──► listen()                                                 │
    │        ├──► _setup_signals()   main thread only                      │
    │        └──► _accept_loop()                                           │
    │                 └──► accept() → admit or reject                      │
    │                                                                      │
    │    release()           Called by session teardown                    │
    │                                                                      │
    │    shutdown()          Idempotent, any thread                        │
    │        ├──► _running = False                                         │
    │        ├──► dummy connect (wakes accept)                             │
    │        └──► close listening socket                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        def handle_connection(conn: LineConnection):
            ...  # must eventually call server.release()

        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: Server configuration (host, port, backlog, max_sessions).

        The socket is created in start(), not here.
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None

        self._running = False
        self._state_lock = threading.RLock()

        # Set once listen() succeeded / once shutdown() ran
        self._ready_event = threading.Event()
        self._shutdown_event = threading.Event()

        self._admission = AdmissionCounter(config.max_sessions)

        # Original signal handlers, restored on cleanup
        self._original_handlers: dict = {}

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the configured one before binding."""
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    @property
    def active_connections(self) -> int:
        """Number of admitted connections that have not released yet."""
        return self._admission.count

    # =========================================================================
    # SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Allow an immediate restart while old sockets sit in TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Chat lines are tiny, send them without waiting for more
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up every second to re-check _running
        sock.settimeout(1.0)

        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that call shutdown()."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def start(self, connection_handler: Callable[[LineConnection], None]):
        """
        Bind, listen and accept connections until shutdown() is called.

        This method BLOCKS.

        Args:
            connection_handler: Receives every admitted connection. From
                                that point the handler owns the admission
                                slot and must call release() once the
                                connection is gone.

        Raises:
            SetupFailure: If the socket cannot be bound.
            AcceptFailure: If accept() fails while the server is running.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise SetupFailure(
                f"Cannot listen on {self.config.host}:{self.config.port}: {e}"
            ) from e

        self._bound_address = self._socket.getsockname()[:2]

        with self._state_lock:
            self._running = True
        self._shutdown_event.clear()

        self._setup_signals()

        host, port = self._bound_address
        logger.info(f"Chat server listening on {host}:{port} (max {self.config.max_sessions} sessions)")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[LineConnection], None]):
        listening = self._socket

        while self._running:
            try:
                client_socket, client_address = listening.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                logger.error(f"Accept error: {e}")
                self.shutdown()
                raise AcceptFailure(f"accept() failed: {e}") from e

            if not self._running:
                # Dummy connection from shutdown(), or a client racing it
                self._close_quietly(client_socket)
                break

            conn = LineConnection(
                socket=client_socket,
                address=client_address,
                encoding=self.config.encoding,
                write_timeout=self.config.write_timeout,
            )
            logger.debug(f"[{conn.id}] Accepted connection from {conn.peer}")

            self._admit(conn, connection_handler)

    def _admit(self, conn: LineConnection, connection_handler: Callable[[LineConnection], None]):
        try:
            self._admission.acquire()
        except CapacityExceeded as e:
            self._reject(conn, e)
            return

        try:
            connection_handler(conn)
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection handler failed: {e}")
            conn.close()
            self.release()

    def _reject(self, conn: LineConnection, error: CapacityExceeded):
        logger.warning(f"[{conn.id}] Rejecting {conn.peer}: {error}")
        conn.write_line(ROOM_FULL_NOTICE)
        conn.close()

    def release(self) -> None:
        """Give back the admission slot of a finished connection."""
        self._admission.release()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self):
        """
        Stop accepting connections. Safe to call more than once and from
        any thread, including a signal handler.

        Connections already admitted are left alone; closing them is the
        orchestrator's job.
        """
        with self._state_lock:
            if not self._running:
                self._shutdown_event.set()
                return
            self._running = False

        logger.info("Shutting down listener...")
        self._shutdown_event.set()

        listening = self._socket
        if listening is None:
            return

        self._wake_accept()

        try:
            listening.close()
        except OSError:
            pass  # Already closed

    def _wake_accept(self):
        host, port = self.address
        if host in ("", "0.0.0.0"):
            host = "127.0.0.1"
        try:
            with socket.create_connection((host, port), timeout=1.0):
                pass
        except OSError as e:
            logger.debug(f"Wake-up connection failed: {e}")

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._ready_event.clear()
        logger.info("Listener stopped")

    @staticmethod
    def _close_quietly(sock: socket.socket):
        try:
            sock.close()
        except OSError:
            pass

    # =========================================================================
    # WAITING (tests / embedding)
    # =========================================================================

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._ready_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown() has been called. False on timeout."""
        return self._shutdown_event.wait(timeout)
