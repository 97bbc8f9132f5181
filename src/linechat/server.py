"""
=============================================================================
CHAT SERVER
=============================================================================

The orchestrator that ties the components together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CHAT SERVER ARCHITECTURE                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   ChatServer    │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────────┐     │
    │    │ SocketServer │    │  ThreadPool  │    │ SessionRegistry  │     │
    │    │ (admission)  │    │ (N workers)  │    │ (shared state)   │     │
    │    └──────┬───────┘    └──────┬───────┘    └────────▲─────────┘     │
    │           │                   │                     │               │
    │           ▼                   ▼                     │               │
    │    ┌──────────────┐    ┌──────────────┐    ┌────────┴─────────┐     │
    │    │LineConnection│───►│   Session    │───►│ CommandExecutor  │     │
    │    └──────────────┘    └──────────────┘    └──────────────────┘     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    1. SocketServer accepts, checks admission (room full → reject)
    2. _handle_connection builds a Session, adds it to the registry's
       unnamed list and submits session.run to the pool
    3. A worker runs the session: handshake, then chat
    4. The session tears itself down; its on_close callback gives the
       admission slot back

=============================================================================
SHUTDOWN
=============================================================================

    1. Listener stops accepting
    2. Every live session is closed (blocked reads return at once)
    3. Pool cancels sessions that never started and joins its workers

=============================================================================
"""

import logging
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core import LineConnection, SocketServer, ThreadPool
from .logging import configure_logging
from .registry import SessionRegistry
from .session import Session


logger = logging.getLogger(__name__)


class ChatServer:
    """
    Multi-user line chat server.

    Usage:
        server = ChatServer(ServerConfig(port=53333))
        server.run()            # Blocks until Ctrl+C / shutdown()

    Embedded (tests):
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready(5)
        host, port = server.address
        ...
        server.shutdown()
    """

    def __init__(self, config: Optional[ServerConfig] = None, setup_logging: bool = True):
        """
        Args:
            config: Server configuration. Defaults are used if not given.
            setup_logging: Whether run() configures logging from the config.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail fast on invalid config

        self._setup_logging = setup_logging

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(size=self.config.max_sessions)
        self._registry = SessionRegistry()

        self._shutdown_lock = threading.Lock()
        self._stopped = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port). The real port once listening, even for port 0."""
        return self._socket_server.address

    @property
    def active_sessions(self) -> int:
        """Admitted connections that have not finished their teardown."""
        return self._socket_server.active_connections

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server accepts connections. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start the server (blocking).

        Raises:
            SetupFailure: If the listening socket cannot be bound.
            AcceptFailure: If accepting connections fails.
        """
        if self._setup_logging:
            configure_logging(self.config.log_level, self.config.log_format)

        self._thread_pool.start()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.shutdown()

    def shutdown(self):
        """Stop the server. Safe to call more than once and from any thread."""
        with self._shutdown_lock:
            if self._stopped:
                return
            self._stopped = True

        logger.info("Shutting down chat server...")

        self._socket_server.shutdown()

        sessions = self._registry.all_sessions()
        for session in sessions:
            session.close("server shutdown")
        if sessions:
            logger.info(f"Closed {len(sessions)} session(s)")

        self._thread_pool.shutdown(wait=False, timeout=self.config.shutdown_timeout)
        logger.info(f"Worker pool stats: {self._thread_pool.stats}")

        logger.info("Chat server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: LineConnection):
        """
        Turn an admitted connection into a running session.

        Called by SocketServer on the accept thread, after the admission
        slot was taken.
        """
        session = Session(
            conn,
            self._registry,
            handshake_timeout=self.config.handshake_timeout,
            session_timeout=self.config.session_timeout,
            on_close=self._on_session_closed,
        )
        self._registry.add_unnamed(session)

        try:
            submitted = self._thread_pool.submit(session.run, on_cancel=session.close)
        except RuntimeError as e:
            logger.warning(f"[{conn.id}] Cannot start session: {e}")
            submitted = False

        if not submitted:
            logger.warning(f"[{conn.id}] No worker available, closing connection")
            session.close("no worker available")

    def _on_session_closed(self, session: Session):
        self._socket_server.release()


def create_server(config: Optional[ServerConfig] = None) -> ChatServer:
    """Factory for ChatServer instances."""
    return ChatServer(config)
