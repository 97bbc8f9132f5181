"""
=============================================================================
CHAT SESSION
=============================================================================

One Session per accepted connection. Its run() method is the body of a
worker thread and walks the connection through three states:

    ┌───────────┐  user <name> (free)  ┌──────────┐
    │ HANDSHAKE │ ───────────────────► │  ACTIVE  │
    └─────┬─────┘                      └────┬─────┘
          │ bye / timeout / EOF / error     │ bye / timeout / EOF / error
          ▼                                 ▼
    ┌──────────────────────────────────────────────┐
    │                    CLOSED                     │
    └──────────────────────────────────────────────┘

HANDSHAKE   read timeout = handshake_timeout (10 s). Only `user <name>`
            and `bye` are understood, anything else gets
            "404 Invalid command!". A taken name gets
            "100 err <name> already taken!" and the client may retry.

ACTIVE      read timeout = session_timeout (300 s). Every line is parsed
            and handed to the CommandExecutor.

CLOSED      entered exactly once through close(), from any thread. The
            teardown steps run in order and each one is attempted even if
            an earlier one failed:

                1. remove from the registry
                2. send "200 Disconnected from the server." if still open
                3. close the connection
                4. on_close callback (gives back the admission slot)

=============================================================================
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from .core.connection import LineConnection
from .errors import SessionTimeout, TransportFailure
from .executor import CommandExecutor
from .protocol import DISCONNECT_NOTICE, CommandTag, Phase, parse
from .registry import SessionRegistry


logger = logging.getLogger(__name__)


class SessionState(Enum):
    HANDSHAKE = "handshake"
    ACTIVE = "active"
    CLOSED = "closed"


class Session:
    """
    A connected chat client.

    Usage:
        session = Session(conn, registry, on_close=lambda s: listener.release())
        registry.add_unnamed(session)
        pool.submit(session.run, on_cancel=session.close)
    """

    def __init__(
        self,
        connection: LineConnection,
        registry: SessionRegistry,
        handshake_timeout: float = 10.0,
        session_timeout: float = 300.0,
        on_close: Optional[Callable[["Session"], None]] = None,
    ):
        self.connection = connection
        self.registry = registry
        self.handshake_timeout = handshake_timeout
        self.session_timeout = session_timeout
        self.on_close = on_close

        self._started_at = time.time()
        self._username: Optional[str] = None
        self._state = SessionState.HANDSHAKE
        self._state_lock = threading.Lock()

        self.executor = CommandExecutor(self, registry)

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, username={self._username!r}, state={self._state.value})"

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def id(self) -> str:
        return self.connection.id

    @property
    def peer(self) -> str:
        return self.connection.peer

    @property
    def username(self) -> Optional[str]:
        return self._username

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is not SessionState.CLOSED

    @property
    def is_logged_in(self) -> bool:
        """True while the session is registered under its username."""
        return self._username is not None and self._state is not SessionState.CLOSED

    @property
    def started_at(self) -> float:
        return self._started_at

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self._started_at

    def _log_extra(self) -> dict:
        return {"session_id": self.id, "username": self._username, "peer": self.peer}

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def assign_username(self, name: str) -> None:
        """
        Attach the username. Called by the registry while it holds its lock.

        Raises:
            ValueError: If the session already has a different name.
        """
        if self._username is not None and self._username != name:
            raise ValueError(f"Session {self.id} is already registered as {self._username}")
        self._username = name

    # =========================================================================
    # WORKER BODY
    # =========================================================================

    def run(self) -> None:
        """Serve the client until it leaves. Always ends in close()."""
        reason = "connection closed"
        logger.info(f"[{self.id}] Session started for {self.peer}", extra=self._log_extra())

        try:
            if self._handshake():
                self._chat()
        except SessionTimeout as e:
            reason = "timeout"
            logger.info(f"[{self.id}] {e}, disconnecting", extra=self._log_extra())
        except TransportFailure as e:
            reason = "transport failure"
            logger.warning(f"[{self.id}] {e}", extra=self._log_extra())
        except Exception as e:
            reason = "internal error"
            logger.exception(f"[{self.id}] Unexpected error: {e}")
        finally:
            self.close(reason)

    def _handshake(self) -> bool:
        """Run the handshake phase. True once a name is registered."""
        self.connection.set_idle_timeout(self.handshake_timeout)

        while self.is_connected:
            line = self.connection.read_line()
            if line is None:
                return False

            command = parse(line, Phase.HANDSHAKE)

            if command.tag is CommandTag.REGISTER:
                if self.executor.register(command.username):
                    return self._enter_active()
            elif command.tag is CommandTag.QUIT:
                self.executor.quit()
                return False
            else:
                logger.debug(f"[{self.id}] Invalid handshake line: {line!r}")
                self.executor.invalid()

        return False

    def _enter_active(self) -> bool:
        with self._state_lock:
            closed = self._state is SessionState.CLOSED
            if not closed:
                self._state = SessionState.ACTIVE

        if closed:
            # Closed while registering: teardown ran before the name existed
            self.registry.remove(self)
            return False

        self.connection.set_idle_timeout(self.session_timeout)
        return True

    def _chat(self) -> None:
        while self.is_connected:
            line = self.connection.read_line()
            if line is None:
                return

            command = parse(line, Phase.ACTIVE)
            if not command.is_valid:
                logger.debug(f"[{self.id}] Invalid command: {line!r}")
            self.executor.execute(command)

    # =========================================================================
    # OUTPUT / TEARDOWN
    # =========================================================================

    def send(self, line: str) -> bool:
        """Write one line to the client. False if it could not be sent."""
        return self.connection.write_line(line)

    def close(self, reason: str = "closed") -> None:
        """
        Tear the session down. Only the first call does anything.

        Args:
            reason: Short description for the log.
        """
        with self._state_lock:
            if self._state is SessionState.CLOSED:
                return
            self._state = SessionState.CLOSED

        try:
            self.registry.remove(self)
        except Exception as e:
            logger.exception(f"[{self.id}] Registry removal failed: {e}")

        try:
            if self.connection.is_open:
                self.connection.write_line(DISCONNECT_NOTICE)
        except Exception as e:
            logger.warning(f"[{self.id}] Disconnect notice failed: {e}")

        try:
            self.connection.close()
        except Exception as e:
            logger.warning(f"[{self.id}] Connection close failed: {e}")

        if self.on_close is not None:
            try:
                self.on_close(self)
            except Exception as e:
                logger.exception(f"[{self.id}] on_close callback failed: {e}")

        who = self._username or self.peer
        logger.info(
            f"[{self.id}] {who} disconnected ({reason}) after {self.age:.1f}s",
            extra=self._log_extra(),
        )
