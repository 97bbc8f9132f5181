"""
=============================================================================
SESSION REGISTRY
=============================================================================

The one piece of state every session shares. It knows two groups of
sessions:

    named     username → Session    logged in, reachable by name
    unnamed   [Session, ...]        connected, still in the handshake

A live session is in exactly one of the two groups. Registration moves it
from unnamed to named; teardown removes it from whichever group holds it.

=============================================================================
ONE LOCK, WHOLE OPERATIONS
=============================================================================

Every public method takes the same lock for its ENTIRE check-then-act
sequence. For the delivery operations that sequence picks the recipients;
the writes themselves happen after the lock is released:

    broadcast(sender, line)
        with lock:
            if nothing registered: return False
            recipients = every named session except sender
        for each recipient: recipient.send(line)
        close every recipient whose write failed

A session that registered before a broadcast started receives it, one that
left before it started never does, and `list` always shows a consistent
snapshot. A client that stops reading only stalls the sender that is
writing to it, for at most the connection's write timeout, and is then
disconnected. Register, list and teardown never wait on a socket.

Callers never see the underlying dict and list, only these atomic
operations.

=============================================================================
"""

import logging
import threading
from typing import TYPE_CHECKING, Optional

from .errors import NameConflict

if TYPE_CHECKING:
    from .session import Session


logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Thread-safe directory of connected sessions.

    Usage:
        registry = SessionRegistry()
        registry.add_unnamed(session)
        registry.register(session, "alice")     # NameConflict if taken
        registry.broadcast(session, "300 msg_fromalicehi")
        registry.remove(session)
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._named: dict[str, "Session"] = {}
        self._unnamed: list["Session"] = []

    # =========================================================================
    # MEMBERSHIP
    # =========================================================================

    def add_unnamed(self, session: "Session") -> None:
        """Track a freshly accepted session that has no username yet."""
        with self._lock:
            if session not in self._unnamed:
                self._unnamed.append(session)

    def register(self, session: "Session", name: str) -> None:
        """
        Give `session` the username `name`.

        The check for a free name, the move out of the unnamed list and
        the name assignment on the session happen under one lock, so two
        sessions racing for the same name cannot both win.

        Raises:
            NameConflict: If another session already holds `name`.
        """
        with self._lock:
            holder = self._named.get(name)
            if holder is not None and holder is not session:
                raise NameConflict(name)

            if session in self._unnamed:
                self._unnamed.remove(session)

            session.assign_username(name)
            self._named[name] = session

        logger.debug(f"[{session.id}] Registered as {name}")

    def remove(self, session: "Session") -> bool:
        """
        Forget `session`, wherever it is tracked.

        Returns:
            True if the session was found.
        """
        with self._lock:
            name = session.username
            if name is not None and self._named.get(name) is session:
                del self._named[name]
                return True

            if session in self._unnamed:
                self._unnamed.remove(session)
                return True

        return False

    # =========================================================================
    # QUERIES
    # =========================================================================

    def usernames(self) -> list[str]:
        """Sorted snapshot of every registered username."""
        with self._lock:
            return sorted(self._named)

    def get(self, name: str) -> Optional["Session"]:
        with self._lock:
            return self._named.get(name)

    def all_sessions(self) -> list["Session"]:
        """Snapshot of every tracked session, named first."""
        with self._lock:
            return list(self._named.values()) + list(self._unnamed)

    @property
    def unnamed_count(self) -> int:
        with self._lock:
            return len(self._unnamed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._named)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._named

    # =========================================================================
    # DELIVERY
    # =========================================================================

    def broadcast(self, sender: "Session", line: str) -> bool:
        """
        Deliver `line` to every registered session except `sender`.

        Recipients whose write fails are disconnected.

        Returns:
            False if nobody is registered (nothing is sent), True otherwise.
        """
        with self._lock:
            if not self._named:
                return False
            recipients = [s for s in self._named.values() if s is not sender]

        self._deliver(recipients, line)
        return True

    def send_to(self, recipient: str, line: str) -> bool:
        """
        Deliver `line` to the session registered as `recipient`.

        Returns:
            False if no such user is registered, or if the write failed (the
            recipient is then disconnected).
        """
        with self._lock:
            session = self._named.get(recipient)
        if session is None:
            return False

        return not self._deliver([session], line)

    def _deliver(self, recipients: list["Session"], line: str) -> list["Session"]:
        """Write `line` to each recipient, close the ones that failed."""
        failed = [session for session in recipients if not session.send(line)]

        for session in failed:
            if session.is_connected:
                logger.warning(f"[{session.id}] Delivery to {session.username} failed, disconnecting")
                session.close("delivery failed")

        return failed
