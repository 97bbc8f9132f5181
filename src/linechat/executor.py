"""
Command execution for one session.

A CommandExecutor is created together with its Session and performs the
commands that session's client sends. Operations touching other sessions
go through the SessionRegistry, so they are atomic with respect to
registrations and departures.

    ┌───────────┬──────────────────────────────────────────────────────┐
    │ Command   │ Effect                                               │
    ├───────────┼──────────────────────────────────────────────────────┤
    │ user      │ claim a name (reply to caller)                       │
    │ send_all  │ deliver to every other logged-in user                │
    │ send_to   │ deliver to one user (confirmation/error to caller)   │
    │ list      │ header + one username per line (caller only)         │
    │ help      │ usage lines (caller only)                            │
    │ bye       │ close the session                                    │
    │ (invalid) │ "404 Invalid command!" (caller only)                 │
    └───────────┴──────────────────────────────────────────────────────┘
"""

import logging
from typing import TYPE_CHECKING, Callable, Optional

from .errors import NameConflict
from .protocol import (
    INVALID_COMMAND_REPLY,
    LIST_HEADER,
    Command,
    CommandTag,
    ServerResponse,
    format_broadcast,
    format_direct,
    help_text,
)
from .registry import SessionRegistry

if TYPE_CHECKING:
    from .session import Session


logger = logging.getLogger(__name__)


class CommandExecutor:
    """Runs commands on behalf of one session."""

    def __init__(self, session: "Session", registry: SessionRegistry):
        self.session = session
        self.registry = registry

        self._handlers: dict[CommandTag, Callable[[Command], Optional[bool]]] = {
            CommandTag.REGISTER: lambda cmd: self.register(cmd.username),
            CommandTag.SEND_ALL: lambda cmd: self.send_all(cmd.body),
            CommandTag.SEND_TO: lambda cmd: self.send_to(cmd.username, cmd.body),
            CommandTag.LIST: lambda cmd: self.list_users(),
            CommandTag.QUIT: lambda cmd: self.quit(),
            CommandTag.HELP: lambda cmd: self.help(),
            CommandTag.INVALID: lambda cmd: self.invalid(),
        }

    @property
    def _log_prefix(self) -> str:
        return f"[{self.session.id}]"

    def execute(self, command: Command) -> Optional[bool]:
        """
        Dispatch a parsed command to its operation.

        Returns:
            Whatever the operation returns (a success flag for register,
            send_all and send_to, None otherwise).
        """
        return self._handlers[command.tag](command)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def register(self, name: str) -> bool:
        """
        Claim `name` for the session and tell the client how it went.

        Returns:
            True if the name was free, False if another session holds it.
        """
        try:
            self.registry.register(self.session, name)
        except NameConflict:
            logger.info(f"{self._log_prefix} Username {name} already taken")
            self.session.send(ServerResponse.REGISTER.error(name))
            return False

        logger.info(
            f"{self._log_prefix} {self.session.peer} logged in as {name}",
            extra={"session_id": self.session.id, "username": name},
        )
        self.session.send(ServerResponse.REGISTER.success(name))
        return True

    def list_users(self) -> None:
        """Send the registered usernames to the caller."""
        names = self.registry.usernames()
        self.session.send(LIST_HEADER)
        for name in names:
            self.session.send(name)

    def send_all(self, body: str) -> bool:
        """
        Broadcast `body` to every other logged-in user.

        Returns:
            False if nobody is registered.
        """
        line = format_broadcast(self.session.username, body)
        delivered = self.registry.broadcast(self.session, line)
        if delivered:
            logger.debug(f"{self._log_prefix} Broadcast from {self.session.username}")
        return delivered

    def send_to(self, recipient: str, body: str) -> bool:
        """
        Deliver `body` to `recipient` and confirm to the caller.

        Returns:
            False if `recipient` is not logged in or could not be written
            to (the caller gets an error line instead of a confirmation).
        """
        line = format_direct(self.session.username, body)

        if not self.registry.send_to(recipient, line):
            logger.debug(f"{self._log_prefix} No such recipient: {recipient}")
            self.session.send(ServerResponse.SEND_TO.error(recipient))
            return False

        self.session.send(ServerResponse.SEND_TO.success(recipient))
        return True

    def quit(self) -> None:
        self.session.close("client quit")

    def help(self) -> None:
        for usage in help_text():
            self.session.send(usage)

    def invalid(self) -> None:
        self.session.send(INVALID_COMMAND_REPLY)
