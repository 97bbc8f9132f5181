"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the chat server can run into has its own exception class.
The classes are grouped by how far the failure is allowed to travel:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ChatError hierarchy                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   FATAL (stop the component that raised them)                        │
    │     SetupFailure       bind / stream setup failed                    │
    │     AcceptFailure      listening socket broke, full shutdown         │
    │     ClientError        client program cannot continue                │
    │                                                                      │
    │   RECOVERED INSIDE ONE SESSION (one reply, session continues)        │
    │     ProtocolViolation  line does not fit the grammar                 │
    │       InvalidCommand     no rule matches in the current phase        │
    │       MalformedArguments rule matched but arguments are unusable     │
    │     NameConflict       username already registered                   │
    │                                                                      │
    │   RECOVERED BY TEARING DOWN ONE SESSION                              │
    │     SessionTimeout     idle read exceeded the phase timeout          │
    │     TransportFailure   stream error while reading                    │
    │                                                                      │
    │   RECOVERED BEFORE A SESSION EXISTS                                  │
    │     CapacityExceeded   admission bound reached, connection refused   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

No error kind crosses from one session to another.
=============================================================================
"""

from typing import Optional


class ChatError(Exception):
    """Base class for all linechat errors."""


class SetupFailure(ChatError):
    """Raised when the listening socket or a session stream cannot be set up."""


class AcceptFailure(ChatError):
    """Raised when the listener's accept() fails while the server is running."""


class ProtocolViolation(ChatError):
    """
    Raised when an input line cannot be used in the current context.

    Carries the offending line so callers can log it without keeping
    their own copy around.
    """

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.line = line


class InvalidCommand(ProtocolViolation):
    """No grammar rule of the current phase matches the line."""


class MalformedArguments(ProtocolViolation):
    """The line names a command but its arguments cannot be extracted."""


class NameConflict(ChatError):
    """Raised when a username is already held by another session."""

    def __init__(self, username: str):
        super().__init__(f"username {username!r} is already taken")
        self.username = username


class SessionTimeout(ChatError):
    """The peer sent nothing for longer than the session's idle timeout."""


class TransportFailure(ChatError):
    """The underlying stream failed while reading."""


class CapacityExceeded(ChatError):
    """The server already serves its maximum number of sessions."""

    def __init__(self, limit: int):
        super().__init__(f"session limit of {limit} reached")
        self.limit = limit


class ClientError(ChatError):
    """The chat client hit an error it cannot recover from."""
