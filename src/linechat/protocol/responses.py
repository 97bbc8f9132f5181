"""
=============================================================================
SERVER RESPONSES
=============================================================================

Every line the server writes starts with a three digit status code, in the
spirit of HTTP and SMTP:

    ┌──────┬───────────────┬──────────────────────────────────────────────┐
    │ Code │ Class         │ Example                                      │
    ├──────┼───────────────┼──────────────────────────────────────────────┤
    │ 100  │ error         │ 100 err bob already taken!                   │
    │ 200  │ success       │ 200 ok bob successfully registerred          │
    │ 300  │ info (chat)   │ 300 msg_fromalicehello                       │
    │ 404  │ error         │ 404 Invalid command!                         │
    └──────┴───────────────┴──────────────────────────────────────────────┘

The exact wording is part of the wire contract: clients recognise replies
with the regular expressions kept next to each format below, so a format
and its pattern must always change together.
=============================================================================
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .commands import BROADCAST_PREFIX, USERNAME_PATTERN


DISCONNECT_NOTICE = "200 Disconnected from the server."
ROOM_FULL_NOTICE = "Chat room full - try again later. :)"
LIST_HEADER = "200 ok List of Chat Server's clients:"


class StatusClass(Enum):
    """Coarse classification of a server reply."""

    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class ServerResponse(Enum):
    """
    Reply table: success/error format strings plus matching patterns.

    Formats take the affected username as their only argument.
    """

    REGISTER = (
        "200 ok {} successfully registerred",
        "100 err {} already taken!",
        rf"200 ok {USERNAME_PATTERN} successfully registerred",
        rf"100 err {USERNAME_PATTERN} already taken!",
    )
    SEND_TO = (
        "200 ok message to {} sent successfully.",
        "100 err {} does not exists!",
        rf"200 ok message to {USERNAME_PATTERN} sent successfully\.",
        rf"100 err {USERNAME_PATTERN} does not exists!",
    )
    LIST = (
        LIST_HEADER,
        None,
        re.escape(LIST_HEADER),
        None,
    )
    INVALID_COMMAND = (
        None,
        "404 Invalid command!",
        None,
        r"404 Invalid command!",
    )

    def __init__(
        self,
        success_format: Optional[str],
        error_format: Optional[str],
        success_pattern: Optional[str],
        error_pattern: Optional[str],
    ):
        self.success_format = success_format
        self.error_format = error_format
        self.success_regex = re.compile(success_pattern) if success_pattern else None
        self.error_regex = re.compile(error_pattern) if error_pattern else None

    def success(self, username: str = "") -> str:
        """Formatted success line for `username`."""
        if self.success_format is None:
            raise ValueError(f"{self.name} has no success reply")
        return self.success_format.format(username)

    def error(self, username: str = "") -> str:
        """Formatted error line for `username`."""
        if self.error_format is None:
            raise ValueError(f"{self.name} has no error reply")
        return self.error_format.format(username)

    def is_success(self, line: str) -> bool:
        return bool(self.success_regex and self.success_regex.fullmatch(line))

    def is_error(self, line: str) -> bool:
        return bool(self.error_regex and self.error_regex.fullmatch(line))


INVALID_COMMAND_REPLY = ServerResponse.INVALID_COMMAND.error()

_CHAT_MESSAGE = re.compile(rf"{re.escape(BROADCAST_PREFIX)}(?P<sender>{USERNAME_PATTERN})(?P<body>.*)")


@dataclass(frozen=True)
class Response:
    """A reply line together with its status class."""

    status: StatusClass
    body: str

    def __str__(self) -> str:
        return self.body


def classify_reply(line: str) -> Response:
    """
    Classify one server line.

    Lines starting with "300 " are chat deliveries (INFO). Lines matching a
    known error pattern are ERROR, lines with a known success pattern or the
    generic "200 " prefix are SUCCESS. Anything else (the room-full notice,
    list entries) is INFO.
    """
    if _CHAT_MESSAGE.fullmatch(line):
        return Response(StatusClass.INFO, line)

    for response in ServerResponse:
        if response.is_error(line):
            return Response(StatusClass.ERROR, line)
        if response.is_success(line):
            return Response(StatusClass.SUCCESS, line)

    if line.startswith("200 "):
        return Response(StatusClass.SUCCESS, line)
    if line.startswith("100 ") or line.startswith("404 "):
        return Response(StatusClass.ERROR, line)

    return Response(StatusClass.INFO, line)
