"""
=============================================================================
COMMAND GRAMMAR
=============================================================================

Client input is one command per line. Every command is a lowercase keyword,
optionally followed by arguments separated by single spaces:

    ┌──────────────────────────────┬─────────────────────────┬────────────┐
    │ Line                         │ Command                 │ Phase      │
    ├──────────────────────────────┼─────────────────────────┼────────────┤
    │ user <name> [anything]       │ REGISTER                │ handshake  │
    │ send_all <text>              │ SEND_ALL                │ active     │
    │ send_to <name> <text>        │ SEND_TO                 │ active     │
    │ list                         │ LIST                    │ active     │
    │ bye                          │ QUIT                    │ both       │
    │ help                         │ HELP                    │ active     │
    └──────────────────────────────┴─────────────────────────┴────────────┘

    <name>  = [a-z0-9_-]{3,15}
    <text>  = the rest of the line (may be empty, may contain spaces)

Keywords are case-sensitive and the whole line must match, so "List",
" list" and "list " are all invalid.

Everything in this module is a pure function over strings. Who is allowed
to take a name, how long a client may idle and how many clients fit on the
server are decided elsewhere.

=============================================================================
PARSING FLOW
=============================================================================

    raw line ──► classify(line, phase) ──► CommandTag
                        │
                        └── no match ──► InvalidCommand

    CommandTag + line ──► extract_username / extract_recipient / extract_body

    parse(line, phase) does all of the above and never raises; lines that
    do not fit come back as a Command tagged INVALID.

=============================================================================
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import InvalidCommand, MalformedArguments


USERNAME_PATTERN = r"[a-z0-9_-]{3,15}"
"""Characters and length allowed in a username."""

BROADCAST_PREFIX = "300 msg_from"


class Phase(Enum):
    """The two phases a session can be reading commands in."""

    HANDSHAKE = "handshake"   # Connected, no username yet
    ACTIVE = "active"         # Registered, chatting


class CommandTag(Enum):
    """
    Closed set of commands understood by the server.

    Each member carries the keyword, a usage line for `help` and the
    regular expression the whole input line has to match. INVALID has no
    grammar; it tags lines that matched nothing.
    """

    REGISTER = (
        "user",
        "Register: user <username>",
        rf"user (?P<name>{USERNAME_PATTERN})(?: .*)?",
    )
    SEND_ALL = (
        "send_all",
        "Message all users: send_all <single line message>",
        r"send_all (?P<body>.*)",
    )
    SEND_TO = (
        "send_to",
        "Message specific user: send_to <username> <single line message>",
        rf"send_to (?P<name>{USERNAME_PATTERN}) (?P<body>.*)",
    )
    LIST = (
        "list",
        "List currently connected clients: list (no arguments needed)",
        r"list",
    )
    QUIT = (
        "bye",
        "Quit: bye (no arguments needed)",
        r"bye",
    )
    HELP = (
        "help",
        "List available commands: help (no arguments needed)",
        r"help",
    )
    INVALID = ("", "", None)

    def __init__(self, keyword: str, usage: str, pattern: Optional[str]):
        self.keyword = keyword
        self.usage = usage
        self._regex = re.compile(pattern) if pattern else None

    def match(self, line: str) -> Optional["re.Match[str]"]:
        """Full-line match of `line` against this command's grammar."""
        if self._regex is None:
            return None
        return self._regex.fullmatch(line)


# Commands accepted in each phase, in matching order
PHASE_COMMANDS = {
    Phase.HANDSHAKE: (CommandTag.REGISTER, CommandTag.QUIT),
    Phase.ACTIVE: (
        CommandTag.SEND_ALL,
        CommandTag.SEND_TO,
        CommandTag.LIST,
        CommandTag.QUIT,
        CommandTag.HELP,
    ),
}

_PHASE_HINTS = {
    Phase.HANDSHAKE: "Type 'user <username>' to register in the chat or 'bye' to quit.",
    Phase.ACTIVE: "Type 'help' for the list of available commands.",
}


@dataclass(frozen=True)
class Command:
    """
    One parsed input line.

    Attributes:
        tag: Which command the line is.
        line: The raw line as received.
        username: Name argument of REGISTER / SEND_TO, otherwise None.
        body: Message text of SEND_ALL / SEND_TO, otherwise None.
        error: Why the line was tagged INVALID, otherwise None.
    """

    tag: CommandTag
    line: str
    username: Optional[str] = None
    body: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.tag is not CommandTag.INVALID


def classify(line: str, phase: Phase) -> CommandTag:
    """
    Find the command a line represents in the given phase.

    Args:
        line: One input line without its line terminator.
        phase: The phase the session is currently in.

    Returns:
        The first CommandTag of the phase whose grammar matches.

    Raises:
        InvalidCommand: If no grammar rule of the phase matches. The
                        message names the syntax expected in that phase.
    """
    for tag in PHASE_COMMANDS[phase]:
        if tag.match(line):
            return tag
    raise InvalidCommand(f"Invalid command! {_PHASE_HINTS[phase]}", line)


def extract_recipient(line: str) -> str:
    """
    Return the recipient name of a `send_to` line.

    Raises:
        MalformedArguments: If the line is not a well-formed send_to.
    """
    match = CommandTag.SEND_TO.match(line)
    if match is None:
        raise MalformedArguments("send_to command arguments mismatch!", line)
    return match.group("name")


def extract_username(line: str) -> str:
    """
    Return the requested name of a `user` line.

    Raises:
        MalformedArguments: If the line is not a well-formed user command.
    """
    match = CommandTag.REGISTER.match(line)
    if match is None:
        raise MalformedArguments("user command arguments mismatch!", line)
    return match.group("name")


def extract_body(tag: CommandTag, line: str) -> str:
    """
    Return the message text carried by a send_all / send_to line.

    The text is everything after the separating space:

        send_all hello there     → "hello there"
        send_to bob see you      → "see you"

    Raises:
        ValueError: If `tag` is not a message-carrying command.
        MalformedArguments: If the line does not match the tag's grammar.
    """
    if tag not in (CommandTag.SEND_ALL, CommandTag.SEND_TO):
        raise ValueError(f"Unexpected command: {tag.name}")

    match = tag.match(line)
    if match is None:
        raise MalformedArguments(f"{tag.keyword} command arguments mismatch!", line)
    return match.group("body")


def parse(line: str, phase: Phase) -> Command:
    """
    Parse a line into a Command. Never raises.

    Lines that match nothing in the phase come back tagged INVALID with the
    reason in `error`.
    """
    try:
        tag = classify(line, phase)
    except InvalidCommand as e:
        return Command(tag=CommandTag.INVALID, line=line, error=str(e))

    if tag is CommandTag.REGISTER:
        return Command(tag=tag, line=line, username=extract_username(line))

    if tag is CommandTag.SEND_TO:
        return Command(
            tag=tag,
            line=line,
            username=extract_recipient(line),
            body=extract_body(tag, line),
        )

    if tag is CommandTag.SEND_ALL:
        return Command(tag=tag, line=line, body=extract_body(tag, line))

    return Command(tag=tag, line=line)


def is_valid_command(line: str, phase: Phase) -> bool:
    """True if `line` is a valid command in `phase`."""
    return any(tag.match(line) for tag in PHASE_COMMANDS[phase])


def format_broadcast(sender: str, body: str) -> str:
    """Wire text delivered to every other user for `send_all`."""
    return f"{BROADCAST_PREFIX}{sender}{body}"


def format_direct(sender: str, body: str) -> str:
    """Wire text delivered to the recipient of `send_to`."""
    return f"{BROADCAST_PREFIX}{sender}{body}"


def help_text() -> list[str]:
    """Usage line of every command, in table order."""
    return [tag.usage for tag in CommandTag if tag is not CommandTag.INVALID]
