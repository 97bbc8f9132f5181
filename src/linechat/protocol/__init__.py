"""
=============================================================================
LINE PROTOCOL
=============================================================================

The textual protocol spoken between chat clients and the server:

    commands.py    What clients may send (grammar, parsing, formatting)
    responses.py   What the server sends back (reply table, classification)

Both modules are stateless.
=============================================================================
"""

from .commands import (
    USERNAME_PATTERN,
    Command,
    CommandTag,
    Phase,
    classify,
    extract_body,
    extract_recipient,
    extract_username,
    format_broadcast,
    format_direct,
    help_text,
    is_valid_command,
    parse,
)
from .responses import (
    DISCONNECT_NOTICE,
    INVALID_COMMAND_REPLY,
    LIST_HEADER,
    ROOM_FULL_NOTICE,
    Response,
    ServerResponse,
    StatusClass,
    classify_reply,
)

__all__ = [
    "USERNAME_PATTERN",
    "Command",
    "CommandTag",
    "Phase",
    "classify",
    "extract_body",
    "extract_recipient",
    "extract_username",
    "format_broadcast",
    "format_direct",
    "help_text",
    "is_valid_command",
    "parse",
    "DISCONNECT_NOTICE",
    "INVALID_COMMAND_REPLY",
    "LIST_HEADER",
    "ROOM_FULL_NOTICE",
    "Response",
    "ServerResponse",
    "StatusClass",
    "classify_reply",
]
