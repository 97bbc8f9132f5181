"""
=============================================================================
INTERACTIVE CHAT CLIENT
=============================================================================

    ┌──────────────┐   console lines    ┌──────────────┐   TCP   ┌────────┐
    │  keyboard    │ ─────────────────► │  ChatClient  │ ◄─────► │ server │
    │  (console_in)│                    │              │         └────────┘
    └──────────────┘                    └──────┬───────┘
                                               │ server lines
                                               ▼
                                        ┌──────────────┐
                                        │ console_out  │
                                        └──────────────┘

1. connect()    open the TCP connection
2. register()   read `user <name>` lines from the console until the server
                accepts one. Lines that are not `user <name>` or `bye` are
                rejected locally and never sent.
3. chat         a forwarder thread sends valid console lines to the server
                while the calling thread prints every server line.
4. disconnect() release the socket. The process is never terminated here:
                what happens after the chat ends is up to the caller.

=============================================================================
"""

import ipaddress
import logging
import socket
import sys
import threading
from typing import Optional, TextIO

from ..config import ClientConfig
from ..core.connection import LineConnection
from ..errors import ClientError, TransportFailure
from ..protocol import CommandTag, Phase, ServerResponse, classify_reply, is_valid_command, parse


logger = logging.getLogger(__name__)


WELCOME_BANNER = (
    "Welcome to Chat Server!\n"
    " Type 'user <username>' to register in the chat. Type 'bye' to close the program."
)
ACTIVE_HINT = "Invalid command! Type 'help' for the list of available commands."


def is_valid_host(host: str) -> bool:
    """True for "localhost" or an IPv4 dotted quad."""
    if host == "localhost":
        return True
    try:
        ipaddress.IPv4Address(host)
    except ValueError:
        return False
    return True


def is_valid_port(value: str) -> bool:
    """True if `value` is a port number between 1 and 65535."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        return False
    return 0 < port < 65536


class ChatClient:
    """
    Console chat client.

    Usage:
        client = ChatClient(ClientConfig(host="localhost", port=53333))
        client.run()    # returns when the chat ends

    console_in / console_out / console_err default to the process's
    standard streams; tests pass io.StringIO objects instead.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        console_in: Optional[TextIO] = None,
        console_out: Optional[TextIO] = None,
        console_err: Optional[TextIO] = None,
    ):
        self.config = config or ClientConfig()
        self.config.validate()

        self.console_in = console_in or sys.stdin
        self.console_out = console_out or sys.stdout
        self.console_err = console_err or sys.stderr

        self._connection: Optional[LineConnection] = None
        self._connected = threading.Event()
        self._logged_in = False
        self._disconnect_lock = threading.Lock()
        self._forwarder: Optional[threading.Thread] = None

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def is_logged_in(self) -> bool:
        return self._logged_in

    # =========================================================================
    # CONSOLE HELPERS
    # =========================================================================

    def _print(self, text: str) -> None:
        print(text, file=self.console_out, flush=True)

    def _print_error(self, text: str) -> None:
        print(text, file=self.console_err, flush=True)

    def _read_console(self) -> Optional[str]:
        line = self.console_in.readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    # =========================================================================
    # CONNECTION
    # =========================================================================

    def connect(self) -> None:
        """
        Open the connection to the server.

        Raises:
            ClientError: If the server cannot be reached.
        """
        address = (self.config.host, self.config.port)
        try:
            sock = socket.create_connection(address, timeout=self.config.connect_timeout)
        except OSError as e:
            raise ClientError(f"Failed to connect to {address[0]}:{address[1]}: {e}") from e

        self._connection = LineConnection(
            socket=sock,
            address=address,
            encoding=self.config.encoding,
        )
        self._connected.set()
        logger.debug(f"Connected to {self._connection.peer}")

    def _send(self, line: str) -> bool:
        if self._connection is None:
            return False
        return self._connection.write_line(line)

    def _receive(self) -> Optional[str]:
        if self._connection is None:
            return None
        return self._connection.read_line()

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(self) -> bool:
        """
        Log in interactively.

        Returns:
            True once the server accepted a username. False if the user
            typed `bye`, the console ran dry or the server hung up.

        Raises:
            ClientError: If the server sends something other than a
                         registration reply (e.g. the room is full).
        """
        self._print(WELCOME_BANNER)

        while self.is_connected:
            line = self._read_console()
            if line is None:
                return False

            command = parse(line, Phase.HANDSHAKE)
            if not command.is_valid:
                self._print_error(command.error)
                continue

            if command.tag is CommandTag.QUIT:
                return False

            # A failed send still leaves the server's last words readable
            self._send(line)

            accepted = self._await_registration_reply()
            if accepted is None:
                return False
            if accepted:
                self._logged_in = True
                return True

        return False

    def _await_registration_reply(self) -> Optional[bool]:
        """True if accepted, False if refused, None if the server hung up."""
        try:
            reply = self._receive()
        except TransportFailure as e:
            logger.warning(f"Connection lost during registration: {e}")
            return None

        if reply is None:
            return None

        if ServerResponse.REGISTER.is_success(reply):
            self._print(reply)
            return True

        if ServerResponse.REGISTER.is_error(reply) or ServerResponse.INVALID_COMMAND.is_error(reply):
            self._print_error(reply)
            return False

        self._print(reply)
        raise ClientError(f"Unexpected reply from server: {reply}")

    # =========================================================================
    # CHAT
    # =========================================================================

    def run(self) -> None:
        """
        Connect, register and chat until the connection ends.

        Raises:
            ClientError: If connecting fails or the server refuses the
                         session.
        """
        self.connect()
        try:
            if not self.register():
                self._print("Program closed. :)")
                return

            self._forwarder = threading.Thread(
                target=self._forward_console, name="ConsoleForwarder", daemon=True
            )
            self._forwarder.start()

            self._print_server_lines()
        finally:
            self.disconnect()

    def _forward_console(self) -> None:
        """
        Send valid chat commands typed on the console.

        Stops after sending `bye`. When the console ends without one,
        `bye` is sent on the user's behalf so the server closes cleanly.
        """
        while self.is_connected:
            line = self._read_console()
            if not self.is_connected:
                break

            if line is None:
                self._send(CommandTag.QUIT.keyword)
                break

            if not is_valid_command(line, Phase.ACTIVE):
                self._print_error(ACTIVE_HINT)
                continue

            if not self._send(line):
                break

            if line == CommandTag.QUIT.keyword:
                break

    def _print_server_lines(self) -> None:
        while self.is_connected:
            try:
                line = self._receive()
            except TransportFailure as e:
                logger.warning(f"Failed to receive input from server: {e}")
                break

            if line is None:
                break

            logger.debug(f"Server: {classify_reply(line).status.value}: {line}")
            self._print(line)

    def disconnect(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._disconnect_lock:
            if not self._connected.is_set() and self._connection is None:
                return
            self._connected.clear()
            connection, self._connection = self._connection, None

        if connection is not None:
            connection.close()
            logger.debug("Disconnected from server")
