"""
Unit tests for the chat client, against a scripted fake server.
"""

import io
import socket
import threading

import pytest

from linechat.client import ChatClient, is_valid_host, is_valid_port
from linechat.client.client import WELCOME_BANNER
from linechat.config import ClientConfig
from linechat.errors import ClientError
from linechat.protocol import ROOM_FULL_NOTICE


class ScriptedServer:
    """
    Accepts one connection, records every received line and answers
    each one from `replies` (a dict line → list of reply lines).
    `greeting` is sent right after accept.
    """

    def __init__(self, replies=None, greeting=()):
        self.replies = replies or {}
        self.greeting = list(greeting)
        self.received = []
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self._sock.settimeout(5.0)
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def port(self) -> int:
        return self._sock.getsockname()[1]

    def _serve(self):
        try:
            conn, _ = self._sock.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(5.0)
            for line in self.greeting:
                conn.sendall((line + "\n").encode())
            reader = conn.makefile("r", encoding="utf-8")
            try:
                for raw in reader:
                    line = raw.rstrip("\n")
                    self.received.append(line)
                    for reply in self.replies.get(line, []):
                        conn.sendall((reply + "\n").encode())
                    if line == "bye":
                        break
            except OSError:
                pass

    def join(self):
        self._thread.join(timeout=5.0)
        self._sock.close()


def make_client(port: int, console: str):
    out, err = io.StringIO(), io.StringIO()
    client = ChatClient(
        ClientConfig(host="127.0.0.1", port=port, connect_timeout=2.0),
        console_in=io.StringIO(console),
        console_out=out,
        console_err=err,
    )
    return client, out, err


class TestValidation:
    """Tests for host/port validation helpers."""

    @pytest.mark.parametrize("host,valid", [
        ("localhost", True),
        ("127.0.0.1", True),
        ("192.168.1.20", True),
        ("256.1.1.1", False),
        ("example.com", False),
        ("", False),
    ])
    def test_is_valid_host(self, host, valid):
        assert is_valid_host(host) is valid

    @pytest.mark.parametrize("port,valid", [
        ("53333", True),
        ("1", True),
        ("0", False),
        ("65536", False),
        ("abc", False),
    ])
    def test_is_valid_port(self, port, valid):
        assert is_valid_port(port) is valid


class TestChatClient:
    """Tests for ChatClient."""

    def test_connect_failure(self, free_port):
        client, _, _ = make_client(free_port, "")

        with pytest.raises(ClientError):
            client.connect()

    def test_register_and_chat(self):
        server = ScriptedServer(replies={
            "user alice": ["200 ok alice successfully registerred"],
            "list": ["200 ok List of Chat Server's clients:", "alice"],
            "bye": ["200 Disconnected from the server."],
        })
        client, out, err = make_client(server.port, "user alice\nlist\nbye\n")

        client.run()
        server.join()

        lines = out.getvalue().splitlines()
        assert lines[:2] == WELCOME_BANNER.splitlines()
        assert "200 ok alice successfully registerred" in lines
        assert "alice" in lines
        assert "200 Disconnected from the server." in lines
        assert server.received == ["user alice", "list", "bye"]
        assert not client.is_connected

    def test_invalid_lines_not_sent(self):
        """Lines failing the grammar never reach the server."""
        server = ScriptedServer(replies={
            "user alice": ["200 ok alice successfully registerred"],
        })
        client, _, err = make_client(server.port, "list\nuser A\nuser alice\ndance\nbye\n")

        client.run()
        server.join()

        assert server.received == ["user alice", "bye"]
        assert "Invalid command!" in err.getvalue()

    def test_name_taken_then_retry(self):
        server = ScriptedServer(replies={
            "user alice": ["100 err alice already taken!"],
            "user alice2": ["200 ok alice2 successfully registerred"],
        })
        client, out, err = make_client(server.port, "user alice\nuser alice2\nbye\n")

        client.run()
        server.join()

        assert "100 err alice already taken!" in err.getvalue()
        assert client.is_logged_in

    def test_bye_during_registration(self):
        """bye ends the program without sending anything."""
        server = ScriptedServer()
        client, out, _ = make_client(server.port, "bye\n")

        client.run()
        server.join()

        assert server.received == []
        assert "Program closed. :)" in out.getvalue()
        assert not client.is_logged_in

    def test_room_full(self):
        server = ScriptedServer(greeting=[ROOM_FULL_NOTICE])
        client, out, _ = make_client(server.port, "user alice\n")

        with pytest.raises(ClientError):
            client.run()
        server.join()

        assert ROOM_FULL_NOTICE in out.getvalue()
        assert not client.is_connected

    def test_console_eof_sends_bye(self):
        server = ScriptedServer(replies={
            "user alice": ["200 ok alice successfully registerred"],
        })
        client, _, _ = make_client(server.port, "user alice\n")

        client.run()
        server.join()

        assert server.received == ["user alice", "bye"]

    def test_disconnect_idempotent(self):
        server = ScriptedServer()
        client, _, _ = make_client(server.port, "")
        client.connect()

        client.disconnect()
        client.disconnect()
        server.join()

        assert not client.is_connected
