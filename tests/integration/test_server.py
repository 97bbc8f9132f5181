"""
End-to-end tests against a running ChatServer.
"""

import io
import logging
import threading
import time

from linechat.client import ChatClient
from linechat.config import ClientConfig
from linechat.protocol import DISCONNECT_NOTICE, INVALID_COMMAND_REPLY, LIST_HEADER, ROOM_FULL_NOTICE


class TestChatScenario:
    """Two users chatting."""

    def test_alice_and_bob(self, running_server, wait_for):
        bob = running_server.connect()
        assert bob.register("bob") == "200 ok bob successfully registerred"

        alice = running_server.connect()
        assert alice.register("alice") == "200 ok alice successfully registerred"

        alice.send("send_all hello")
        assert bob.recv() == "300 msg_fromalicehello"

        alice.send("bye")
        assert alice.recv() == DISCONNECT_NOTICE
        assert alice.recv() is None

        bob.send("list")
        assert bob.recv_lines(2) == [LIST_HEADER, "bob"]

    def test_sender_does_not_receive_own_broadcast(self, running_server):
        alice = running_server.connect()
        bob = running_server.connect()
        alice.register("alice")
        bob.register("bob")

        alice.send("send_all hi")
        alice.send("list")

        assert alice.recv_lines(3) == [LIST_HEADER, "alice", "bob"]
        assert bob.recv() == "300 msg_fromalicehi"

    def test_direct_message(self, running_server):
        alice = running_server.connect()
        bob = running_server.connect()
        alice.register("alice")
        bob.register("bob")

        bob.send("send_to alice see you later")

        assert alice.recv() == "300 msg_frombobsee you later"
        assert bob.recv() == "200 ok message to alice sent successfully."

    def test_direct_message_to_ghost(self, running_server):
        alice = running_server.connect()
        alice.register("alice")

        alice.send("send_to ghost hi")

        assert alice.recv() == "100 err ghost does not exists!"

    def test_name_taken(self, running_server):
        first = running_server.connect()
        second = running_server.connect()
        first.register("alice")

        assert second.register("alice") == "100 err alice already taken!"
        assert second.register("alice2") == "200 ok alice2 successfully registerred"

    def test_handshake_rejects_chat_commands(self, running_server):
        client = running_server.connect()

        client.send("list")
        assert client.recv() == INVALID_COMMAND_REPLY

        client.send("")
        assert client.recv() == INVALID_COMMAND_REPLY

        assert client.register("carol") == "200 ok carol successfully registerred"


class TestAdmission:
    """Connection limit."""

    def test_room_full(self, running_server, wait_for):
        server = running_server.server
        admitted = [running_server.connect() for _ in range(3)]
        assert wait_for(lambda: server.active_sessions == 3)

        extra = running_server.connect()

        assert extra.recv() == ROOM_FULL_NOTICE
        assert extra.recv() is None
        assert len(server.registry.all_sessions()) == 3

        admitted[0].send("bye")
        assert admitted[0].recv() == DISCONNECT_NOTICE
        assert wait_for(lambda: server.active_sessions == 2)

        late = running_server.connect()
        assert late.register("late") == "200 ok late successfully registerred"


class TestTimeouts:
    """Idle sessions are evicted."""

    def test_handshake_timeout(self, start_server, wait_for):
        running = start_server(handshake_timeout=0.3)
        client = running.connect()

        assert client.recv() == DISCONNECT_NOTICE
        assert client.recv() is None
        assert wait_for(lambda: running.server.active_sessions == 0)

    def test_active_timeout(self, start_server, wait_for):
        running = start_server(session_timeout=0.3)
        client = running.connect()
        client.register("sleepy")

        assert client.recv() == DISCONNECT_NOTICE
        assert client.recv() is None
        assert wait_for(lambda: "sleepy" not in running.server.registry)


class TestShutdown:
    """Server shutdown."""

    def test_shutdown_disconnects_clients(self, running_server, wait_for):
        alice = running_server.connect()
        alice.register("alice")
        pending = running_server.connect()
        assert wait_for(lambda: running_server.server.active_sessions == 2)

        running_server.server.shutdown()

        assert alice.recv() == DISCONNECT_NOTICE
        assert alice.recv() is None
        assert pending.recv() == DISCONNECT_NOTICE
        assert wait_for(lambda: running_server.server.active_sessions == 0)
        assert not running_server.server.is_running

    def test_shutdown_logs_pool_stats(self, running_server, caplog):
        caplog.set_level(logging.INFO, logger="linechat")

        running_server.server.shutdown()

        assert any("Worker pool stats" in r.getMessage() for r in caplog.records)


class TestClientEndToEnd:
    """The interactive client against the real server."""

    def test_client_session(self, running_server):
        host, port = running_server.address
        out, err = io.StringIO(), io.StringIO()
        client = ChatClient(
            ClientConfig(host=host, port=port),
            console_in=io.StringIO("user alice\nlist\nbye\n"),
            console_out=out,
            console_err=err,
        )

        client.run()

        lines = out.getvalue().splitlines()
        assert "200 ok alice successfully registerred" in lines
        assert LIST_HEADER in lines
        assert lines[-1] == DISCONNECT_NOTICE
        assert not client.is_connected


class TestSlowReader:
    """A client that stops reading."""

    def test_stalled_reader_does_not_block_others(self, start_server, wait_for):
        running = start_server(session_timeout=30.0, write_timeout=0.5)
        bob = running.connect()
        assert bob.register("bob") == "200 ok bob successfully registerred"
        alice = running.connect()
        assert alice.register("alice") == "200 ok alice successfully registerred"

        # bob never reads; the flood is far more than the socket buffers hold
        body = "x" * 60000

        def flood():
            for _ in range(400):
                if not alice.send(f"send_all {body}"):
                    return

        flooder = threading.Thread(target=flood, daemon=True)
        flooder.start()

        carol = running.connect()
        started = time.monotonic()
        carol.send("user carol")
        reply = carol.recv()
        while reply is not None and reply.startswith("300 "):
            reply = carol.recv()
        elapsed = time.monotonic() - started

        assert reply == "200 ok carol successfully registerred"
        assert elapsed < 1.0

        assert wait_for(lambda: "bob" not in running.server.registry, timeout=10.0)
        assert "alice" in running.server.registry
        flooder.join(timeout=10.0)
