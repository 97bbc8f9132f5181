"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from collections import deque
from dataclasses import replace
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from linechat import ChatServer, ServerConfig
from linechat.core.connection import LineConnection
from linechat.registry import SessionRegistry
from linechat.session import Session


@pytest.fixture
def config() -> ServerConfig:
    """Small, fast server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        max_sessions=3,
        handshake_timeout=2.0,
        session_timeout=5.0,
        shutdown_timeout=2.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


# =============================================================================
# IN-MEMORY CONNECTION
# =============================================================================

class FakeConnection:
    """
    Stand-in for LineConnection.

    `lines` is the scripted client input. An Exception instance in the
    script is raised from read_line() instead of being returned. When the
    script runs out, read_line() reports end of stream.
    """

    _next_id = 0

    def __init__(self, lines=(), peer_port: Optional[int] = None):
        FakeConnection._next_id += 1
        self.id = f"fake{FakeConnection._next_id:04d}"
        self.address = ("127.0.0.1", peer_port or 40000 + FakeConnection._next_id)
        self.sent: list[str] = []
        self.timeouts: list = []
        self.closed = False
        self.fail_writes = False
        self._script = deque(lines)

    @property
    def peer(self) -> str:
        return f"{self.address[0]}:{self.address[1]}"

    @property
    def is_open(self) -> bool:
        return not self.closed

    def set_idle_timeout(self, seconds):
        self.timeouts.append(seconds)

    def read_line(self):
        if self.closed or not self._script:
            return None
        item = self._script.popleft()
        if isinstance(item, Exception):
            raise item
        return item

    def write_line(self, text: str) -> bool:
        if self.closed or self.fail_writes:
            return False
        self.sent.append(text)
        return True

    def close(self):
        self.closed = True


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def make_session(registry):
    """Factory: make_session(lines) → Session over a FakeConnection."""

    def factory(lines=(), on_close=None, **kwargs) -> Session:
        session = Session(FakeConnection(lines), registry, on_close=on_close, **kwargs)
        registry.add_unnamed(session)
        return session

    return factory


@pytest.fixture
def logged_in(make_session, registry):
    """Factory: logged_in("alice") → Session already registered as alice."""

    def factory(name: str) -> Session:
        session = make_session()
        registry.register(session, name)
        return session

    return factory


# =============================================================================
# REAL SERVER
# =============================================================================

class LineClient:
    """Blocking test client speaking the line protocol."""

    def __init__(self, address, timeout: float = 5.0):
        sock = socket.create_connection(address, timeout=timeout)
        self.conn = LineConnection(socket=sock, address=address, idle_timeout=timeout)

    def send(self, line: str) -> bool:
        return self.conn.write_line(line)

    def recv(self) -> Optional[str]:
        """Next server line; None once the server closed the connection."""
        return self.conn.read_line()

    def recv_lines(self, count: int) -> list:
        return [self.recv() for _ in range(count)]

    def register(self, name: str) -> str:
        self.send(f"user {name}")
        return self.recv()

    def close(self):
        self.conn.close()


class RunningServer:
    """ChatServer running in a background thread."""

    def __init__(self, server: ChatServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None
        self._clients: list[LineClient] = []

    @property
    def address(self):
        return self.server.address

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def connect(self) -> LineClient:
        client = LineClient(self.address)
        self._clients.append(client)
        return client

    def stop(self):
        for client in self._clients:
            client.close()

        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def start_server(config: ServerConfig) -> Generator:
    """Factory: start_server(**overrides) → started RunningServer."""
    started: list[RunningServer] = []

    def factory(**overrides) -> RunningServer:
        server_config = replace(config, **overrides)
        server = RunningServer(ChatServer(server_config, setup_logging=False))
        server.start()
        started.append(server)
        return server

    yield factory

    for server in started:
        server.stop()


@pytest.fixture
def running_server(start_server) -> RunningServer:
    """A started chat server on an ephemeral port."""
    return start_server()


@pytest.fixture
def wait_for():
    """wait_for(predicate, timeout) → True once `predicate()` holds."""

    def poll(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return poll
