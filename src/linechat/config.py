"""
=============================================================================
CHAT SERVER / CLIENT CONFIGURATION
=============================================================================

Centralized configuration for both sides of the chat service.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m linechat --port 4000                            │
    │                                                                      │
    │   2. Environment variables (a .env file is loaded first)           │
    │      └── LINECHAT_PORT=4000 python -m linechat                     │
    │                                                                      │
    │   3. Default values (in the dataclasses below)                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A .env file in the working directory is read with python-dotenv before the
environment is consulted. Variables already set in the environment win over
the file.

=============================================================================
TWO TIMEOUT TIERS
=============================================================================

    handshake_timeout   How long an unnamed connection may stay silent.
                        Short, so anonymous sockets cannot pin a worker.

    session_timeout     How long a logged-in user may stay silent.
                        Generous, chat users read more than they type.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_PORT = 53333

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"LINECHAT_{name}", default)


@dataclass
class ServerConfig:
    """
    Configuration for the chat server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, encoding

    ADMISSION / SESSIONS
    - max_sessions, handshake_timeout, session_timeout, write_timeout

    SHUTDOWN
    - shutdown_timeout

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0" - All network interfaces
    """

    port: int = DEFAULT_PORT
    """
    The port number to listen on. 0 lets the OS pick a free port, the real
    port is then available from ChatServer.address.
    """

    backlog: int = 50
    """Maximum number of connections queued by the kernel before accept()."""

    encoding: str = "utf-8"
    """Text encoding of the line protocol."""

    # ─────────────────────────────────────────────────────────────────────
    # ADMISSION / SESSIONS
    # ─────────────────────────────────────────────────────────────────────

    max_sessions: int = 10
    """
    Maximum number of concurrent sessions. This is also the size of the
    worker pool: every admitted connection owns one worker thread.
    """

    handshake_timeout: float = 10.0
    """Seconds an unregistered connection may stay silent."""

    session_timeout: float = 300.0
    """Seconds a logged-in session may stay silent (5 minutes)."""

    write_timeout: float = 5.0
    """
    Seconds one outgoing line may take to leave. A client that stops
    reading fills its socket buffer; once a write to it stalls this long the
    client is disconnected.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    shutdown_timeout: float = 5.0
    """Seconds to wait for worker threads to finish on shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """
    Log format: 'json' or 'text'.
    JSON is better for log aggregators, text for humans.
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        LINECHAT_HOST               Server host (default: 127.0.0.1)
        LINECHAT_PORT               Server port (default: 53333)
        LINECHAT_MAX_SESSIONS       Concurrent sessions (default: 10)
        LINECHAT_HANDSHAKE_TIMEOUT  Seconds before login (default: 10)
        LINECHAT_SESSION_TIMEOUT    Seconds after login (default: 300)
        LINECHAT_WRITE_TIMEOUT      Seconds per outgoing line (default: 5)
        LINECHAT_LOG_LEVEL          Logging level (default: INFO)
        LINECHAT_LOG_FORMAT         text or json (default: text)

        =====================================================================
        """
        load_dotenv()
        return cls(
            host=_env("HOST", "127.0.0.1"),
            port=int(_env("PORT", str(DEFAULT_PORT))),
            max_sessions=int(_env("MAX_SESSIONS", "10")),
            handshake_timeout=float(_env("HANDSHAKE_TIMEOUT", "10")),
            session_timeout=float(_env("SESSION_TIMEOUT", "300")),
            write_timeout=float(_env("WRITE_TIMEOUT", "5")),
            log_level=_env("LOG_LEVEL", "INFO"),
            log_format=_env("LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Configuration is checked once at startup so a bad value fails
        immediately instead of on the first connection.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.handshake_timeout <= 0:
            raise ValueError("handshake_timeout must be > 0")

        if self.session_timeout <= 0:
            raise ValueError("session_timeout must be > 0")

        if self.write_timeout <= 0:
            raise ValueError("write_timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}")


@dataclass
class ClientConfig:
    """Configuration for the interactive chat client."""

    host: str = "localhost"
    port: int = DEFAULT_PORT
    connect_timeout: float = 10.0
    encoding: str = "utf-8"

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Read LINECHAT_SERVER_HOST / LINECHAT_SERVER_PORT (after .env)."""
        load_dotenv()
        return cls(
            host=_env("SERVER_HOST", "localhost"),
            port=int(_env("SERVER_PORT", str(DEFAULT_PORT))),
        )

    def validate(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be > 0")
