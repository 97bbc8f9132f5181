"""
=============================================================================
LINECHAT - Multi-User Text Line Chat Server and Client
=============================================================================

A TCP chat service speaking a small line protocol. Clients connect, pick
a username, then broadcast, message each other directly, list who is
online and leave.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    linechat/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # Server CLI (python -m linechat)
    ├── server.py            # ChatServer orchestrator
    ├── session.py           # Per-connection state machine
    ├── executor.py          # Command operations of one session
    ├── registry.py          # Shared directory of sessions
    ├── config.py            # ServerConfig / ClientConfig
    ├── errors.py            # Exception hierarchy
    ├── logging.py           # text / json log output
    ├── core/                # Networking building blocks
    │   ├── connection.py    # Line-oriented socket wrapper
    │   ├── socket_server.py # Listener + admission control
    │   └── thread_pool.py   # Fixed-size worker pool
    ├── protocol/            # Wire protocol
    │   ├── commands.py      # Client command grammar
    │   └── responses.py     # Server reply formats
    └── client/              # Interactive client (python -m linechat.client)

=============================================================================
QUICK START
=============================================================================

    from linechat import ChatServer, ServerConfig

    server = ChatServer(ServerConfig(port=53333, max_sessions=10))
    server.run()

Then, from another terminal:

    python -m linechat.client localhost 53333

=============================================================================
"""

__version__ = "1.0.0"

from .config import ClientConfig, ServerConfig
from .server import ChatServer, create_server

__all__ = ["ChatServer", "ServerConfig", "ClientConfig", "create_server", "__version__"]
