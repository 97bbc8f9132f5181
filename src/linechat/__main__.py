"""
=============================================================================
CHAT SERVER CLI ENTRY POINT
=============================================================================

    # Run with defaults (127.0.0.1:53333, 10 sessions)
    python -m linechat

    # Custom port, listen on all interfaces
    python -m linechat --host 0.0.0.0 --port 4000

    # Smaller room, shorter timeouts, JSON logs
    python -m linechat -m 3 --session-timeout 60 --log-format json

Settings not given on the command line come from LINECHAT_* environment
variables (or a .env file), then from the defaults in ServerConfig.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from .errors import ChatError
from .server import ChatServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linechat",
        description="Multi-user text line chat server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m linechat                           # Run with defaults
  python -m linechat --port 4000               # Custom port
  python -m linechat --host 0.0.0.0            # Listen on all interfaces
  python -m linechat --max-sessions 3          # Smaller chat room
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 53333)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # SESSION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-sessions", "-m",
        type=int,
        default=None,
        help="Maximum concurrent clients, also the worker count (default: 10)"
    )

    parser.add_argument(
        "--handshake-timeout",
        type=float,
        default=None,
        help="Seconds a client may take to register (default: 10)"
    )

    parser.add_argument(
        "--session-timeout",
        type=float,
        default=None,
        help="Seconds a registered client may stay silent (default: 300)"
    )

    parser.add_argument(
        "--write-timeout",
        type=float,
        default=None,
        help="Seconds one outgoing line may take before the client is dropped (default: 5)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Log output format (default: text)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"linechat {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment-based config, overridden by the arguments that were given."""
    config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "max_sessions": args.max_sessions,
        "handshake_timeout": args.handshake_timeout,
        "session_timeout": args.session_timeout,
        "write_timeout": args.write_timeout,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    return config


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        server = ChatServer(config_from_args(args))
        server.run()
    except (ChatError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
