"""
Chat client CLI.

    python -m linechat.client                   # localhost 53333
    python -m linechat.client 192.168.1.20 4000

Missing arguments fall back to LINECHAT_SERVER_HOST / LINECHAT_SERVER_PORT,
then to localhost:53333.
"""

import argparse
import sys

from .. import __version__
from ..config import LOG_LEVELS, ClientConfig
from ..errors import ClientError
from ..logging import configure_logging
from .client import ChatClient, is_valid_host, is_valid_port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linechat-client",
        description="Interactive client for the linechat server",
    )

    parser.add_argument(
        "host",
        nargs="?",
        default=None,
        help="Server IPv4 address or 'localhost' (default: localhost)"
    )

    parser.add_argument(
        "port",
        nargs="?",
        default=None,
        help="Server port (default: 53333)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default="WARNING",
        help="Logging level (default: WARNING)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"linechat {__version__}"
    )

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ClientConfig.from_env()

    if args.host is not None:
        if not is_valid_host(args.host):
            parser.error(f"invalid server address: {args.host}")
        config.host = args.host

    if args.port is not None:
        if not is_valid_port(args.port):
            parser.error(f"invalid server port: {args.port}")
        config.port = int(args.port)

    configure_logging(args.log_level)

    client = None
    try:
        client = ChatClient(config)
        client.run()
    except KeyboardInterrupt:
        if client is not None:
            client.disconnect()
    except (ClientError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
