"""Interactive console client for the linechat server."""

from .client import ChatClient, is_valid_host, is_valid_port

__all__ = ["ChatClient", "is_valid_host", "is_valid_port"]
