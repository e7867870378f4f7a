"""HTTP and WebSocket transport."""

from toolgate.server.app import create_app
from toolgate.server.gateway import ChatGateway, Connection

__all__ = ["ChatGateway", "Connection", "create_app"]
