"""Gateway module -- mode dispatch and the HTTP listener."""

from .dispatcher import ModeDispatcher
from .server import GatewayServer, create_gateway

__all__ = ["GatewayServer", "ModeDispatcher", "create_gateway"]
