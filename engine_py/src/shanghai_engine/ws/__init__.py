"""
WebSocket server and event handling for the Shanghai Rummy game.
"""

from .events import parse_inbound_event
from .server import ConnectionManager, create_app

__all__ = ["ConnectionManager", "create_app", "parse_inbound_event"]
