"""Duplex channel to the relay server.

Provides the channel abstraction consumed by the session controller and its
WebSocket implementation.
"""

from teletalkie.transport.base import Channel, Connector
from teletalkie.transport.websocket_channel import (
    WebSocketChannel,
    WebSocketConnector,
    build_channel_url,
)

__all__ = [
    "Channel",
    "Connector",
    "WebSocketChannel",
    "WebSocketConnector",
    "build_channel_url",
]
