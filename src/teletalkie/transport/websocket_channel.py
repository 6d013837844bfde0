"""WebSocket channel implementation.

Connects to the relay server's /ws endpoint with the websockets asyncio
client. All protocol traffic is binary; text frames are ignored.
"""

import logging
from collections.abc import AsyncIterator
from urllib.parse import quote, urlsplit

import websockets
from websockets.asyncio.client import ClientConnection, connect

from teletalkie.errors import ChannelError
from teletalkie.transport.base import Channel, Connector

logger = logging.getLogger(__name__)


def build_channel_url(server_url: str, room_id: str, user_name: str) -> str:
    """Derive the channel address from the server origin.

    The transport mirrors the origin's scheme: https → wss, http → ws.

    Args:
        server_url: Server origin (e.g., https://talkie.local:8443)
        room_id: Room identifier
        user_name: Local user name

    Returns:
        Channel URL, e.g. wss://talkie.local:8443/ws?room=ops&name=Ann

    Raises:
        ValueError: If the origin has no host or an unsupported scheme
    """
    parts = urlsplit(server_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Invalid server origin: {server_url!r}")

    scheme = "wss" if parts.scheme == "https" else "ws"
    return (
        f"{scheme}://{parts.netloc}/ws"
        f"?room={quote(room_id, safe='')}&name={quote(user_name, safe='')}"
    )


class WebSocketChannel(Channel):
    """Channel backed by a websockets client connection."""

    def __init__(self, websocket: ClientConnection) -> None:
        """Initialize WebSocket channel.

        Args:
            websocket: Open client connection
        """
        self._websocket = websocket

    async def send(self, data: bytes) -> None:
        """Send one binary message.

        Raises:
            ChannelError: If the connection is closed
        """
        try:
            await self._websocket.send(data)
        except websockets.exceptions.ConnectionClosed as e:
            raise ChannelError(f"WebSocket connection closed: {e}") from e

    async def receive(self) -> AsyncIterator[bytes]:
        """Yield binary messages until the server closes the connection.

        Raises:
            ChannelError: If the connection closes abnormally
        """
        try:
            async for message in self._websocket:
                if isinstance(message, str):
                    logger.warning("Ignoring non-binary WebSocket message")
                    continue
                yield message
        except websockets.exceptions.ConnectionClosedError as e:
            raise ChannelError(f"WebSocket connection lost: {e}") from e

        logger.info(
            "WebSocket connection closed",
            extra={
                "code": self._websocket.close_code,
                "reason": self._websocket.close_reason,
            },
        )

    async def close(self) -> None:
        """Close the connection."""
        await self._websocket.close()


class WebSocketConnector(Connector):
    """Opens WebSocketChannel instances."""

    def __init__(self, max_message_bytes: int = 2 * 1024 * 1024, open_timeout_s: float = 10.0) -> None:
        """Initialize connector.

        Args:
            max_message_bytes: Maximum inbound message size
            open_timeout_s: Handshake timeout in seconds
        """
        self._max_message_bytes = max_message_bytes
        self._open_timeout_s = open_timeout_s

    async def open(self, url: str) -> Channel:
        """Connect and complete the WebSocket handshake.

        Raises:
            ChannelError: If the connection or handshake fails
        """
        logger.info("Connecting", extra={"url": url})
        try:
            websocket = await connect(
                url,
                max_size=self._max_message_bytes,
                compression=None,  # media chunks are already compressed
                open_timeout=self._open_timeout_s,
            )
        except (OSError, TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise ChannelError(f"Failed to connect to {url}: {e}") from e

        logger.info("Connected", extra={"url": url})
        return WebSocketChannel(websocket)
