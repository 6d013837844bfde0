"""Base channel abstraction for the duplex connection to the relay server.

Defines the interface the session controller consumes so that the
PTT and playback logic never depend on a concrete network library.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


class Channel(ABC):
    """An open, message-oriented, binary duplex channel."""

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """Send one binary message.

        Args:
            data: Encoded message bytes

        Raises:
            ChannelError: If the channel is closed or broken
        """
        pass

    @abstractmethod
    def receive(self) -> AsyncIterator[bytes]:
        """Iterate over inbound binary messages in arrival order.

        Iteration ends when the peer closes the channel.

        Yields:
            bytes: One inbound message

        Raises:
            ChannelError: If the channel breaks while receiving
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        pass


class Connector(ABC):
    """Opens channels to a given address."""

    @abstractmethod
    async def open(self, url: str) -> Channel:
        """Open a channel.

        Args:
            url: Channel address (ws:// or wss://)

        Returns:
            Channel: Open channel

        Raises:
            ChannelError: If the connection or handshake fails
        """
        pass
