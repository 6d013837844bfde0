"""Binary wire protocol definitions.

Every message on the duplex channel is a single binary frame made of one
leading type-tag byte followed by zero or more raw payload bytes. There is no
further framing: the payload is whatever follows the tag, byte-exact.

Tags:
    0x01 PTT_ON        client → server, no payload
    0x02 PTT_OFF       client → server, no payload
    0x03 MEDIA_CHUNK   client → server, compressed media bytes
    0x10 PTT_GRANTED   server → client, no payload
    0x11 PTT_DENIED    server → client, no payload
    0x12 PTT_RELEASED  server → client, no payload
    0x13 RELAY_CHUNK   server → client, compressed media bytes
    0x14 PEER_INFO     server → client, UTF-8 JSON {"peers": [...], "talker": ...}
"""

import logging
from dataclasses import dataclass
from enum import IntEnum

from pydantic import BaseModel, Field, ValidationError, field_validator

from teletalkie.errors import ProtocolError

logger = logging.getLogger(__name__)


class MessageType(IntEnum):
    """Single-byte message tags."""

    # Client → Server
    PTT_ON = 0x01
    PTT_OFF = 0x02
    MEDIA_CHUNK = 0x03

    # Server → Client
    PTT_GRANTED = 0x10
    PTT_DENIED = 0x11
    PTT_RELEASED = 0x12
    RELAY_CHUNK = 0x13
    PEER_INFO = 0x14


CLIENT_MESSAGE_TYPES: frozenset[MessageType] = frozenset(
    {MessageType.PTT_ON, MessageType.PTT_OFF, MessageType.MEDIA_CHUNK}
)

SERVER_MESSAGE_TYPES: frozenset[MessageType] = frozenset(
    {
        MessageType.PTT_GRANTED,
        MessageType.PTT_DENIED,
        MessageType.PTT_RELEASED,
        MessageType.RELAY_CHUNK,
        MessageType.PEER_INFO,
    }
)


@dataclass(frozen=True)
class Message:
    """A decoded wire message."""

    type: MessageType
    payload: bytes = b""


class PeerInfo(BaseModel):
    """Server → Client: room roster and current talker.

    The server reports an empty string when nobody holds the channel; that is
    normalized to None so callers only have to check one "absent" value.
    """

    peers: list[str] = Field(default_factory=list, description="Room members in join order")
    talker: str | None = Field(default=None, description="Name of the current transmitter")

    @field_validator("peers", mode="before")
    @classmethod
    def validate_peers(cls, v: object) -> object:
        """Treat an explicit null peer list as empty."""
        return [] if v is None else v

    @field_validator("talker")
    @classmethod
    def validate_talker(cls, v: str | None) -> str | None:
        """Normalize an empty talker name to None."""
        return v or None


def encode_message(msg_type: MessageType, payload: bytes = b"") -> bytes:
    """Encode a message as tag byte + raw payload.

    Args:
        msg_type: Message tag
        payload: Raw payload bytes (may be empty)

    Returns:
        Frame bytes ready to send on the channel
    """
    return bytes((int(msg_type),)) + bytes(payload)


def decode_message(data: bytes) -> Message | None:
    """Decode a frame received from the channel.

    Empty frames and unknown tags are discarded (None). This never raises for
    wire input: an unrecognized tag is logged, not fatal.

    Args:
        data: Raw frame bytes

    Returns:
        Decoded message, or None if the frame must be discarded
    """
    if not data:
        return None

    tag = data[0]
    try:
        msg_type = MessageType(tag)
    except ValueError:
        logger.warning("Unknown message type", extra={"tag": f"0x{tag:02x}"})
        return None

    return Message(type=msg_type, payload=bytes(data[1:]))


def parse_peer_info(payload: bytes) -> PeerInfo:
    """Parse a PEER_INFO payload.

    Args:
        payload: UTF-8 JSON bytes

    Returns:
        Parsed roster information

    Raises:
        ProtocolError: If the payload is not valid UTF-8 JSON of the expected shape
    """
    try:
        return PeerInfo.model_validate_json(payload)
    except ValidationError as e:
        raise ProtocolError(f"Malformed PEER_INFO payload: {e}") from e
