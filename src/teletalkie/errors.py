"""Exception hierarchy for the push-to-talk client.

Every failure the core can recover from has its own type so that handlers
can catch exactly what they know how to deal with:

- ChannelError: the duplex channel could not be opened or broke while receiving
- CaptureError / EncodingUnsupportedError: abort a Requesting → Talking transition
- SinkQuotaError: recovered locally by trimming and re-queuing
- SinkFatalError: full playback pipeline teardown, lazy reinit on next chunk
- PlaybackBlockedError: platform autoplay policy refused play()
- ProtocolError: malformed inbound message, logged and ignored
"""


class TeletalkieError(Exception):
    """Base exception for client errors."""

    pass


class ChannelError(TeletalkieError):
    """Raised when the duplex channel cannot be opened or fails."""

    pass


class CaptureError(TeletalkieError):
    """Raised when the capture device is denied or unavailable."""

    pass


class EncodingUnsupportedError(TeletalkieError):
    """Raised when no compatible chunk format is available from the encoder."""

    pass


class SinkError(TeletalkieError):
    """Base exception for decode sink errors."""

    pass


class SinkQuotaError(SinkError):
    """Raised when an append is rejected because retained history is too large."""

    pass


class SinkFatalError(SinkError):
    """Raised when the decode sink fails in a way that cannot be retried."""

    pass


class PlaybackBlockedError(TeletalkieError):
    """Raised when the platform refuses to start playback (autoplay policy)."""

    pass


class ProtocolError(TeletalkieError):
    """Raised when an inbound message cannot be interpreted."""

    pass
