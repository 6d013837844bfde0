"""Host-platform media collaborators.

Capture, encoding, decoding and rendering are provided by the platform.
The client core only consumes the narrow interfaces defined here:

    CaptureDevice → MediaStream → EncoderFactory → ChunkedEncoder   (outbound)
    DecodeSinkProvider → DecodeSink + PlaybackElement               (inbound)
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from enum import IntEnum


@dataclass(frozen=True)
class TimeRange:
    """A contiguous range of buffered media, in seconds of media time."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        """Length of the range in seconds."""
        return self.end - self.start

    def contains(self, position: float) -> bool:
        """Check if a media position lies inside the range."""
        return self.start <= position <= self.end


class ReadyState(IntEnum):
    """Playback element readiness levels, lowest to highest."""

    HAVE_NOTHING = 0
    HAVE_METADATA = 1
    HAVE_CURRENT_DATA = 2
    HAVE_FUTURE_DATA = 3
    HAVE_ENOUGH_DATA = 4


def pick_mime_type(candidates: Iterable[str], is_supported: Callable[[str], bool]) -> str | None:
    """Return the first candidate format the platform supports.

    Args:
        candidates: Formats in order of preference
        is_supported: Platform support probe

    Returns:
        Selected format, or None if nothing is supported
    """
    for mime in candidates:
        if is_supported(mime):
            return mime
    return None


class MediaStream(ABC):
    """A live raw audio/video stream from the capture device."""

    @abstractmethod
    def stop(self) -> None:
        """Stop all tracks and release the device."""
        pass


class CaptureDevice(ABC):
    """Camera + microphone."""

    @abstractmethod
    async def start(self) -> MediaStream:
        """Acquire the device.

        Returns:
            MediaStream: Live raw stream

        Raises:
            CaptureError: If access is denied or the device is unavailable
        """
        pass


class ChunkedEncoder(ABC):
    """Interval-based encoder producing compressed chunks.

    Iterating the encoder yields one chunk per interval until stop() is called.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[bytes]:
        """Iterate over compressed chunks as they are produced."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop encoding. Iteration ends after the final chunk."""
        pass


class EncoderFactory(ABC):
    """Creates chunked encoders over a capture stream."""

    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool:
        """Check if the encoder can produce the given format."""
        pass

    @abstractmethod
    def create(
        self,
        stream: MediaStream,
        mime_type: str,
        bitrate: int,
        interval_ms: int,
    ) -> ChunkedEncoder:
        """Create and start an encoder.

        Args:
            stream: Capture stream to encode
            mime_type: Output format
            bitrate: Video bitrate in bits per second
            interval_ms: Chunk interval in milliseconds

        Returns:
            ChunkedEncoder: Running encoder

        Raises:
            EncodingUnsupportedError: If the encoder cannot be created
        """
        pass


class DecodeSink(ABC):
    """Append-only buffer consumed by the platform media pipeline.

    Accepts one operation at a time: append() and remove() must not be
    called while another operation is still in progress.
    """

    @property
    @abstractmethod
    def updating(self) -> bool:
        """Check if an append or remove is in progress."""
        pass

    @property
    @abstractmethod
    def buffered(self) -> TimeRange | None:
        """Overall buffered range (first start to last end), or None if empty."""
        pass

    @abstractmethod
    async def append(self, chunk: bytes) -> None:
        """Append a chunk and wait for the sink to finish processing it.

        Raises:
            SinkQuotaError: If retained history is too large to accept the chunk
            SinkFatalError: If the sink failed and cannot continue
        """
        pass

    @abstractmethod
    async def remove(self, start: float, end: float) -> None:
        """Remove buffered media in [start, end) and wait for completion."""
        pass

    @abstractmethod
    def abort(self) -> None:
        """Abort the operation in progress, if any."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the sink's underlying resource handle."""
        pass


class DecodeSinkProvider(ABC):
    """Creates decode sinks attached to the playback element."""

    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool:
        """Check if the decoder accepts the given format."""
        pass

    @abstractmethod
    async def open(self, mime_type: str) -> DecodeSink:
        """Request a sink and wait until it is ready for appends.

        Raises:
            SinkFatalError: If the sink could not be created
        """
        pass


class PlaybackElement(ABC):
    """The element rendering the decoded remote stream."""

    @property
    @abstractmethod
    def paused(self) -> bool:
        """Check if playback is paused (or never started)."""
        pass

    @property
    @abstractmethod
    def muted(self) -> bool:
        """Check if sound is muted."""
        pass

    @muted.setter
    @abstractmethod
    def muted(self, value: bool) -> None:
        pass

    @property
    @abstractmethod
    def position(self) -> float:
        """Current playback position in seconds of media time."""
        pass

    @position.setter
    @abstractmethod
    def position(self, value: float) -> None:
        pass

    @property
    @abstractmethod
    def ready_state(self) -> ReadyState:
        """Current readiness level."""
        pass

    @abstractmethod
    async def play(self) -> None:
        """Start playback.

        Raises:
            PlaybackBlockedError: If the platform autoplay policy refuses
        """
        pass

    @abstractmethod
    def pause(self) -> None:
        """Pause playback."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """Detach from any sink and return to the initial empty state."""
        pass
