"""Headless media backend for the command-line client.

There is no camera, screen or hardware decoder in a terminal, so the CLI
uses file-backed stand-ins:

- FileCaptureDevice / IntervalFileEncoder: slice a prerecorded media file
  into bitrate-sized chunks, one per interval, looping at end of file
- RecordingSink: writes relayed media to disk and keeps a buffered timeline
  advanced by one interval per chunk, bounded like a real decoder buffer
- ClockPlaybackElement: plays that timeline against the event loop clock
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import BinaryIO

from teletalkie.errors import (
    CaptureError,
    EncodingUnsupportedError,
    PlaybackBlockedError,
    SinkFatalError,
    SinkQuotaError,
)
from teletalkie.media.base import (
    CaptureDevice,
    ChunkedEncoder,
    DecodeSink,
    DecodeSinkProvider,
    EncoderFactory,
    MediaStream,
    PlaybackElement,
    ReadyState,
    TimeRange,
)

logger = logging.getLogger(__name__)

SUPPORTED_CONTAINER = "video/mp4"


def is_container_supported(mime_type: str) -> bool:
    """Check if a MIME type (parameters ignored) uses the supported container."""
    return mime_type.split(";", 1)[0].strip() == SUPPORTED_CONTAINER


class FileMediaStream(MediaStream):
    """Open handle on a prerecorded media file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._file: BinaryIO | None = open(path, "rb")

    @property
    def stopped(self) -> bool:
        return self._file is None

    def read(self, size: int) -> bytes:
        """Read the next bytes, wrapping around at end of file."""
        if self._file is None:
            return b""
        data = self._file.read(size)
        if len(data) < size:
            self._file.seek(0)
            data += self._file.read(size - len(data))
        return data

    def stop(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


class FileCaptureDevice(CaptureDevice):
    """Capture device replaying a media file."""

    def __init__(self, path: Path | None) -> None:
        """Initialize device.

        Args:
            path: Media file to replay (None: no device available)
        """
        self.path = path

    async def start(self) -> MediaStream:
        if self.path is None:
            raise CaptureError("No capture file configured")
        try:
            stream = FileMediaStream(self.path)
        except OSError as e:
            raise CaptureError(f"Cannot open capture file {self.path}: {e}") from e
        logger.info("Capture file opened", extra={"path": str(self.path)})
        return stream


class IntervalFileEncoder(ChunkedEncoder):
    """Yields one fixed-size chunk per interval until stopped."""

    def __init__(self, stream: FileMediaStream, chunk_size: int, interval_s: float) -> None:
        self._stream = stream
        self._chunk_size = chunk_size
        self._interval_s = interval_s
        self._stopped = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while not self._stopped:
            await asyncio.sleep(self._interval_s)
            if self._stopped or self._stream.stopped:
                return
            yield self._stream.read(self._chunk_size)

    def stop(self) -> None:
        self._stopped = True


class FileEncoderFactory(EncoderFactory):
    """Creates IntervalFileEncoder instances."""

    def is_type_supported(self, mime_type: str) -> bool:
        return is_container_supported(mime_type)

    def create(
        self,
        stream: MediaStream,
        mime_type: str,
        bitrate: int,
        interval_ms: int,
    ) -> ChunkedEncoder:
        if not isinstance(stream, FileMediaStream):
            raise EncodingUnsupportedError("File encoder requires a file capture stream")
        if not self.is_type_supported(mime_type):
            raise EncodingUnsupportedError(f"Unsupported format: {mime_type}")

        # Bytes produced per interval at the configured bitrate
        chunk_size = max(1, bitrate * interval_ms // 8000)
        return IntervalFileEncoder(stream, chunk_size, interval_ms / 1000.0)


class RecordingSink(DecodeSink):
    """Decode sink that records appended media to a file.

    Each append extends the buffered timeline by one chunk duration. Appends
    that would push the buffered duration past max_buffered_s are rejected
    with SinkQuotaError, like a decoder whose retained history is full.
    """

    def __init__(self, file: BinaryIO, chunk_duration_s: float, max_buffered_s: float) -> None:
        self._file: BinaryIO | None = file
        self._chunk_duration_s = chunk_duration_s
        self._max_buffered_s = max_buffered_s
        self._updating = False
        self._start = 0.0
        self._end = 0.0
        self.bytes_written = 0

    @property
    def updating(self) -> bool:
        return self._updating

    @property
    def buffered(self) -> TimeRange | None:
        if self._end <= self._start:
            return None
        return TimeRange(self._start, self._end)

    async def append(self, chunk: bytes) -> None:
        if self._file is None:
            raise SinkFatalError("Sink is closed")
        if self._updating:
            raise SinkFatalError("Append while another operation is in progress")

        self._updating = True
        try:
            await asyncio.sleep(0)
            if (self._end - self._start) + self._chunk_duration_s > self._max_buffered_s:
                raise SinkQuotaError("Buffered media exceeds the sink limit")
            try:
                self._file.write(chunk)
            except OSError as e:
                raise SinkFatalError(f"Cannot write recording: {e}") from e
            self.bytes_written += len(chunk)
            self._end += self._chunk_duration_s
        finally:
            self._updating = False

    async def remove(self, start: float, end: float) -> None:
        if self._updating:
            raise SinkFatalError("Remove while another operation is in progress")

        self._updating = True
        try:
            await asyncio.sleep(0)
            if start <= self._start < end:
                self._start = min(end, self._end)
        finally:
            self._updating = False

    def abort(self) -> None:
        self._updating = False

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


class RecordingSinkProvider(DecodeSinkProvider):
    """Opens RecordingSink instances appending to one output file."""

    def __init__(self, path: Path, chunk_duration_s: float, max_buffered_s: float = 4.0) -> None:
        """Initialize provider.

        Args:
            path: Recording output file
            chunk_duration_s: Media time represented by one relayed chunk
            max_buffered_s: Buffered duration above which appends hit quota
        """
        self.path = path
        self._chunk_duration_s = chunk_duration_s
        self._max_buffered_s = max_buffered_s
        self.sink: RecordingSink | None = None

    def is_type_supported(self, mime_type: str) -> bool:
        return is_container_supported(mime_type)

    async def open(self, mime_type: str) -> DecodeSink:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            file = open(self.path, "ab")
        except OSError as e:
            raise SinkFatalError(f"Cannot open recording {self.path}: {e}") from e

        self.sink = RecordingSink(file, self._chunk_duration_s, self._max_buffered_s)
        logger.info("Recording sink opened", extra={"path": str(self.path), "mime_type": mime_type})
        return self.sink

    @property
    def buffered(self) -> TimeRange | None:
        """Buffered range of the most recently opened sink."""
        return self.sink.buffered if self.sink is not None else None


class ClockPlaybackElement(PlaybackElement):
    """Playback element advancing through the sink timeline in real time.

    Playback stalls at the buffered end until more media arrives.
    """

    def __init__(self, provider: RecordingSinkProvider, autoplay_allowed: bool = True) -> None:
        """Initialize element.

        Args:
            provider: Sink provider whose buffered range is played
            autoplay_allowed: False refuses play() with sound until a gesture
        """
        self._provider = provider
        self.autoplay_allowed = autoplay_allowed
        self._paused = True
        self._muted = False
        self._position = 0.0
        self._clock_base: float | None = None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def muted(self) -> bool:
        return self._muted

    @muted.setter
    def muted(self, value: bool) -> None:
        self._muted = value

    @property
    def position(self) -> float:
        if self._paused or self._clock_base is None:
            return self._position

        position = self._position + (asyncio.get_running_loop().time() - self._clock_base)
        buffered = self._provider.buffered
        if buffered is not None:
            position = min(position, buffered.end)
        return position

    @position.setter
    def position(self, value: float) -> None:
        self._position = value
        if not self._paused:
            self._clock_base = asyncio.get_running_loop().time()

    @property
    def ready_state(self) -> ReadyState:
        buffered = self._provider.buffered
        if buffered is None or not buffered.contains(self.position):
            return ReadyState.HAVE_NOTHING
        if buffered.end - self.position > 0:
            return ReadyState.HAVE_ENOUGH_DATA
        return ReadyState.HAVE_CURRENT_DATA

    async def play(self) -> None:
        if not self._muted and not self.autoplay_allowed:
            raise PlaybackBlockedError("Playback with sound needs a user gesture")

        if self._paused:
            self._clock_base = asyncio.get_running_loop().time()
            self._paused = False

    def pause(self) -> None:
        if self._paused:
            return
        self._position = self.position
        self._paused = True
        self._clock_base = None

    def reset(self) -> None:
        self._paused = True
        self._muted = False
        self._position = 0.0
        self._clock_base = None
