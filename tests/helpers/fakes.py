"""In-memory collaborators for client tests.

Provides controllable stand-ins for the channel, capture device, encoder,
decode sink and playback element so tests can drive every suspension point
by hand.
"""

import asyncio
from collections.abc import AsyncIterator

from teletalkie.errors import (
    ChannelError,
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
from teletalkie.protocol import Message, decode_message
from teletalkie.transport.base import Channel, Connector


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ============================================================================
# Transport
# ============================================================================


class FakeChannel(Channel):
    """Channel fed by the test and recording everything sent."""

    def __init__(self) -> None:
        self._open = True
        self._inbound: asyncio.Queue[bytes | Exception | None] = asyncio.Queue()
        self.sent: list[bytes] = []
        self.close_calls = 0

    async def send(self, data: bytes) -> None:
        if not self._open:
            raise ChannelError("Channel closed")
        self.sent.append(data)

    async def receive(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._inbound.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.close_calls += 1
        if self._open:
            self._open = False
            self._inbound.put_nowait(None)

    def feed(self, data: bytes) -> None:
        """Deliver one inbound frame."""
        self._inbound.put_nowait(data)

    def close_remote(self) -> None:
        """Simulate a normal close by the server."""
        self._open = False
        self._inbound.put_nowait(None)

    def fail(self, reason: str = "connection reset") -> None:
        """Simulate an abnormal close."""
        self._open = False
        self._inbound.put_nowait(ChannelError(reason))

    @property
    def messages(self) -> list[Message]:
        """Decoded outbound messages."""
        decoded = [decode_message(data) for data in self.sent]
        return [m for m in decoded if m is not None]


class FakeConnector(Connector):
    """Connector handing out FakeChannel instances."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.channels: list[FakeChannel] = []
        self.fail = False

    async def open(self, url: str) -> Channel:
        self.urls.append(url)
        await asyncio.sleep(0)
        if self.fail:
            raise ChannelError(f"Connection refused: {url}")
        channel = FakeChannel()
        self.channels.append(channel)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


# ============================================================================
# Capture and encoding
# ============================================================================


class FakeMediaStream(MediaStream):
    def __init__(self) -> None:
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeCaptureDevice(CaptureDevice):
    """Capture device that can be told to fail."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.starts = 0
        self.streams: list[FakeMediaStream] = []

    async def start(self) -> MediaStream:
        self.starts += 1
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        stream = FakeMediaStream()
        self.streams.append(stream)
        return stream


class FakeEncoder(ChunkedEncoder):
    """Encoder whose chunks are pushed by the test."""

    def __init__(self, interval_ms: int) -> None:
        self.interval_ms = interval_ms
        self.stopped = False
        self._chunks: asyncio.Queue[bytes | None] = asyncio.Queue()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._chunks.get()
            if chunk is None:
                return
            yield chunk

    def push(self, chunk: bytes) -> None:
        self._chunks.put_nowait(chunk)

    def stop(self) -> None:
        self.stopped = True
        self._chunks.put_nowait(None)


class FakeEncoderFactory(EncoderFactory):
    """Encoder factory with a configurable set of supported formats."""

    def __init__(self, supported: set[str] | None = None, create_error: Exception | None = None) -> None:
        self.supported = supported
        self.create_error = create_error
        self.encoders: list[FakeEncoder] = []
        self.created_with: list[tuple[str, int, int]] = []

    def is_type_supported(self, mime_type: str) -> bool:
        return self.supported is None or mime_type in self.supported

    def create(
        self,
        stream: MediaStream,
        mime_type: str,
        bitrate: int,
        interval_ms: int,
    ) -> ChunkedEncoder:
        if self.create_error is not None:
            raise self.create_error
        self.created_with.append((mime_type, bitrate, interval_ms))
        encoder = FakeEncoder(interval_ms)
        self.encoders.append(encoder)
        return encoder

    @property
    def last(self) -> FakeEncoder:
        return self.encoders[-1]


# ============================================================================
# Decoding and playback
# ============================================================================


class FakeSink(DecodeSink):
    """Decode sink with a media timeline of chunk_duration_s per append.

    With manual=True every append waits for complete() before finishing, so
    tests can hold an operation in flight. Overlapping operations are counted
    in violations instead of raising, so tests can assert on them.
    """

    def __init__(
        self,
        chunk_duration_s: float = 1.0,
        quota_s: float | None = None,
        manual: bool = False,
    ) -> None:
        self.chunk_duration_s = chunk_duration_s
        self.quota_s = quota_s
        self.manual = manual
        self.start = 0.0
        self.end = 0.0
        self.appended: list[bytes] = []
        self.removed: list[tuple[float, float]] = []
        self.quota_rejections = 0
        self.fatal_on_append = False
        self.fatal_on_remove = False
        self.violations = 0
        self.aborted = False
        self.closed = False
        self._updating = False
        self._gate = asyncio.Event()

    @property
    def updating(self) -> bool:
        return self._updating

    @property
    def buffered(self) -> TimeRange | None:
        if self.end <= self.start:
            return None
        return TimeRange(self.start, self.end)

    async def append(self, chunk: bytes) -> None:
        if self._updating:
            self.violations += 1
        self._updating = True
        try:
            if self.manual:
                await self._gate.wait()
                self._gate.clear()
            else:
                await asyncio.sleep(0)

            if self.fatal_on_append:
                raise SinkFatalError("decoder error")
            if self.quota_s is not None and (self.end - self.start) + self.chunk_duration_s > self.quota_s:
                self.quota_rejections += 1
                raise SinkQuotaError("quota exceeded")

            self.appended.append(chunk)
            self.end += self.chunk_duration_s
        finally:
            self._updating = False

    async def remove(self, start: float, end: float) -> None:
        if self._updating:
            self.violations += 1
        self._updating = True
        try:
            await asyncio.sleep(0)
            if self.fatal_on_remove:
                raise SinkFatalError("remove failed")
            self.removed.append((start, end))
            if start <= self.start < end:
                self.start = min(end, self.end)
        finally:
            self._updating = False

    def complete(self) -> None:
        """Let the append in flight finish (manual mode)."""
        self._gate.set()

    def abort(self) -> None:
        self.aborted = True
        self._updating = False

    def close(self) -> None:
        self.closed = True


class FakeSinkProvider(DecodeSinkProvider):
    """Sink provider whose readiness is controlled by the test."""

    def __init__(
        self,
        supported: bool = True,
        ready: bool = True,
        open_error: Exception | None = None,
        **sink_kwargs: object,
    ) -> None:
        self.supported = supported
        self.open_error = open_error
        self.sink_kwargs = sink_kwargs
        self.sinks: list[FakeSink] = []
        self.ready = asyncio.Event()
        if ready:
            self.ready.set()

    def is_type_supported(self, mime_type: str) -> bool:
        return self.supported

    async def open(self, mime_type: str) -> DecodeSink:
        await self.ready.wait()
        if self.open_error is not None:
            raise self.open_error
        sink = FakeSink(**self.sink_kwargs)  # type: ignore[arg-type]
        self.sinks.append(sink)
        return sink

    @property
    def last(self) -> FakeSink:
        return self.sinks[-1]


class FakePlaybackElement(PlaybackElement):
    """Playback element whose position only moves when the test moves it."""

    def __init__(self, block_sound: bool = False, block_muted: bool = False) -> None:
        self.block_sound = block_sound
        self.block_muted = block_muted
        self._paused = True
        self._muted = False
        self._position = 0.0
        self.seeks: list[float] = []
        self.play_calls = 0
        self.reset_calls = 0
        self.ready = ReadyState.HAVE_ENOUGH_DATA

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
        return self._position

    @position.setter
    def position(self, value: float) -> None:
        self._position = value
        self.seeks.append(value)

    @property
    def ready_state(self) -> ReadyState:
        return self.ready

    async def play(self) -> None:
        self.play_calls += 1
        await asyncio.sleep(0)
        if self._muted and self.block_muted:
            raise PlaybackBlockedError("muted autoplay blocked")
        if not self._muted and self.block_sound:
            raise PlaybackBlockedError("autoplay with sound blocked")
        self._paused = False

    def pause(self) -> None:
        self._paused = True

    def reset(self) -> None:
        self.reset_calls += 1
        self._paused = True
        self._muted = False
        self._position = 0.0

    def advance(self, seconds: float) -> None:
        """Move the playback position without recording a seek."""
        self._position += seconds

