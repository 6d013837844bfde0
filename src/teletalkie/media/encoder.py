"""Outbound encoder adapter.

While the local user holds the channel, pulls interval-chunked compressed
media from the platform encoder and forwards each chunk as a MEDIA_CHUNK
message.

Lifecycle:
    PTT granted → start() → acquire stream (cached) → pick format → encode
    → forward chunks while talking → stop() on release

The capture stream is kept after stop() so the next transmission starts
without re-acquiring the device; release_stream() drops it on leave.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from teletalkie.config import CaptureConfig
from teletalkie.errors import CaptureError, EncodingUnsupportedError
from teletalkie.media.base import (
    CaptureDevice,
    ChunkedEncoder,
    EncoderFactory,
    MediaStream,
    pick_mime_type,
)
from teletalkie.view import SessionView

logger = logging.getLogger(__name__)


@dataclass
class EncoderMetrics:
    """Outbound chunk counters."""

    chunks_sent: int = 0
    bytes_sent: int = 0
    chunks_dropped: int = 0


class OutboundEncoderAdapter:
    """Forwards encoder output to the channel while transmitting.

    Thread-safety: NOT thread-safe. Use from the event loop thread only.
    """

    def __init__(
        self,
        capture: CaptureDevice,
        encoder_factory: EncoderFactory,
        config: CaptureConfig,
        send_chunk: Callable[[bytes], None],
        is_talking: Callable[[], bool],
        view: SessionView,
    ) -> None:
        """Initialize adapter.

        Args:
            capture: Capture device collaborator
            encoder_factory: Encoder collaborator
            config: Chunk interval, bitrate and format candidates
            send_chunk: Sends one MEDIA_CHUNK payload
            is_talking: True while the PTT state is Talking
            view: Display model
        """
        self._capture = capture
        self._encoder_factory = encoder_factory
        self._config = config
        self._send_chunk = send_chunk
        self._is_talking = is_talking
        self._view = view

        self._stream: MediaStream | None = None
        self._encoder: ChunkedEncoder | None = None
        self._task: asyncio.Task[None] | None = None
        self.mime_type: str | None = None
        self.metrics = EncoderMetrics()

    @property
    def is_running(self) -> bool:
        """Check if a start is pending or the encoder is running."""
        return self._task is not None and not self._task.done()

    @property
    def has_stream(self) -> bool:
        """Check if a capture stream is cached."""
        return self._stream is not None

    def start(self, on_failure: Callable[[Exception], None]) -> None:
        """Begin acquiring the device and encoding in the background.

        Args:
            on_failure: Called with CaptureError or EncodingUnsupportedError
                if the transmission cannot start
        """
        if self.is_running:
            logger.warning("Encoder already running, restarting")
            self.stop()

        self._task = asyncio.create_task(self._run(on_failure))

    def stop(self) -> None:
        """Stop encoding and cancel a pending start."""
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        self._stop_encoder()

        self._view.update(local_preview=False)
        if self._view.talker is None:
            self._view.update(no_stream_visible=True)

    async def acquire_stream(self) -> MediaStream:
        """Return the cached capture stream, acquiring it on first use.

        Raises:
            CaptureError: If the device is denied or unavailable
        """
        if self._stream is not None:
            return self._stream

        logger.info("Requesting capture device")
        try:
            stream = await self._capture.start()
        except CaptureError:
            raise
        except OSError as e:
            raise CaptureError(f"Capture device unavailable: {e}") from e

        self._stream = stream
        logger.info("Capture stream acquired")
        return stream

    def release_stream(self) -> None:
        """Stop the cached capture stream."""
        if self._stream is None:
            return
        self._stream.stop()
        self._stream = None
        logger.info("Capture stream released")

    async def _run(self, on_failure: Callable[[Exception], None]) -> None:
        """Acquire, encode and forward until stopped."""
        try:
            stream = await self.acquire_stream()

            mime_type = pick_mime_type(
                self._config.mime_candidates, self._encoder_factory.is_type_supported
            )
            if mime_type is None:
                raise EncodingUnsupportedError(
                    f"None of the encoder formats are supported: {self._config.mime_candidates}"
                )

            try:
                encoder = self._encoder_factory.create(
                    stream,
                    mime_type,
                    bitrate=self._config.video_bitrate,
                    interval_ms=self._config.chunk_interval_ms,
                )
            except EncodingUnsupportedError:
                raise
            except (ValueError, OSError) as e:
                raise EncodingUnsupportedError(f"Encoder creation failed: {e}") from e

            self._encoder = encoder
            self.mime_type = mime_type
            self._view.update(local_preview=True, no_stream_visible=False)
            logger.info(
                "Encoding started",
                extra={
                    "mime_type": mime_type,
                    "interval_ms": self._config.chunk_interval_ms,
                    "bitrate": self._config.video_bitrate,
                },
            )

            async for chunk in encoder:
                if not chunk:
                    continue
                if not self._is_talking():
                    self.metrics.chunks_dropped += 1
                    logger.debug("Dropping chunk produced after release", extra={"size": len(chunk)})
                    continue
                self._send_chunk(chunk)
                self.metrics.chunks_sent += 1
                self.metrics.bytes_sent += len(chunk)

        except (CaptureError, EncodingUnsupportedError) as e:
            logger.error("Cannot start transmission", extra={"error": str(e)})
            on_failure(e)
        finally:
            if self._task is asyncio.current_task():
                self._task = None
                self._stop_encoder()

    def _stop_encoder(self) -> None:
        if self._encoder is not None:
            self._encoder.stop()
            self._encoder = None
            logger.info("Encoding stopped")
