"""Playback buffer engine for relayed media.

Absorbs bursty chunk arrival, feeds a decode sink that accepts only one
pending operation at a time, bounds buffered history, and keeps the viewer
pinned near the live edge.

Pipeline states:
    UNINITIALIZED → INITIALIZING (sink requested) → READY (flushing) → CLOSED

Key behaviours:
- Single appender: one pipeline task owns the sink and awaits each append
  before taking the next chunk, so at most one append is ever in flight and
  chunks reach the sink in arrival order.
- Quota recovery: a rejected append is put back at the front of the queue,
  history is trimmed to a smaller window and the flush is retried by the
  same task. A paused element is first moved up to the live edge so that
  history can be freed. Chunks are never dropped for quota.
- Trimming: after every append, history strictly behind the playback
  position (minus a safety margin) is removed once the buffered duration
  exceeds the target window.
- Live edge: while playing, a lag above the threshold seeks to just behind
  the buffered end. Continuity is traded for latency.
- Start policy: play with sound → play muted → ask for a user gesture.

Design:
    on_relay_chunk() → queue → pipeline task → sink.append() → trim → resume
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum

from teletalkie.config import PlaybackConfig
from teletalkie.errors import PlaybackBlockedError, SinkFatalError, SinkQuotaError
from teletalkie.media.base import (
    DecodeSink,
    DecodeSinkProvider,
    PlaybackElement,
    ReadyState,
    TimeRange,
    pick_mime_type,
)
from teletalkie.view import PlaybackPrompt, SessionView

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """Playback pipeline state machine states.

    State Transitions:
    - UNINITIALIZED → INITIALIZING (first chunk of a stream)
    - CLOSED → INITIALIZING (first chunk of the next stream)
    - INITIALIZING → READY (sink ready)
    - INITIALIZING/READY → UNINITIALIZED (sink fatal error)
    - * → CLOSED (channel released by the talker, or leaving the room)
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


@dataclass
class PipelineMetrics:
    """Playback pipeline counters."""

    chunks_received: int = 0
    chunks_appended: int = 0
    quota_retries: int = 0
    trims: int = 0
    trimmed_s: float = 0.0
    live_edge_seeks: int = 0
    initializations: int = 0
    fatal_errors: int = 0


class PlaybackBufferEngine:
    """Feeds relayed chunks into a decode sink and keeps playback live.

    Thread-safety: NOT thread-safe. Use from the event loop thread only.

    Example:
        ```python
        engine = PlaybackBufferEngine(sink_provider, element, config.playback, view)

        # RELAY_CHUNK handler
        engine.on_relay_chunk(payload)

        # PTT_RELEASED handler, or leaving the room
        engine.release()
        ```
    """

    def __init__(
        self,
        sink_provider: DecodeSinkProvider,
        element: PlaybackElement,
        config: PlaybackConfig,
        view: SessionView,
    ) -> None:
        """Initialize playback engine.

        Args:
            sink_provider: Decode sink collaborator
            element: Playback element collaborator
            config: Buffer windows and live-edge thresholds
            view: Display model
        """
        self._provider = sink_provider
        self._element = element
        self._config = config
        self._view = view

        self.state = PipelineState.UNINITIALIZED
        self.metrics = PipelineMetrics()

        self._queue: deque[bytes] = deque()
        self._wakeup = asyncio.Event()
        self._sink: DecodeSink | None = None
        self._append_in_flight = False
        self._pipeline_task: asyncio.Task[None] | None = None
        self._play_task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> int:
        """Number of chunks waiting to be appended."""
        return len(self._queue)

    @property
    def sink_busy(self) -> bool:
        """Check if the sink has an operation in progress."""
        return self._append_in_flight or (self._sink is not None and self._sink.updating)

    @property
    def buffered(self) -> TimeRange | None:
        """Buffered range of the current sink, or None."""
        if self._sink is None:
            return None
        return self._sink.buffered

    def on_relay_chunk(self, chunk: bytes) -> None:
        """Handle one relayed media chunk.

        Args:
            chunk: Compressed media bytes, in playback order
        """
        if not chunk:
            logger.debug("Ignoring empty relayed chunk")
            return

        self.metrics.chunks_received += 1

        if self.state in (PipelineState.UNINITIALIZED, PipelineState.CLOSED):
            logger.info("New stream, initializing playback pipeline")
            self._view.update(
                no_stream_visible=False,
                talker_visible=self._view.talker is not None,
            )
            self._open_pipeline()
            self._enqueue(chunk)
            return

        self._enqueue(chunk)

        if self.state is PipelineState.READY:
            self._maybe_start_playback()
            self.sync_to_live_edge()

    def sync_to_live_edge(self) -> bool:
        """Seek to just behind the buffered end if playback lags too far.

        Returns:
            True if a seek was performed
        """
        if self._element.paused:
            return False

        buffered = self.buffered
        if buffered is None:
            return False

        lag = buffered.end - self._element.position
        if lag <= self._config.live_edge_threshold_s:
            return False

        target = buffered.end - self._config.live_edge_offset_s
        logger.debug(
            "Lag detected, seeking to live edge",
            extra={"lag_s": round(lag, 3), "target_s": round(target, 3)},
        )
        self._element.position = target
        self.metrics.live_edge_seeks += 1
        return True

    async def resume_from_gesture(self) -> None:
        """Start or unmute playback in response to a user tap."""
        self._element.muted = False
        try:
            await self._element.play()
            logger.info("Playback started with sound after user gesture")
            self._view.update(playback_prompt=PlaybackPrompt.NONE)
            return
        except PlaybackBlockedError as e:
            logger.warning("Play after user gesture failed", extra={"error": str(e)})

        self._element.muted = True
        try:
            await self._element.play()
            self._view.update(playback_prompt=PlaybackPrompt.UNMUTE)
        except PlaybackBlockedError as e:
            logger.error("Play failed even after user gesture", extra={"error": str(e)})

    def release(self) -> None:
        """Tear down the pipeline because the stream ended or the room was left."""
        if self.state is PipelineState.UNINITIALIZED and self._sink is None:
            self.state = PipelineState.CLOSED
            return
        self._teardown(PipelineState.CLOSED)

    def get_metrics_summary(self) -> dict[str, str | float | int | None]:
        """Get pipeline metrics summary for logging/monitoring."""
        buffered = self.buffered
        return {
            "state": self.state.value,
            "pending": self.pending,
            "buffered_s": buffered.duration if buffered else None,
            "chunks_received": self.metrics.chunks_received,
            "chunks_appended": self.metrics.chunks_appended,
            "quota_retries": self.metrics.quota_retries,
            "trims": self.metrics.trims,
            "trimmed_s": round(self.metrics.trimmed_s, 3),
            "live_edge_seeks": self.metrics.live_edge_seeks,
            "initializations": self.metrics.initializations,
            "fatal_errors": self.metrics.fatal_errors,
        }

    # ------------------------------------------------------------------
    # Pipeline task
    # ------------------------------------------------------------------

    def _open_pipeline(self) -> None:
        self._teardown(self.state)
        self.state = PipelineState.INITIALIZING
        self.metrics.initializations += 1
        self._pipeline_task = asyncio.create_task(self._run_pipeline())

    def _enqueue(self, chunk: bytes) -> None:
        self._queue.append(chunk)
        self._wakeup.set()

    async def _run_pipeline(self) -> None:
        """Open the sink, then append queued chunks one at a time."""
        mime_type = pick_mime_type(self._config.mime_candidates, self._provider.is_type_supported)
        if mime_type is None:
            logger.error(
                "No supported decode format",
                extra={"candidates": self._config.mime_candidates},
            )
            self._fail()
            return

        try:
            sink = await self._provider.open(mime_type)
        except SinkFatalError as e:
            logger.error("Decode sink could not be opened", extra={"error": str(e)})
            self._fail()
            return

        self._sink = sink
        self.state = PipelineState.READY
        logger.info("Playback pipeline ready", extra={"mime_type": mime_type, "pending": self.pending})

        try:
            await self._flush(sink)
        except SinkFatalError as e:
            logger.error("Decode sink error, tearing down pipeline", extra={"error": str(e)})
            self._fail()

    async def _flush(self, sink: DecodeSink) -> None:
        """Append queued chunks one at a time until cancelled.

        Raises:
            SinkFatalError: If the sink fails on append or remove
        """
        while True:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            chunk = self._queue.popleft()
            self._append_in_flight = True
            try:
                await sink.append(chunk)
            except SinkQuotaError:
                self.metrics.quota_retries += 1
                self._queue.appendleft(chunk)
                logger.warning(
                    "Sink quota exceeded, trimming and retrying",
                    extra={"size": len(chunk), "pending": self.pending},
                )
                self._append_in_flight = False
                self._skip_paused_backlog(sink)
                if not await self._trim(self._config.quota_window_s):
                    await asyncio.sleep(self._config.quota_retry_delay_s)
                continue
            finally:
                self._append_in_flight = False

            self.metrics.chunks_appended += 1

            await self._trim(self._config.target_window_s)
            self._maybe_start_playback()
            self._resume_if_stalled()

    def _skip_paused_backlog(self, sink: DecodeSink) -> None:
        """Move a paused element up to the live edge so a quota trim can free history."""
        buffered = sink.buffered
        if not self._element.paused or buffered is None:
            return

        target = max(buffered.start, buffered.end - self._config.start_offset_s)
        if target <= self._element.position:
            return
        logger.debug("Paused at quota, moving to live edge", extra={"target_s": round(target, 3)})
        self._element.position = target

    async def _trim(self, window_s: float) -> bool:
        """Remove history behind the playback position beyond a window.

        Only [start, position - margin] is ever removed, so the range holding
        the playback position and everything ahead of it is kept.

        Args:
            window_s: Buffered duration allowed before trimming

        Returns:
            True if anything was removed
        """
        sink = self._sink
        if sink is None or sink.updating:
            return False

        buffered = sink.buffered
        if buffered is None or buffered.duration <= window_s:
            return False

        remove_end = max(buffered.start, self._element.position - self._config.trim_margin_s)
        if remove_end <= buffered.start:
            return False

        logger.debug(
            "Trimming buffer",
            extra={"start_s": round(buffered.start, 3), "end_s": round(remove_end, 3)},
        )
        await sink.remove(buffered.start, remove_end)
        self.metrics.trims += 1
        self.metrics.trimmed_s += remove_end - buffered.start
        return True

    # ------------------------------------------------------------------
    # Playback control
    # ------------------------------------------------------------------

    def _maybe_start_playback(self) -> None:
        if not self._element.paused:
            return
        if self._play_task is not None and not self._play_task.done():
            return
        if self._view.playback_prompt is PlaybackPrompt.TAP_TO_PLAY:
            return

        buffered = self.buffered
        if buffered is None:
            return

        self._element.position = max(buffered.start, buffered.end - self._config.start_offset_s)
        logger.debug("Seeking to live edge before play", extra={"target_s": round(self._element.position, 3)})
        self._play_task = asyncio.create_task(self._start_playback())

    async def _start_playback(self) -> None:
        """Play with sound, fall back to muted, then to a user-gesture prompt."""
        self._element.muted = False
        try:
            await self._element.play()
            logger.info("Playing with sound")
            self._view.update(playback_prompt=PlaybackPrompt.NONE)
            return
        except PlaybackBlockedError as e:
            logger.info("Autoplay with sound blocked, trying muted", extra={"error": str(e)})

        self._element.muted = True
        try:
            await self._element.play()
            logger.info("Playing muted")
            self._view.update(playback_prompt=PlaybackPrompt.UNMUTE)
        except PlaybackBlockedError as e:
            logger.warning("Muted autoplay blocked, user gesture required", extra={"error": str(e)})
            self._view.update(playback_prompt=PlaybackPrompt.TAP_TO_PLAY)

    def _resume_if_stalled(self) -> None:
        if self._element.paused or self._element.ready_state >= ReadyState.HAVE_FUTURE_DATA:
            return
        if self._play_task is not None and not self._play_task.done():
            return

        buffered = self.buffered
        if buffered is None:
            return
        if buffered.end <= self._element.position + self._config.resume_threshold_s:
            return

        logger.debug("Buffered data available while waiting, resuming playback")
        self._play_task = asyncio.create_task(self._resume())

    async def _resume(self) -> None:
        try:
            await self._element.play()
        except PlaybackBlockedError as e:
            logger.warning("Resume play failed", extra={"error": str(e)})

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _fail(self) -> None:
        self.metrics.fatal_errors += 1
        self._teardown(PipelineState.UNINITIALIZED)

    def _teardown(self, next_state: PipelineState) -> None:
        """Cancel the pipeline task, release the sink and reset the element."""
        current = asyncio.current_task()
        for task in (self._pipeline_task, self._play_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._pipeline_task = None
        self._play_task = None

        dropped = len(self._queue)
        self._queue.clear()
        self._wakeup.clear()
        self._append_in_flight = False

        sink = self._sink
        self._sink = None
        had_pipeline = sink is not None or self.state is PipelineState.INITIALIZING
        if sink is not None:
            try:
                if sink.updating:
                    sink.abort()
            except SinkFatalError as e:
                logger.warning("Sink abort failed", extra={"error": str(e)})
            sink.close()

        if had_pipeline:
            self._element.reset()
            self._view.update(playback_prompt=PlaybackPrompt.NONE)
            logger.info(
                "Playback pipeline torn down",
                extra={"next_state": next_state.value, "dropped": dropped},
            )

        self.state = next_state
