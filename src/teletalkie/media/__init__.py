"""Media collaborators, outbound encoder adapter and playback buffer engine."""

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
from teletalkie.media.encoder import OutboundEncoderAdapter
from teletalkie.media.playback import PipelineState, PlaybackBufferEngine

__all__ = [
    "CaptureDevice",
    "ChunkedEncoder",
    "DecodeSink",
    "DecodeSinkProvider",
    "EncoderFactory",
    "MediaStream",
    "PlaybackElement",
    "ReadyState",
    "TimeRange",
    "OutboundEncoderAdapter",
    "PipelineState",
    "PlaybackBufferEngine",
]
