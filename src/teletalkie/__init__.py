"""TeleTalkie push-to-talk relay client.

Client-side session logic for a one-speaker-at-a-time audio/video relay:
wire codec, session lifecycle, PTT arbitration, outbound encoding and
low-latency playback of relayed media.
"""

__version__ = "0.1.0"
