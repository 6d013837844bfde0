"""Configuration schema for the push-to-talk client.

Defines Pydantic models for loading and validating client configuration
from YAML files and environment variables.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

# H.264 + AAC in fragmented MP4, most compatible first
DEFAULT_MIME_CANDIDATES: list[str] = [
    "video/mp4;codecs=avc1.42E01E,mp4a.40.2",  # H.264 Baseline + AAC
    "video/mp4;codecs=avc1.4d002a,mp4a.40.2",  # H.264 Main + AAC
    "video/mp4;codecs=avc1.42E01E",  # H.264 Baseline, no audio
    "video/mp4",
]


class ConnectionConfig(BaseModel):
    """Duplex channel configuration."""

    server_url: str = Field(
        default="http://localhost:8080",
        description="Origin of the relay server; https selects a secure channel",
    )
    reconnect_delay_s: float = Field(
        default=2.0,
        gt=0,
        description="Fixed delay before reconnecting after an unexpected close",
    )
    max_message_bytes: int = Field(
        default=2 * 1024 * 1024,
        ge=1024,
        description="Maximum inbound message size (server read limit is 2MB)",
    )

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Validate that the server origin uses http or https."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"server_url must start with http:// or https://, got '{v}'")
        return v.rstrip("/")


class CaptureConfig(BaseModel):
    """Outbound capture and encoder configuration."""

    chunk_interval_ms: int = Field(
        default=200,
        ge=20,
        le=5000,
        description="Encoder chunk interval in milliseconds",
    )
    video_bitrate: int = Field(
        default=400_000,
        ge=10_000,
        description="Encoder video bitrate in bits per second",
    )
    mime_candidates: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MIME_CANDIDATES),
        description="Encoder output formats in order of preference",
    )

    @field_validator("mime_candidates")
    @classmethod
    def validate_mime_candidates(cls, v: list[str]) -> list[str]:
        """Validate that at least one candidate format is configured."""
        if not v:
            raise ValueError("mime_candidates must not be empty")
        return v


class PlaybackConfig(BaseModel):
    """Incoming media buffering and live-edge configuration."""

    mime_candidates: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MIME_CANDIDATES),
        description="Decode sink formats in order of preference",
    )
    target_window_s: float = Field(
        default=2.0,
        gt=0,
        description="Buffered duration above which history behind playback is trimmed",
    )
    quota_window_s: float = Field(
        default=1.0,
        gt=0,
        description="Smaller window used when the sink rejects an append for quota",
    )
    trim_margin_s: float = Field(
        default=1.0,
        gt=0,
        description="History kept behind the playback position when trimming",
    )
    live_edge_threshold_s: float = Field(
        default=0.2,
        gt=0,
        description="Lag behind buffered end that forces a seek to the live edge",
    )
    live_edge_offset_s: float = Field(
        default=0.05,
        ge=0,
        description="Distance behind buffered end to seek to when correcting lag",
    )
    start_offset_s: float = Field(
        default=0.1,
        ge=0,
        description="Distance behind buffered end to seek to before starting playback",
    )
    resume_threshold_s: float = Field(
        default=0.1,
        ge=0,
        description="Buffered data ahead of a stalled position that triggers resume",
    )
    quota_retry_delay_s: float = Field(
        default=0.05,
        gt=0,
        description="Wait before retrying an append when quota trimming freed nothing",
    )

    @field_validator("mime_candidates")
    @classmethod
    def validate_mime_candidates(cls, v: list[str]) -> list[str]:
        """Validate that at least one candidate format is configured."""
        if not v:
            raise ValueError("mime_candidates must not be empty")
        return v

    @model_validator(mode="after")
    def validate_windows(self) -> "PlaybackConfig":
        """Validate that the quota window is smaller than the target window."""
        if self.quota_window_s >= self.target_window_s:
            raise ValueError(
                f"quota_window_s ({self.quota_window_s}) must be smaller than "
                f"target_window_s ({self.target_window_s})"
            )
        if self.live_edge_offset_s >= self.live_edge_threshold_s:
            raise ValueError(
                f"live_edge_offset_s ({self.live_edge_offset_s}) must be smaller than "
                f"live_edge_threshold_s ({self.live_edge_threshold_s})"
            )
        return self


class ClientConfig(BaseModel):
    """Root client configuration."""

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    credentials_path: Path | None = Field(
        default=None,
        description="File remembering the last room and name (None disables it)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @classmethod
    def from_yaml(cls, path: Path) -> "ClientConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import os

        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        if server_url := os.getenv("TELETALKIE_SERVER_URL"):
            data.setdefault("connection", {})["server_url"] = server_url

        if reconnect_delay := os.getenv("TELETALKIE_RECONNECT_DELAY_S"):
            data.setdefault("connection", {})["reconnect_delay_s"] = float(reconnect_delay)

        if log_level := os.getenv("TELETALKIE_LOG_LEVEL"):
            data["log_level"] = log_level

        return cls.model_validate(data)

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "ClientConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls()
