"""Unit tests for client configuration.

Tests configuration loading, validation, and defaults.
"""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from teletalkie.config import (
    DEFAULT_MIME_CANDIDATES,
    CaptureConfig,
    ClientConfig,
    ConnectionConfig,
    PlaybackConfig,
)

SAMPLE_YAML = """connection:
  server_url: "https://talkie.example:8443/"
  reconnect_delay_s: 5.0

capture:
  chunk_interval_ms: 250
  video_bitrate: 800000

playback:
  target_window_s: 5.0
  quota_window_s: 2.0

log_level: "debug"
credentials_path: "/tmp/teletalkie/credentials.yaml"
"""


def test_connection_config_defaults() -> None:
    """Test connection configuration defaults."""
    config = ConnectionConfig()
    assert config.server_url == "http://localhost:8080"
    assert config.reconnect_delay_s == 2.0
    assert config.max_message_bytes == 2 * 1024 * 1024


def test_connection_config_server_url_validation() -> None:
    """Test server origin validation."""
    # Trailing slash is stripped
    assert ConnectionConfig(server_url="https://talkie.example/").server_url == "https://talkie.example"

    with pytest.raises(ValueError, match="server_url must start with"):
        ConnectionConfig(server_url="ws://talkie.example")

    with pytest.raises(ValueError):
        ConnectionConfig(reconnect_delay_s=0)


def test_capture_config_defaults() -> None:
    """Test capture configuration defaults."""
    config = CaptureConfig()
    assert config.chunk_interval_ms == 200
    assert config.video_bitrate == 400_000
    assert config.mime_candidates == DEFAULT_MIME_CANDIDATES


def test_capture_config_validation() -> None:
    """Test capture configuration validation."""
    # Interval too short
    with pytest.raises(ValueError):
        CaptureConfig(chunk_interval_ms=5)

    # No candidate formats
    with pytest.raises(ValueError, match="mime_candidates must not be empty"):
        CaptureConfig(mime_candidates=[])


def test_playback_config_defaults() -> None:
    """Test playback configuration defaults."""
    config = PlaybackConfig()
    assert config.target_window_s == 2.0
    assert config.quota_window_s == 1.0
    assert config.trim_margin_s == 1.0
    assert config.live_edge_threshold_s == 0.2
    assert config.live_edge_offset_s == 0.05
    assert config.start_offset_s == 0.1
    assert config.resume_threshold_s == 0.1


def test_playback_config_window_validation() -> None:
    """Test the quota window must be smaller than the target window."""
    with pytest.raises(ValueError, match="quota_window_s"):
        PlaybackConfig(target_window_s=2.0, quota_window_s=2.0)

    with pytest.raises(ValueError, match="live_edge_offset_s"):
        PlaybackConfig(live_edge_threshold_s=0.2, live_edge_offset_s=0.3)


def test_client_config_log_level_validation() -> None:
    """Test log level is validated and normalized."""
    assert ClientConfig(log_level="warning").log_level == "WARNING"

    with pytest.raises(ValueError, match="log_level must be one of"):
        ClientConfig(log_level="LOUD")


@patch("os.getenv")
def test_client_config_from_yaml(mock_getenv: Mock, tmp_path: Path) -> None:
    """Test loading configuration from YAML file."""
    # No environment overrides
    mock_getenv.return_value = None

    config_file = tmp_path / "client.yaml"
    config_file.write_text(SAMPLE_YAML)

    config = ClientConfig.from_yaml(config_file)

    assert config.connection.server_url == "https://talkie.example:8443"
    assert config.connection.reconnect_delay_s == 5.0
    assert config.capture.chunk_interval_ms == 250
    assert config.capture.video_bitrate == 800_000
    assert config.playback.target_window_s == 5.0
    assert config.playback.quota_window_s == 2.0
    assert config.log_level == "DEBUG"
    assert config.credentials_path == Path("/tmp/teletalkie/credentials.yaml")


@patch("os.getenv")
def test_client_config_from_yaml_with_env_overrides(mock_getenv: Mock, tmp_path: Path) -> None:
    """Test environment variables override YAML values."""

    def getenv_side_effect(key: str) -> str | None:
        return {
            "TELETALKIE_SERVER_URL": "http://relay.internal:9000",
            "TELETALKIE_RECONNECT_DELAY_S": "0.5",
            "TELETALKIE_LOG_LEVEL": "ERROR",
        }.get(key)

    mock_getenv.side_effect = getenv_side_effect

    config_file = tmp_path / "client.yaml"
    config_file.write_text(SAMPLE_YAML)

    config = ClientConfig.from_yaml(config_file)

    assert config.connection.server_url == "http://relay.internal:9000"
    assert config.connection.reconnect_delay_s == 0.5
    assert config.log_level == "ERROR"
    # Untouched values still come from the file
    assert config.capture.chunk_interval_ms == 250


def test_client_config_from_yaml_missing_file() -> None:
    """Test loading configuration from non-existent file raises error."""
    with pytest.raises(FileNotFoundError):
        ClientConfig.from_yaml(Path("/nonexistent/client.yaml"))


def test_client_config_from_yaml_not_a_mapping(tmp_path: Path) -> None:
    """Test a YAML list at the root is rejected."""
    config_file = tmp_path / "client.yaml"
    config_file.write_text("- one\n- two\n")

    with pytest.raises(ValueError, match="must be a mapping"):
        ClientConfig.from_yaml(config_file)


def test_client_config_from_yaml_with_defaults_missing() -> None:
    """Test loading config with defaults when file doesn't exist."""
    config = ClientConfig.from_yaml_with_defaults(Path("/nonexistent/client.yaml"))

    assert config.connection.server_url == "http://localhost:8080"
    assert config.log_level == "INFO"
    assert config.credentials_path is None


def test_sample_config_file_loads() -> None:
    """Test the shipped sample configuration is valid."""
    config_file = Path(__file__).parents[2] / "configs" / "client.yaml"

    config = ClientConfig.from_yaml_with_defaults(config_file)

    assert config.capture.chunk_interval_ms == 200
    assert config.playback.quota_window_s < config.playback.target_window_s
