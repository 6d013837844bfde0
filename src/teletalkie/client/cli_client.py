"""Command-line push-to-talk client.

Joins a room on the relay server and drives the PTT state machine from typed
commands. Outbound media is replayed from a capture file and relayed media is
recorded to disk by the headless media backend.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from teletalkie.config import ClientConfig, ConnectionConfig
from teletalkie.credentials import CredentialStore, FileCredentialStore, MemoryCredentialStore
from teletalkie.media.headless import (
    ClockPlaybackElement,
    FileCaptureDevice,
    FileEncoderFactory,
    RecordingSinkProvider,
)
from teletalkie.ptt import PTTMode
from teletalkie.session import SessionController
from teletalkie.transport import WebSocketConnector
from teletalkie.view import PlaybackPrompt, Screen, SessionView

logger = logging.getLogger(__name__)

HELP_TEXT = """
Commands:
  /press               - Request the channel (hold mode)
  /release             - Release the channel (hold mode)
  /talk                - Toggle transmit (toggle mode)
  /mode hold|toggle    - Switch PTT input mode
  /play                - Start playback / enable sound
  /peers               - Show room members
  /leave               - Leave the room
  /join <room> <name>  - Join a room
  /quit                - Exit client
  /help                - Show this help
"""


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the client.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def describe_change(view: SessionView, changed: dict[str, Any]) -> list[str]:
    """Render view changes as lines for the terminal.

    Args:
        view: Display model after the change
        changed: Fields that changed and their new values

    Returns:
        Lines to print (may be empty)
    """
    lines: list[str] = []

    if changed.get("screen") is Screen.ROOM:
        lines.append(f"Joined room '{view.room_id}' as {view.user_name}")
    elif changed.get("screen") is Screen.LOGIN:
        lines.append("Left room")

    if changed.get("login_error"):
        lines.append(f"Login error: {view.login_error}")
    if changed.get("status"):
        lines.append(f"Status: {view.status}")
    if "ptt_mode" in changed:
        lines.append(f"PTT mode: {view.ptt_mode}")
    if "ptt_active" in changed:
        lines.append("PTT: on" if view.ptt_active else "PTT: off")
    if "peers" in changed and view.peers:
        lines.append(f"Peers: {', '.join(view.peers)}")
    if changed.get("talker_visible"):
        lines.append(f"{view.talker} is talking")
    if changed.get("local_preview"):
        lines.append("Transmitting")

    prompt = changed.get("playback_prompt")
    if prompt is PlaybackPrompt.UNMUTE:
        lines.append("Playing muted, type /play to enable sound")
    elif prompt is PlaybackPrompt.TAP_TO_PLAY:
        lines.append("Playback blocked, type /play to start")

    return lines


class CLIClient:
    """Interactive terminal client around a SessionController."""

    def __init__(self, controller: SessionController) -> None:
        """Initialize CLI client.

        Args:
            controller: Session controller to drive
        """
        self.controller = controller
        self.running = True
        controller.view.subscribe(self._on_view_change)

    def _on_view_change(self, view: SessionView, changed: dict[str, Any]) -> None:
        for line in describe_change(view, changed):
            print(line)

    async def handle_command(self, text: str) -> None:
        """Execute one command line.

        Args:
            text: Command as typed, starting with /
        """
        parts = text.strip().split()
        if not parts:
            return

        command = parts[0].lstrip("/").lower()
        args = parts[1:]
        ptt = self.controller.ptt

        if command == "quit":
            self.running = False

        elif command == "help":
            print(HELP_TEXT)

        elif command == "press":
            ptt.press()

        elif command == "release":
            ptt.release()

        elif command == "talk":
            if ptt.mode is not PTTMode.TOGGLE:
                print("Switch to toggle mode first: /mode toggle")
            ptt.click()

        elif command == "mode":
            if len(args) != 1 or args[0].lower() not in ("hold", "toggle"):
                print("Usage: /mode hold|toggle")
                return
            ptt.set_mode(PTTMode(args[0].lower()))

        elif command == "play":
            await self.controller.playback.resume_from_gesture()

        elif command == "peers":
            roster = self.controller.roster.roster
            print(f"Peers: {', '.join(roster.members) or '(none)'}")
            print(f"Talker: {roster.talker or '(nobody)'}")

        elif command == "leave":
            await self.controller.leave()

        elif command == "join":
            if len(args) != 2:
                print("Usage: /join <room> <name>")
                return
            if self.controller.session is not None:
                await self.controller.leave()
            self.controller.join(args[0], args[1])

        else:
            print(f"Unknown command: {command}")
            print("Type /help for available commands")

    async def input_loop(self) -> None:
        """Read commands from stdin until /quit or end of input."""
        print(HELP_TEXT)
        loop = asyncio.get_running_loop()

        while self.running:
            try:
                text = await loop.run_in_executor(None, input, "> ")
            except EOFError:
                self.running = False
                break

            text = text.strip()
            if not text:
                continue
            if not text.startswith("/"):
                print("Commands start with /, type /help")
                continue
            await self.handle_command(text)

    async def run(self, room_id: str | None = None, user_name: str | None = None) -> None:
        """Join (or auto-join) and process commands until exit."""
        if room_id and user_name:
            self.controller.join(room_id, user_name)
        elif not self.controller.auto_join():
            print("Join a room with /join <room> <name>")

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            self.running = False

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            await self.input_loop()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

            await self.controller.leave()
            logger.info(
                "Client stopped",
                extra={
                    "playback": self.controller.playback.get_metrics_summary(),
                    "chunks_sent": self.controller.adapter.metrics.chunks_sent,
                },
            )


def build_controller(
    config: ClientConfig,
    capture_file: Path | None,
    record_file: Path,
) -> SessionController:
    """Wire a SessionController to the WebSocket transport and headless media.

    Args:
        config: Client configuration
        capture_file: Media file replayed while transmitting
        record_file: File receiving relayed media

    Returns:
        Controller ready to join
    """
    sink_provider = RecordingSinkProvider(
        record_file,
        chunk_duration_s=config.capture.chunk_interval_ms / 1000.0,
    )
    credentials: CredentialStore
    if config.credentials_path is not None:
        credentials = FileCredentialStore(config.credentials_path)
    else:
        credentials = MemoryCredentialStore()

    return SessionController(
        config,
        WebSocketConnector(max_message_bytes=config.connection.max_message_bytes),
        FileCaptureDevice(capture_file),
        FileEncoderFactory(),
        sink_provider,
        ClockPlaybackElement(sink_provider),
        credentials=credentials,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(description="TeleTalkie push-to-talk client")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/client.yaml"),
        help="Path to client configuration YAML file (default: configs/client.yaml)",
    )
    parser.add_argument(
        "--server",
        type=str,
        default=None,
        help="Relay server origin, overrides config (e.g., https://talkie.local:8443)",
    )
    parser.add_argument("--room", type=str, default=None, help="Room to join")
    parser.add_argument("--name", type=str, default=None, help="User name")
    parser.add_argument(
        "--capture-file",
        type=Path,
        default=None,
        help="Media file replayed while transmitting",
    )
    parser.add_argument(
        "--record-file",
        type=Path,
        default=Path("teletalkie_received.mp4"),
        help="File receiving relayed media (default: teletalkie_received.mp4)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ClientConfig:
    """Load configuration and apply command-line overrides.

    Raises:
        ValueError: If the configuration or an override is invalid
    """
    config = ClientConfig.from_yaml_with_defaults(args.config)

    if args.server:
        connection = ConnectionConfig.model_validate(
            {**config.connection.model_dump(), "server_url": args.server}
        )
        config = config.model_copy(update={"connection": connection})

    if args.verbose:
        config = config.model_copy(update={"log_level": "DEBUG"})

    return config


def main() -> None:
    """Main entry point for CLI client."""
    args = parse_args()

    try:
        config = load_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level)

    client = CLIClient(build_controller(config, args.capture_file, args.record_file))
    try:
        asyncio.run(client.run(args.room, args.name))
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
