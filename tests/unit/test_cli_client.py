"""Unit tests for the command-line client."""

from pathlib import Path

import pytest

from teletalkie.client.cli_client import (
    CLIClient,
    build_controller,
    describe_change,
    load_config,
    parse_args,
)
from teletalkie.config import ClientConfig, ConnectionConfig
from teletalkie.credentials import FileCredentialStore, MemoryCredentialStore
from teletalkie.protocol import MessageType
from teletalkie.ptt import PTTMode, PTTState
from teletalkie.session import SessionController
from teletalkie.view import PlaybackPrompt, Screen, SessionView
from tests.helpers.fakes import (
    FakeCaptureDevice,
    FakeConnector,
    FakeEncoderFactory,
    FakePlaybackElement,
    FakeSinkProvider,
    settle,
)


def make_client() -> tuple[CLIClient, FakeConnector]:
    """Create a CLI client over a controller with fake collaborators."""
    connector = FakeConnector()
    controller = SessionController(
        ClientConfig(connection=ConnectionConfig(reconnect_delay_s=0.05)),
        connector,
        FakeCaptureDevice(),
        FakeEncoderFactory(),
        FakeSinkProvider(),
        FakePlaybackElement(),
    )
    return CLIClient(controller), connector


class TestDescribeChange:
    """Test rendering of view changes."""

    def test_joined(self) -> None:
        """Test entering the room screen announces room and name."""
        view = SessionView(screen=Screen.ROOM, room_id="ops", user_name="Ann")

        lines = describe_change(view, {"screen": Screen.ROOM})

        assert lines == ["Joined room 'ops' as Ann"]

    def test_talker_and_peers(self) -> None:
        """Test roster changes list peers and the visible talker."""
        view = SessionView(peers=("Ann", "Bob"), talker="Bob", talker_visible=True)

        lines = describe_change(view, {"peers": ("Ann", "Bob"), "talker_visible": True})

        assert lines == ["Peers: Ann, Bob", "Bob is talking"]

    def test_cleared_fields_are_silent(self) -> None:
        """Test clearing status or hiding the talker prints nothing."""
        view = SessionView()

        assert describe_change(view, {"status": None, "talker_visible": False}) == []

    @pytest.mark.parametrize(
        ("prompt", "expected"),
        [
            (PlaybackPrompt.UNMUTE, ["Playing muted, type /play to enable sound"]),
            (PlaybackPrompt.TAP_TO_PLAY, ["Playback blocked, type /play to start"]),
            (PlaybackPrompt.NONE, []),
        ],
    )
    def test_playback_prompt(self, prompt: PlaybackPrompt, expected: list[str]) -> None:
        """Test playback prompts tell the user how to continue."""
        view = SessionView(playback_prompt=prompt)

        assert describe_change(view, {"playback_prompt": prompt}) == expected

    def test_ptt_indicator(self) -> None:
        """Test the PTT indicator follows ptt_active."""
        view = SessionView(ptt_active=True)

        assert describe_change(view, {"ptt_active": True}) == ["PTT: on"]


class TestHandleCommand:
    """Test command dispatch."""

    @pytest.mark.asyncio
    async def test_join_and_press(self) -> None:
        """Test /join connects and /press requests the channel."""
        client, connector = make_client()

        await client.handle_command("/join ops Ann")
        await settle()
        await client.handle_command("/press")
        await settle()

        assert connector.urls == ["ws://localhost:8080/ws?room=ops&name=Ann"]
        assert [m.type for m in connector.last.messages] == [MessageType.PTT_ON]
        assert client.controller.ptt.state is PTTState.REQUESTING

        await client.controller.leave()

    @pytest.mark.asyncio
    async def test_join_usage(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test /join without room and name prints usage."""
        client, connector = make_client()

        await client.handle_command("/join ops")

        assert "Usage: /join <room> <name>" in capsys.readouterr().out
        assert connector.urls == []

    @pytest.mark.asyncio
    async def test_rejoin_leaves_first(self) -> None:
        """Test /join while in a room leaves the current room."""
        client, connector = make_client()
        await client.handle_command("/join ops Ann")
        await settle()
        first = connector.last

        await client.handle_command("/join dev Ann")
        await settle()

        assert first.close_calls >= 1
        assert connector.urls[-1] == "ws://localhost:8080/ws?room=dev&name=Ann"
        assert client.controller.view.room_id == "dev"

        await client.controller.leave()

    @pytest.mark.asyncio
    async def test_mode(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test /mode switches the input mode and validates its argument."""
        client, _ = make_client()

        await client.handle_command("/mode toggle")
        assert client.controller.ptt.mode is PTTMode.TOGGLE

        await client.handle_command("/mode loud")
        assert "Usage: /mode hold|toggle" in capsys.readouterr().out
        assert client.controller.ptt.mode is PTTMode.TOGGLE

    @pytest.mark.asyncio
    async def test_press_outside_room_ignored(self) -> None:
        """Test PTT commands do nothing before joining."""
        client, connector = make_client()

        await client.handle_command("/press")

        assert client.controller.ptt.state is PTTState.IDLE
        assert connector.channels == []

    @pytest.mark.asyncio
    async def test_peers(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test /peers prints the empty roster."""
        client, _ = make_client()

        await client.handle_command("/peers")

        out = capsys.readouterr().out
        assert "Peers: (none)" in out
        assert "Talker: (nobody)" in out

    @pytest.mark.asyncio
    async def test_unknown_and_quit(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test unknown commands are reported and /quit stops the loop."""
        client, _ = make_client()

        await client.handle_command("/dance")
        assert "Unknown command: dance" in capsys.readouterr().out

        await client.handle_command("/quit")
        assert client.running is False


class TestStartup:
    """Test argument parsing, configuration and wiring."""

    def test_parse_args_defaults(self) -> None:
        """Test defaults when no arguments are given."""
        args = parse_args([])

        assert args.config == Path("configs/client.yaml")
        assert args.server is None
        assert args.capture_file is None
        assert args.record_file == Path("teletalkie_received.mp4")
        assert args.verbose is False

    def test_load_config_overrides(self, tmp_path: Path) -> None:
        """Test --server and -v override the file."""
        config_file = tmp_path / "client.yaml"
        config_file.write_text('connection:\n  server_url: "http://a:1"\nlog_level: "WARNING"\n')

        args = parse_args(["--config", str(config_file), "--server", "https://b:2", "-v"])
        config = load_config(args)

        assert config.connection.server_url == "https://b:2"
        assert config.log_level == "DEBUG"

    def test_load_config_rejects_bad_server(self, tmp_path: Path) -> None:
        """Test an invalid --server origin is a configuration error."""
        args = parse_args(["--config", str(tmp_path / "absent.yaml"), "--server", "ftp://x"])

        with pytest.raises(ValueError, match="server_url"):
            load_config(args)

    @pytest.mark.asyncio
    async def test_build_controller(self, tmp_path: Path) -> None:
        """Test the controller is wired to the headless backend."""
        config = ClientConfig(credentials_path=tmp_path / "creds.yaml")

        controller = build_controller(config, None, tmp_path / "rx.mp4")

        assert isinstance(controller.credentials, FileCredentialStore)
        assert controller.is_open is False
        assert controller.view.screen is Screen.LOGIN

        controller = build_controller(ClientConfig(), None, tmp_path / "rx.mp4")
        assert isinstance(controller.credentials, MemoryCredentialStore)
