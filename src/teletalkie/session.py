"""Session lifecycle and inbound dispatch.

SessionController owns the duplex channel. It connects without blocking the
caller, dispatches every inbound message in arrival order, reconnects after a
fixed delay when a joined session is lost, and tears everything down on
leave.

Lifecycle:
    join() → connect() → [CONNECTING] → open → [OPEN] → close → [CLOSED]
        → reconnect after delay (joined)  or  login error (never opened)
    leave() → synchronous teardown → channel closed
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from teletalkie.config import ClientConfig
from teletalkie.credentials import CredentialStore, MemoryCredentialStore
from teletalkie.errors import ChannelError
from teletalkie.media.base import (
    CaptureDevice,
    DecodeSinkProvider,
    EncoderFactory,
    PlaybackElement,
)
from teletalkie.media.encoder import OutboundEncoderAdapter
from teletalkie.media.playback import PlaybackBufferEngine
from teletalkie.protocol import MessageType, decode_message, encode_message
from teletalkie.ptt import PTTStateMachine
from teletalkie.roster import RosterTracker
from teletalkie.transport.base import Channel, Connector
from teletalkie.transport.websocket_channel import build_channel_url
from teletalkie.view import Screen, SessionView

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Channel state of one connection attempt."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Session:
    """One connection attempt to a room.

    A reconnect creates a new Session with the same room and name. Tasks hold
    on to the Session they were started for and stop acting once it is no
    longer the controller's current one.
    """

    room_id: str
    user_name: str
    channel: Channel | None = None
    connection_state: ConnectionState = ConnectionState.CONNECTING
    outbox: asyncio.Queue[bytes] = field(default_factory=asyncio.Queue, repr=False)
    run_task: asyncio.Task[None] | None = field(default=None, repr=False)
    writer_task: asyncio.Task[None] | None = field(default=None, repr=False)


class SessionController:
    """Top-level runner for one client.

    Builds and owns the PTT state machine, encoder adapter, playback engine
    and roster tracker, and wires them to the channel.

    Thread-safety: NOT thread-safe. Use from the event loop thread only.
    """

    def __init__(
        self,
        config: ClientConfig,
        connector: Connector,
        capture: CaptureDevice,
        encoder_factory: EncoderFactory,
        sink_provider: DecodeSinkProvider,
        element: PlaybackElement,
        view: SessionView | None = None,
        credentials: CredentialStore | None = None,
    ) -> None:
        """Initialize controller.

        Args:
            config: Client configuration
            connector: Opens duplex channels
            capture: Capture device collaborator
            encoder_factory: Encoder collaborator
            sink_provider: Decode sink collaborator
            element: Playback element collaborator
            view: Display model (a new one if None)
            credentials: Last-used login store (in-memory if None)
        """
        self._config = config
        self._connector = connector
        self.view = view if view is not None else SessionView()
        self.credentials = credentials if credentials is not None else MemoryCredentialStore()

        self.adapter = OutboundEncoderAdapter(
            capture,
            encoder_factory,
            config.capture,
            send_chunk=self._send_media_chunk,
            is_talking=lambda: self.ptt.is_talking,
            view=self.view,
        )
        self.ptt = PTTStateMachine(self.send, self.adapter, self.view)
        self.playback = PlaybackBufferEngine(sink_provider, element, config.playback, self.view)
        self.roster = RosterTracker(
            self.view,
            local_name=lambda: self.session.user_name if self.session else "",
            is_local_talking=lambda: self.ptt.is_talking,
        )

        self.session: Session | None = None
        self._joined = False
        self._reconnect_handle: asyncio.TimerHandle | None = None

        self._handlers: dict[MessageType, Callable[[bytes], None]] = {
            MessageType.PTT_GRANTED: self._handle_granted,
            MessageType.PTT_DENIED: self._handle_denied,
            MessageType.PTT_RELEASED: self._handle_released,
            MessageType.RELAY_CHUNK: self.playback.on_relay_chunk,
            MessageType.PEER_INFO: self.roster.on_peer_info,
        }

    @property
    def is_open(self) -> bool:
        """Check if the current session's channel is open."""
        return self.session is not None and self.session.connection_state is ConnectionState.OPEN

    @property
    def reconnect_pending(self) -> bool:
        """Check if a reconnect timer is outstanding."""
        return self._reconnect_handle is not None

    def join(self, room_id: str, user_name: str) -> bool:
        """Validate the login form, remember it and connect.

        Returns:
            True if a connection attempt was started
        """
        room_id = room_id.strip()
        user_name = user_name.strip()
        if not room_id or not user_name:
            self.view.update(login_error="Enter a name and a room")
            return False

        if self.session is not None:
            logger.warning("Already in a room, leave first", extra={"room_id": self.session.room_id})
            return False

        self.credentials.set(room_id, user_name)
        self.view.update(login_error=None)
        self._joined = False
        self.connect(room_id, user_name)
        return True

    def auto_join(self) -> bool:
        """Join with the remembered login, or prefill the form if incomplete.

        Returns:
            True if a connection attempt was started
        """
        credentials = self.credentials.get()
        if not credentials.complete:
            self.view.update(
                room_id=credentials.room_id or "",
                user_name=credentials.user_name or "",
            )
            return False

        logger.info("Auto-joining remembered room", extra={"room_id": credentials.room_id})
        return self.join(credentials.room_id or "", credentials.user_name or "")

    def connect(self, room_id: str, user_name: str) -> None:
        """Start connecting in the background. Returns immediately.

        Raises:
            ValueError: If the configured server origin is invalid
        """
        url = build_channel_url(self._config.connection.server_url, room_id, user_name)

        session = Session(room_id=room_id, user_name=user_name)
        self.session = session
        self.view.update(room_id=room_id, user_name=user_name)
        session.run_task = asyncio.create_task(self._run_session(session, url))

    async def leave(self) -> None:
        """Leave the room.

        Everything that could act on the session is cancelled before the
        first suspension point; only the channel close is awaited.
        """
        session = self.session
        self._cancel_reconnect()
        self.session = None
        self._joined = False

        self.ptt.reset()
        self.ptt.set_enabled(False)
        self.playback.release()
        self.adapter.release_stream()
        self.roster.clear()
        self.view.reset_room()

        if session is None:
            return

        session.connection_state = ConnectionState.CLOSED
        self._cancel_tasks(session)
        logger.info("Left room", extra={"room_id": session.room_id})

        if session.channel is not None:
            await session.channel.close()

    def send(self, msg_type: MessageType, payload: bytes = b"") -> None:
        """Encode and queue a message for the writer task.

        Messages are dropped when no channel is open.
        """
        session = self.session
        if session is None or session.connection_state is not ConnectionState.OPEN:
            logger.debug("Dropping outbound message, channel not open", extra={"type": msg_type.name})
            return
        session.outbox.put_nowait(encode_message(msg_type, payload))

    def handle_message(self, data: bytes) -> None:
        """Decode one inbound frame and dispatch it."""
        message = decode_message(data)
        if message is None:
            return

        handler = self._handlers.get(message.type)
        if handler is None:
            logger.warning("Unexpected message type from server", extra={"type": message.type.name})
            return
        handler(message.payload)

    def _send_media_chunk(self, chunk: bytes) -> None:
        self.send(MessageType.MEDIA_CHUNK, chunk)

    def _handle_granted(self, payload: bytes) -> None:
        self.ptt.on_granted()

    def _handle_denied(self, payload: bytes) -> None:
        self.ptt.on_denied()

    def _handle_released(self, payload: bytes) -> None:
        self.ptt.on_released()
        self.playback.release()

    async def _run_session(self, session: Session, url: str) -> None:
        """Open the channel and receive until it closes."""
        try:
            channel = await self._connector.open(url)
        except ChannelError as e:
            logger.warning("Connection failed", extra={"url": url, "error": str(e)})
            self._on_close(session)
            return

        if session is not self.session:
            await channel.close()
            return

        session.channel = channel
        self._on_open(session)

        try:
            async for data in channel.receive():
                if session is not self.session:
                    return
                self.handle_message(data)
        except ChannelError as e:
            logger.warning("Connection lost", extra={"room_id": session.room_id, "error": str(e)})

        self._on_close(session)

    async def _writer_loop(self, session: Session) -> None:
        """Write queued messages in FIFO order."""
        assert session.channel is not None
        while True:
            data = await session.outbox.get()
            try:
                await session.channel.send(data)
            except ChannelError as e:
                logger.warning("Send failed", extra={"error": str(e)})
                return

    def _on_open(self, session: Session) -> None:
        session.connection_state = ConnectionState.OPEN
        self._joined = True
        session.writer_task = asyncio.create_task(self._writer_loop(session))

        self.ptt.set_enabled(True)
        self.view.update(screen=Screen.ROOM, login_error=None, status=None)
        logger.info(
            "Joined room",
            extra={"room_id": session.room_id, "user_name": session.user_name},
        )

    def _on_close(self, session: Session) -> None:
        if session is not self.session:
            return

        session.connection_state = ConnectionState.CLOSED
        self._cancel_tasks(session)

        self.ptt.reset()
        self.ptt.set_enabled(False)
        self.playback.release()
        self.roster.clear()

        if not self._joined:
            self.session = None
            self.view.update(screen=Screen.LOGIN, login_error="Could not connect", no_stream_visible=True)
            logger.warning("Join failed", extra={"room_id": session.room_id})
            return

        self.view.update(status="Connection lost, reconnecting", no_stream_visible=True)
        self._schedule_reconnect(session)

    def _schedule_reconnect(self, session: Session) -> None:
        if self._reconnect_handle is not None:
            return

        delay = self._config.connection.reconnect_delay_s
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(
            delay, self._reconnect, session.room_id, session.user_name
        )
        logger.info("Reconnect scheduled", extra={"delay_s": delay})

    def _reconnect(self, room_id: str, user_name: str) -> None:
        self._reconnect_handle = None
        if not self._joined:
            return
        logger.info("Reconnecting", extra={"room_id": room_id})
        self.connect(room_id, user_name)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    @staticmethod
    def _cancel_tasks(session: Session) -> None:
        current = asyncio.current_task()
        for task in (session.run_task, session.writer_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
