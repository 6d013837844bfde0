"""Push-to-talk arbitration state machine.

The server decides who may transmit. Locally the client only tracks its own
request and reacts to the server's answer:

State Transitions:
- IDLE → REQUESTING (user activates, PTT_ON sent)
- REQUESTING → TALKING (server grants, encoder started)
- REQUESTING → IDLE (server denies, or user deactivates first: PTT_OFF sent)
- TALKING → IDLE (user deactivates or capture fails: PTT_OFF sent, encoder stopped)

A grant that arrives while not REQUESTING belongs to a request the user
already abandoned. It is answered with PTT_OFF so that the server sees one OFF
for every ON it granted, and the local state does not change.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from teletalkie.protocol import MessageType
from teletalkie.view import SessionView

logger = logging.getLogger(__name__)


class PTTState(Enum):
    """Local transmit state."""

    IDLE = "idle"
    REQUESTING = "requesting"
    TALKING = "talking"


class PTTMode(Enum):
    """How the physical input drives the state machine.

    - HOLD: press activates, release deactivates
    - TOGGLE: each click flips between activated and deactivated
    """

    HOLD = "hold"
    TOGGLE = "toggle"


class PTTEvent(Enum):
    """Inputs to the state machine."""

    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    GRANTED = "granted"
    DENIED = "denied"
    CAPTURE_FAILED = "capture_failed"


# (state, event) → (next state, action method name)
# Pairs missing from the table are ignored.
TRANSITIONS: dict[tuple[PTTState, PTTEvent], tuple[PTTState, str | None]] = {
    (PTTState.IDLE, PTTEvent.ACTIVATE): (PTTState.REQUESTING, "_request"),
    (PTTState.REQUESTING, PTTEvent.GRANTED): (PTTState.TALKING, "_start_transmit"),
    (PTTState.REQUESTING, PTTEvent.DENIED): (PTTState.IDLE, "_show_busy"),
    (PTTState.REQUESTING, PTTEvent.DEACTIVATE): (PTTState.IDLE, "_send_off"),
    (PTTState.TALKING, PTTEvent.DEACTIVATE): (PTTState.IDLE, "_stop_transmit"),
    (PTTState.TALKING, PTTEvent.CAPTURE_FAILED): (PTTState.IDLE, "_abort_transmit"),
    (PTTState.IDLE, PTTEvent.GRANTED): (PTTState.IDLE, "_reject_grant"),
    (PTTState.TALKING, PTTEvent.GRANTED): (PTTState.TALKING, "_reject_grant"),
}


class TransmitAdapter(Protocol):
    """What the state machine needs from the outbound encoder adapter."""

    def start(self, on_failure: Callable[[Exception], None]) -> None: ...

    def stop(self) -> None: ...


SendFn = Callable[..., None]


class PTTStateMachine:
    """Client side of the transmit request/grant/release protocol.

    Thread-safety: NOT thread-safe. Use from the event loop thread only.
    """

    def __init__(self, send: SendFn, adapter: TransmitAdapter, view: SessionView) -> None:
        """Initialize state machine.

        Args:
            send: Sends a message, called as send(msg_type) or send(msg_type, payload)
            adapter: Outbound encoder adapter started while TALKING
            view: Display model
        """
        self._send = send
        self._adapter = adapter
        self._view = view

        self.state = PTTState.IDLE
        self.mode = PTTMode.HOLD
        self.enabled = False
        self._failure: Exception | None = None

    @property
    def is_talking(self) -> bool:
        """Check if the local user currently holds the channel."""
        return self.state is PTTState.TALKING

    def set_enabled(self, enabled: bool) -> None:
        """Accept or ignore user inputs (enabled only while in a room)."""
        self.enabled = enabled
        self._view.update(ptt_enabled=enabled)

    # User inputs

    def activate(self) -> None:
        """Request the channel."""
        if not self.enabled:
            logger.debug("PTT input ignored, not in a room")
            return
        self._dispatch(PTTEvent.ACTIVATE)

    def deactivate(self) -> None:
        """Give up the channel or the pending request."""
        if not self.enabled:
            logger.debug("PTT input ignored, not in a room")
            return
        self._dispatch(PTTEvent.DEACTIVATE)

    def press(self) -> None:
        """Button down. Activates in HOLD mode."""
        if self.mode is PTTMode.HOLD:
            self.activate()

    def release(self) -> None:
        """Button up. Deactivates in HOLD mode."""
        if self.mode is PTTMode.HOLD:
            self.deactivate()

    def click(self) -> None:
        """Button click. Flips the request in TOGGLE mode."""
        if self.mode is not PTTMode.TOGGLE:
            return
        if self.state is PTTState.IDLE:
            self.activate()
        else:
            self.deactivate()

    def set_mode(self, mode: PTTMode) -> None:
        """Switch input mode, releasing first when not IDLE."""
        if mode is self.mode:
            return
        if self.state is not PTTState.IDLE:
            self._dispatch(PTTEvent.DEACTIVATE)

        self.mode = mode
        self._view.update(ptt_mode=mode.value)
        logger.info("PTT mode changed", extra={"mode": mode.value})

    # Server notifications

    def on_granted(self) -> None:
        """Handle PTT_GRANTED."""
        self._dispatch(PTTEvent.GRANTED)

    def on_denied(self) -> None:
        """Handle PTT_DENIED."""
        self._dispatch(PTTEvent.DENIED)

    def on_released(self) -> None:
        """Handle PTT_RELEASED: the channel is free again.

        Clears the remote talker display. Local state is not touched.
        """
        self._view.update(
            talker=None,
            talker_visible=False,
            no_stream_visible=not self.is_talking,
        )

    def on_capture_failed(self, error: Exception) -> None:
        """Encoder adapter could not start transmitting."""
        self._failure = error
        self._dispatch(PTTEvent.CAPTURE_FAILED)

    def reset(self) -> None:
        """Return to IDLE without sending anything (disconnect or leave)."""
        if self.state is PTTState.TALKING:
            self._adapter.stop()
        self.state = PTTState.IDLE
        self._failure = None
        self._view.update(ptt_active=False)

    def _dispatch(self, event: PTTEvent) -> None:
        entry = TRANSITIONS.get((self.state, event))
        if entry is None:
            logger.debug(
                "PTT event ignored",
                extra={"state": self.state.value, "event": event.value},
            )
            return

        next_state, action = entry
        old_state = self.state
        self.state = next_state
        self._view.update(ptt_active=next_state is not PTTState.IDLE)

        if old_state is not next_state:
            logger.info(
                "PTT state transition",
                extra={
                    "event": event.value,
                    "from_state": old_state.value,
                    "to_state": next_state.value,
                },
            )

        if action is not None:
            getattr(self, action)()

    # Transition actions

    def _request(self) -> None:
        self._view.update(status=None)
        self._send(MessageType.PTT_ON)

    def _send_off(self) -> None:
        self._send(MessageType.PTT_OFF)

    def _start_transmit(self) -> None:
        self._adapter.start(self.on_capture_failed)

    def _stop_transmit(self) -> None:
        self._send(MessageType.PTT_OFF)
        self._adapter.stop()

    def _abort_transmit(self) -> None:
        self._stop_transmit()
        reason = str(self._failure) if self._failure else "capture failed"
        self._failure = None
        self._view.update(status=f"Cannot transmit: {reason}")

    def _show_busy(self) -> None:
        self._view.update(status="Channel busy")

    def _reject_grant(self) -> None:
        logger.warning(
            "Grant received while not requesting, releasing",
            extra={"state": self.state.value},
        )
        self._send(MessageType.PTT_OFF)
