"""Observable display model written by the client core.

Rendering is left to a front end: the core only flips fields on a
SessionView and the front end re-renders whenever a listener fires.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Screen(Enum):
    """Which top-level screen is shown."""

    LOGIN = "login"
    ROOM = "room"


class PlaybackPrompt(Enum):
    """Prompt shown over the remote video.

    - NONE: playing with sound, nothing to show
    - UNMUTE: playing muted, offer to enable sound
    - TAP_TO_PLAY: even muted playback was blocked, a user gesture is needed
    """

    NONE = "none"
    UNMUTE = "unmute"
    TAP_TO_PLAY = "tap_to_play"


ViewListener = Callable[["SessionView", dict[str, Any]], None]


@dataclass
class SessionView:
    """Display state for one client."""

    screen: Screen = Screen.LOGIN
    login_error: str | None = None
    status: str | None = None

    room_id: str = ""
    user_name: str = ""

    ptt_enabled: bool = False
    ptt_active: bool = False
    ptt_mode: str = "hold"

    peers: tuple[str, ...] = ()
    talker: str | None = None
    talker_visible: bool = False
    no_stream_visible: bool = True
    local_preview: bool = False
    playback_prompt: PlaybackPrompt = PlaybackPrompt.NONE

    _listeners: list[ViewListener] = field(default_factory=list, repr=False, compare=False)

    def subscribe(self, listener: ViewListener) -> None:
        """Register a callback invoked with (view, changed_fields) on every change."""
        self._listeners.append(listener)

    def update(self, **changes: Any) -> None:
        """Apply field changes and notify listeners of the ones that differ.

        Raises:
            AttributeError: If a field name is unknown
        """
        known = {f.name for f in fields(self) if not f.name.startswith("_")}
        changed: dict[str, Any] = {}
        for name, value in changes.items():
            if name not in known:
                raise AttributeError(f"SessionView has no field '{name}'")
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed[name] = value

        if not changed:
            return

        for listener in list(self._listeners):
            try:
                listener(self, changed)
            except Exception as e:
                logger.error("View listener failed", extra={"error": str(e)})

    def reset_room(self) -> None:
        """Return to the login screen and forget per-room display state."""
        self.update(
            screen=Screen.LOGIN,
            status=None,
            room_id="",
            user_name="",
            ptt_enabled=False,
            ptt_active=False,
            peers=(),
            talker=None,
            talker_visible=False,
            no_stream_visible=True,
            local_preview=False,
            playback_prompt=PlaybackPrompt.NONE,
        )
