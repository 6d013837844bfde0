"""Peer roster tracking.

The server periodically broadcasts PEER_INFO with the full member list and the
current talker. Each update replaces the roster wholesale.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from teletalkie.errors import ProtocolError
from teletalkie.protocol import parse_peer_info
from teletalkie.view import SessionView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeerRoster:
    """Room members in join order and the current talker, if any."""

    members: tuple[str, ...] = ()
    talker: str | None = None


class RosterTracker:
    """Keeps the roster and the remote talker display in sync with PEER_INFO."""

    def __init__(
        self,
        view: SessionView,
        local_name: Callable[[], str],
        is_local_talking: Callable[[], bool],
    ) -> None:
        """Initialize tracker.

        Args:
            view: Display model
            local_name: Returns the local user's name
            is_local_talking: True while the local PTT state is Talking
        """
        self._view = view
        self._local_name = local_name
        self._is_local_talking = is_local_talking
        self.roster = PeerRoster()

    def on_peer_info(self, payload: bytes) -> None:
        """Apply a PEER_INFO payload. Malformed payloads keep the previous roster."""
        try:
            info = parse_peer_info(payload)
        except ProtocolError as e:
            logger.warning("Ignoring malformed roster update", extra={"error": str(e)})
            return

        self.roster = PeerRoster(members=tuple(info.peers), talker=info.talker)
        self._view.update(peers=self.roster.members)
        logger.debug(
            "Roster updated",
            extra={"peers": len(self.roster.members), "talker": self.roster.talker},
        )

        talker = self.roster.talker
        if talker is None:
            self._view.update(
                talker=None,
                talker_visible=False,
                no_stream_visible=not self._is_local_talking(),
            )
        elif talker != self._local_name():
            self._view.update(talker=talker, talker_visible=True, no_stream_visible=False)

    def clear(self) -> None:
        """Forget the roster (leaving the room)."""
        self.roster = PeerRoster()
        self._view.update(peers=(), talker=None, talker_visible=False)
