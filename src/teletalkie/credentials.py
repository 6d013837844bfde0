"""Last-used room and name.

Used only to prefill the login screen and to auto-join on startup; nothing
depends on it for correctness.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class Credentials(BaseModel):
    """Remembered login."""

    room_id: str | None = None
    user_name: str | None = None

    @property
    def complete(self) -> bool:
        """Check if both a room and a name are remembered."""
        return bool(self.room_id) and bool(self.user_name)


class CredentialStore(ABC):
    """Get and set the last-used room and name."""

    @abstractmethod
    def get(self) -> Credentials:
        """Return the remembered login (fields are None when unknown)."""
        pass

    @abstractmethod
    def set(self, room_id: str, user_name: str) -> None:
        """Remember a login."""
        pass


class MemoryCredentialStore(CredentialStore):
    """Process-lifetime store."""

    def __init__(self, room_id: str | None = None, user_name: str | None = None) -> None:
        self._credentials = Credentials(room_id=room_id, user_name=user_name)

    def get(self) -> Credentials:
        return self._credentials

    def set(self, room_id: str, user_name: str) -> None:
        self._credentials = Credentials(room_id=room_id, user_name=user_name)


class FileCredentialStore(CredentialStore):
    """YAML file store.

    Unreadable or malformed files are treated as empty; the next set()
    overwrites them.
    """

    def __init__(self, path: Path) -> None:
        """Initialize store.

        Args:
            path: YAML file holding room_id and user_name
        """
        self.path = path

    def get(self) -> Credentials:
        if not self.path.exists():
            return Credentials()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return Credentials.model_validate(data)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.warning(
                "Ignoring unreadable credentials file",
                extra={"path": str(self.path), "error": str(e)},
            )
            return Credentials()

    def set(self, room_id: str, user_name: str) -> None:
        data = Credentials(room_id=room_id, user_name=user_name).model_dump()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f)
        except OSError as e:
            logger.warning(
                "Could not save credentials",
                extra={"path": str(self.path), "error": str(e)},
            )
