"""User profile and preferences."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .contact import current_timestamp
from .entity import Entity, require_field
from .types import SerializationError

# How long after an update a profile counts as recently modified
RECENT_MODIFICATION_SECONDS = 3600

DEFAULT_MAX_RECENT_ROOMS = 10


@dataclass
class UserData(Entity):
    """Profile and preference data for the local user."""

    KEY_PREFIX = "user_data"

    username: str
    display_name: str
    avatar_url: Optional[str] = None
    status_message: Optional[str] = None
    recent_rooms: list[str] = field(default_factory=list)  # most recent first
    max_recent_rooms: int = DEFAULT_MAX_RECENT_ROOMS
    theme: str = "dark"
    language: str = "en"
    notifications_enabled: bool = True
    sound_enabled: bool = True
    auto_away_minutes: int = 15
    created_at: int = field(default_factory=current_timestamp)
    last_updated: int = 0
    id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.last_updated:
            self.last_updated = self.created_at

    @classmethod
    def default_for_user(cls, username: str) -> "UserData":
        """Profile whose display name is the username."""
        return cls(username=username, display_name=username)

    def _touch(self) -> None:
        self.last_updated = current_timestamp()

    def set_display_name(self, display_name: str) -> None:
        self.display_name = display_name
        self._touch()

    def set_avatar_url(self, avatar_url: Optional[str]) -> None:
        self.avatar_url = avatar_url
        self._touch()

    def set_status_message(self, status_message: Optional[str]) -> None:
        self.status_message = status_message
        self._touch()

    def set_theme(self, theme: str) -> None:
        self.theme = theme
        self._touch()

    def set_language(self, language: str) -> None:
        self.language = language
        self._touch()

    def set_notifications_enabled(self, enabled: bool) -> None:
        self.notifications_enabled = enabled
        self._touch()

    def set_sound_enabled(self, enabled: bool) -> None:
        self.sound_enabled = enabled
        self._touch()

    def set_auto_away_minutes(self, minutes: int) -> None:
        self.auto_away_minutes = minutes
        self._touch()

    # Recent rooms

    def add_recent_room(self, room_id: str) -> None:
        """Move a room to the front of the recent list, dropping the oldest past the limit."""
        if room_id in self.recent_rooms:
            self.recent_rooms.remove(room_id)
        self.recent_rooms.insert(0, room_id)
        del self.recent_rooms[self.max_recent_rooms:]
        self._touch()

    def remove_recent_room(self, room_id: str) -> None:
        if room_id in self.recent_rooms:
            self.recent_rooms.remove(room_id)
            self._touch()

    def clear_recent_rooms(self) -> None:
        self.recent_rooms.clear()
        self._touch()

    def set_max_recent_rooms(self, max_recent_rooms: int) -> None:
        self.max_recent_rooms = max_recent_rooms
        del self.recent_rooms[max_recent_rooms:]
        self._touch()

    def is_recent_room(self, room_id: str) -> bool:
        return room_id in self.recent_rooms

    def most_recent_room(self) -> Optional[str]:
        return self.recent_rooms[0] if self.recent_rooms else None

    def effective_display_name(self) -> str:
        """Display name, or the username when the display name is empty."""
        return self.display_name or self.username

    def is_recently_modified(self) -> bool:
        return current_timestamp() - self.last_updated < RECENT_MODIFICATION_SECONDS

    def age_seconds(self) -> int:
        return max(0, current_timestamp() - self.created_at)

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["username"] = self.username
        data["display_name"] = self.display_name
        if self.avatar_url is not None:
            data["avatar_url"] = self.avatar_url
        if self.status_message is not None:
            data["status_message"] = self.status_message
        data["recent_rooms"] = list(self.recent_rooms)
        data["max_recent_rooms"] = self.max_recent_rooms
        data["theme"] = self.theme
        data["language"] = self.language
        data["notifications_enabled"] = self.notifications_enabled
        data["sound_enabled"] = self.sound_enabled
        data["auto_away_minutes"] = self.auto_away_minutes
        data["created_at"] = self.created_at
        data["last_updated"] = self.last_updated
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserData":
        owner = cls.__name__
        recent_rooms = data.get("recent_rooms", [])
        if not isinstance(recent_rooms, list):
            raise SerializationError(f"{owner} field 'recent_rooms' must be a list")
        return cls(
            id=data.get("id"),
            username=require_field(data, "username", owner),
            display_name=require_field(data, "display_name", owner),
            avatar_url=data.get("avatar_url"),
            status_message=data.get("status_message"),
            recent_rooms=[str(r) for r in recent_rooms],
            max_recent_rooms=int(data.get("max_recent_rooms", DEFAULT_MAX_RECENT_ROOMS)),
            theme=data.get("theme", "dark"),
            language=data.get("language", "en"),
            notifications_enabled=bool(data.get("notifications_enabled", True)),
            sound_enabled=bool(data.get("sound_enabled", True)),
            auto_away_minutes=int(data.get("auto_away_minutes", 15)),
            created_at=int(require_field(data, "created_at", owner)),
            last_updated=int(require_field(data, "last_updated", owner)),
        )
