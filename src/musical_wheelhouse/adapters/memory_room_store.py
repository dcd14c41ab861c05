"""In-memory room store."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from musical_wheelhouse.domain.models import Session
from musical_wheelhouse.services.sync import RoomStore


@dataclass
class InMemoryRoomStore(RoomStore):
    """Process-local store; rooms optionally expire after a period of inactivity."""

    ttl_seconds: int | None = None
    _rooms: dict[str, tuple[Session, datetime | None]] = field(default_factory=dict)

    def get(self, key: str) -> Session | None:
        entry = self._rooms.get(key)
        if entry is None:
            return None
        session, expires_at = entry
        if expires_at is not None and datetime.now(tz=UTC) >= expires_at:
            self._rooms.pop(key, None)
            return None
        return session

    def set(self, key: str, session: Session) -> None:
        expires_at = None
        if self.ttl_seconds is not None:
            expires_at = datetime.now(tz=UTC) + timedelta(seconds=self.ttl_seconds)
        self._rooms[key] = (session, expires_at)

    def delete(self, key: str) -> None:
        self._rooms.pop(key, None)
