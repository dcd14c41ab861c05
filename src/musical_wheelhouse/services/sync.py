"""Bridge between the state machine and the shared room store."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Protocol

from musical_wheelhouse.domain.errors import RoomNotFound
from musical_wheelhouse.domain.models import Session

_logger = logging.getLogger(__name__)

Observer = Callable[[Session | None], None]


class RoomStore(Protocol):
    """Keyed persistence for one session per room code."""

    def get(self, key: str) -> Session | None:
        """Return the stored session for a room code, if present."""

    def set(self, key: str, session: Session) -> None:
        """Atomically replace the session stored under a room code."""

    def delete(self, key: str) -> None:
        """Remove a room."""


@dataclass
class SessionSynchronizer:
    """Applies transitions with read-fresh-before-write semantics.

    Each mutation reads the latest persisted session, applies the transition
    to that copy, writes the whole record back and notifies local observers.
    Concurrent writers are not serialized; the last write wins.
    """

    store: RoomStore
    _observers: dict[str, list[Observer]] = field(default_factory=dict)

    def create(self, session: Session) -> Session:
        self.store.set(session.room_code, session)
        self._notify(session.room_code, session)
        return session

    def exists(self, room_code: str) -> bool:
        return self.store.get(room_code) is not None

    def load(self, room_code: str) -> Session:
        """Return the latest persisted session or raise ``RoomNotFound``."""
        session = self.store.get(room_code)
        if session is None:
            raise RoomNotFound(room_code)
        return session

    def mutate(
        self, room_code: str, transition: Callable[[Session], Session]
    ) -> Session:
        """Apply a transition to the freshest copy of a room and persist it."""
        current = self.load(room_code)
        updated = transition(current)
        if updated is current or updated == current:
            return current
        self.store.set(room_code, updated)
        self._notify(room_code, updated)
        return updated

    def delete(self, room_code: str) -> None:
        self.store.delete(room_code)
        self._notify(room_code, None)

    def subscribe(self, room_code: str, observer: Observer) -> Callable[[], None]:
        """Register a callback for local updates; returns an unsubscribe function."""
        observers = self._observers.setdefault(room_code, [])
        observers.append(observer)

        def unsubscribe() -> None:
            if observer in observers:
                observers.remove(observer)

        return unsubscribe

    async def watch(
        self, room_code: str, interval_seconds: float = 0.5
    ) -> AsyncIterator[Session]:
        """Poll the store and yield every distinct snapshot of a room.

        Stops when the room disappears.
        """
        last: Session | None = None
        while True:
            session = self.store.get(room_code)
            if session is None:
                return
            if session != last:
                last = session
                yield session
            await asyncio.sleep(interval_seconds)

    def _notify(self, room_code: str, session: Session | None) -> None:
        for observer in list(self._observers.get(room_code, [])):
            try:
                observer(session)
            except Exception:
                _logger.exception("Room observer failed for %s", room_code)
