"""Host-side audio playback driven by the shared session."""

import logging
from dataclasses import dataclass
from typing import Protocol

from musical_wheelhouse.domain.models import Session

_logger = logging.getLogger(__name__)


class AudioBackend(Protocol):
    """Renders clips locally or on a remote device."""

    @property
    def ready(self) -> bool:
        """Whether the backend can accept commands."""

    async def play(self, uri: str, remaining_ms: int) -> None:
        """Start rendering a track for at most ``remaining_ms``."""

    async def pause(self) -> None:
        """Pause rendering."""

    async def stop(self) -> None:
        """Stop rendering."""

    async def get_devices(self) -> list[dict[str, object]]:
        """Return the raw devices the host account can render on."""

    async def close(self) -> None:
        """Release the backend's resources."""


@dataclass
class PlaybackDriver:
    """Follows a room's playback descriptor and drives one audio backend."""

    backend: AudioBackend
    current_uri: str | None = None

    async def sync(self, session: Session | None, now: int) -> None:
        """Bring the backend in line with the latest snapshot."""
        if not self.backend.ready:
            return
        playback = session.playback if session else None
        if playback is None:
            if self.current_uri is not None:
                await self.backend.stop()
            self.current_uri = None
            return

        if not playback.is_playing:
            if self.current_uri is not None:
                await self.backend.pause()
            # Forget the URI so the same clip can be replayed.
            self.current_uri = None
            return

        elapsed = now - playback.started_at
        if not 0 <= elapsed < playback.duration:
            return
        if not playback.track_uri or playback.track_uri == self.current_uri:
            return
        self.current_uri = playback.track_uri
        _logger.info(
            "Playing %s in room %s (%sms left)",
            playback.track_uri,
            session.room_code,
            playback.duration - elapsed,
        )
        await self.backend.play(playback.track_uri, playback.duration - elapsed)
