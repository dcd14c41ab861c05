"""Room lifecycle and game actions over the shared session."""

import asyncio
import logging
import random
import string
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import uuid4

from musical_wheelhouse.domain.errors import InvalidTransition, UpstreamUnavailable
from musical_wheelhouse.domain.models import (
    AudioDevice,
    GuessMode,
    GuessOptions,
    HostIdentity,
    Playlist,
    Session,
)
from musical_wheelhouse.services import engine
from musical_wheelhouse.services.catalog import CatalogService
from musical_wheelhouse.services.hosts import HostService
from musical_wheelhouse.services.playback import AudioBackend, PlaybackDriver
from musical_wheelhouse.services.sync import SessionSynchronizer
from musical_wheelhouse.services.timing import PlaybackTimer, now_ms

_logger = logging.getLogger(__name__)

ROOM_CODE_LENGTH = 6
_ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits

AudioBackendFactory = Callable[[str, str | None], AudioBackend]


def generate_room_code(rng: random.Random | None = None) -> str:
    """Return a random 6-character uppercase alphanumeric code."""
    return "".join((rng or random).choices(_ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))


@dataclass
class _AudioLink:
    """A host audio backend following one room."""

    driver: PlaybackDriver
    unsubscribe: Callable[[], None]
    tasks: set[asyncio.Task] = field(default_factory=set)


@dataclass
class GameService:
    """Runs every player-facing action through the synchronizer.

    Pure rules live in ``engine``; this service supplies the I/O around them:
    catalog lookups, host checks, the room store and playback timers.
    """

    synchronizer: SessionSynchronizer
    timer: PlaybackTimer
    catalog: CatalogService
    hosts: HostService
    catalog_owner_id: str | None = None
    audio_backend_factory: AudioBackendFactory | None = None
    rng: random.Random = field(default_factory=random.Random)
    clock: Callable[[], int] = now_ms
    max_code_attempts: int = 20
    _audio: dict[str, _AudioLink] = field(default_factory=dict)

    async def create_room(self, access_token: str | None) -> Session:
        """Create a lobby hosted by the caller's streaming account."""
        identity = await self.hosts.authorize(access_token)
        code = self._unused_room_code()
        session = self.synchronizer.create(engine.new_session(code, identity.user_id))
        _logger.info("Created room %s for host %s", code, identity.user_id)
        return session

    def join_room(self, room_code: str) -> tuple[Session, str]:
        """Return the room and a fresh player id for a joining device."""
        session = self.synchronizer.load(room_code.upper())
        return session, uuid4().hex

    async def load_playlists(
        self, room_code: str, access_token: str | None
    ) -> Session:
        """Fetch the host's catalog playlists and publish them to the room."""
        identity = await self._authorize_host(room_code, access_token, "load playlists")
        owner_id = self.catalog_owner_id or identity.user_id
        playlists = await self.catalog.list_playlists(owner_id)
        return self._apply(room_code, engine.SetPlaylists(tuple(playlists)))

    def add_player(
        self, room_code: str, player_id: str, name: str, playlist_id: str
    ) -> Session:
        def transition(session: Session) -> Session:
            playlist = _find_playlist(session, playlist_id)
            action = engine.AddPlayer(player_id, name.strip(), playlist)
            return engine.apply(session, action)

        return self.synchronizer.mutate(room_code, transition)

    def remove_player(self, room_code: str, player_id: str) -> Session:
        return self._apply(room_code, engine.RemovePlayer(player_id))

    def start_game(self, room_code: str) -> Session:
        return self._apply(room_code, engine.StartGame())

    async def select_playlist(self, room_code: str, playlist_id: str) -> Session:
        """Pick a random track from a playlist and start the countdown."""
        current = self.synchronizer.load(room_code)
        if playlist_id not in {p.id for p in engine.get_available(current)}:
            raise InvalidTransition(f"Playlist {playlist_id} is not available this round")
        tracks = await self.catalog.get_playlist_tracks(playlist_id)
        action = engine.SelectPlaylist(
            playlist_id, tuple(tracks), now=self.clock(), rng=self.rng
        )
        session = self._apply(room_code, action)
        self.timer.start(room_code)
        return session

    def buzz(self, room_code: str, player_idx: int) -> Session:
        session = self._apply(room_code, engine.Buzz(player_idx))
        self.timer.cancel(room_code)
        return session

    def set_mode(self, room_code: str, mode: GuessMode) -> Session:
        return self._apply(room_code, engine.SetMode(mode))

    def cancel_buzz(self, room_code: str) -> Session:
        session = self._apply(room_code, engine.CancelBuzz())
        self.timer.start(room_code)
        return session

    def judge(self, room_code: str, correct: bool) -> Session:
        """Apply the DJ's verdict; replay the clip if the round continues."""
        session = self._apply(room_code, engine.Judge(correct))
        if session.status == "playing" and session.song is not None:
            self.timer.start(room_code)
        else:
            self.timer.cancel(room_code)
        return session

    def skip_round(self, room_code: str) -> Session:
        session = self._apply(room_code, engine.SkipRound())
        self.timer.cancel(room_code)
        return session

    def replay(self, room_code: str) -> Session:
        """Restart the countdown for the current clip."""
        session = self.synchronizer.load(room_code)
        if session.status != "playing" or session.song is None:
            raise InvalidTransition("No round in progress")
        if session.buzzed is not None:
            raise InvalidTransition("Cannot replay while a player is guessing")
        self.timer.start(room_code)
        return session

    def options(self, room_code: str, player_idx: int) -> GuessOptions:
        return engine.get_options(self.synchronizer.load(room_code), player_idx)

    def available(self, room_code: str) -> list[Playlist]:
        return engine.get_available(self.synchronizer.load(room_code))

    def state(self, room_code: str) -> Session:
        return self.synchronizer.load(room_code)

    async def list_devices(
        self, room_code: str, access_token: str | None
    ) -> list[AudioDevice]:
        """Return the host's Connect devices so one can be picked for playback."""
        factory = self._require_audio()
        await self._authorize_host(room_code, access_token, "list devices")
        backend = factory(access_token, None)
        try:
            items = await backend.get_devices()
        except Exception as exc:
            _logger.warning("Device lookup failed for room %s: %s", room_code, exc)
            raise UpstreamUnavailable("Could not load Spotify devices") from exc
        finally:
            await backend.close()
        return [_map_device(item) for item in items if item.get("id")]

    async def attach_audio(
        self, room_code: str, access_token: str | None, device_id: str | None
    ) -> None:
        """Drive the host's audio backend from this room's playback updates."""
        factory = self._require_audio()
        await self._authorize_host(room_code, access_token, "play audio")
        await self.detach_audio(room_code)

        driver = PlaybackDriver(factory(access_token, device_id))
        loop = asyncio.get_running_loop()
        link = _AudioLink(driver=driver, unsubscribe=lambda: None)

        def on_update(updated: Session | None) -> None:
            task = loop.create_task(self._sync_audio(driver, updated))
            link.tasks.add(task)
            task.add_done_callback(link.tasks.discard)

        link.unsubscribe = self.synchronizer.subscribe(room_code, on_update)
        self._audio[room_code] = link

    async def detach_audio(self, room_code: str) -> None:
        """Stop following a room and release its audio backend."""
        link = self._audio.pop(room_code, None)
        if link is None:
            return
        link.unsubscribe()
        await asyncio.gather(*link.tasks, return_exceptions=True)
        await link.driver.backend.close()

    async def close_room(self, room_code: str) -> None:
        self.timer.cancel(room_code)
        await self.detach_audio(room_code)
        self.synchronizer.delete(room_code)
        _logger.info("Closed room %s", room_code)

    async def shutdown(self) -> None:
        """Release every audio backend and stop all playback cycles."""
        for room_code in list(self._audio):
            await self.detach_audio(room_code)
        await self.timer.shutdown()

    def _apply(self, room_code: str, action: engine.Action) -> Session:
        return self.synchronizer.mutate(room_code, lambda s: engine.apply(s, action))

    async def _authorize_host(
        self, room_code: str, access_token: str | None, action: str
    ) -> HostIdentity:
        identity = await self.hosts.authorize(access_token)
        session = self.synchronizer.load(room_code)
        if identity.user_id != session.host_id:
            raise InvalidTransition(f"Only the host can {action}")
        return identity

    def _require_audio(self) -> AudioBackendFactory:
        if self.audio_backend_factory is None:
            raise UpstreamUnavailable("No audio backend configured")
        return self.audio_backend_factory

    async def _sync_audio(self, driver: PlaybackDriver, session: Session | None) -> None:
        try:
            await driver.sync(session, self.clock())
        except Exception:
            _logger.exception("Audio backend failed")

    def _unused_room_code(self) -> str:
        for _ in range(self.max_code_attempts):
            code = generate_room_code(self.rng)
            if not self.synchronizer.exists(code):
                return code
            _logger.warning("Room code collision on %s, regenerating", code)
        raise RuntimeError("Could not allocate a free room code")


def _find_playlist(session: Session, playlist_id: str) -> Playlist:
    for playlist in session.playlists:
        if playlist.id == playlist_id:
            return playlist
    raise InvalidTransition(f"Playlist {playlist_id} is not offered in this room")


def _map_device(item: dict) -> AudioDevice:
    return AudioDevice(
        id=str(item["id"]),
        name=str(item.get("name", "")),
        type=str(item.get("type", "")),
        is_active=bool(item.get("is_active", False)),
    )
