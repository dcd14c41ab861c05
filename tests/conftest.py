"""Shared test fixtures."""

import asyncio
import random
from dataclasses import dataclass, field, replace

import httpx
import pytest

from musical_wheelhouse.adapters.memory_room_store import InMemoryRoomStore
from musical_wheelhouse.adapters.spotify_client import CatalogClient, IdentityClient
from musical_wheelhouse.config import Settings
from musical_wheelhouse.containers import AppContainer
from musical_wheelhouse.domain.models import Playlist, Session, Track
from musical_wheelhouse.services import engine
from musical_wheelhouse.services.cache import InMemoryCache
from musical_wheelhouse.services.catalog import CatalogService
from musical_wheelhouse.services.game import GameService
from musical_wheelhouse.services.hosts import HostService
from musical_wheelhouse.services.sync import SessionSynchronizer
from musical_wheelhouse.services.timing import PlaybackTimer

HOST_TOKEN = "host-token"
HOST_ID = "host-user"


def make_playlist(playlist_id: str, name: str | None = None) -> Playlist:
    return Playlist(id=playlist_id, name=name or f"Playlist {playlist_id}")


def make_track(track_id: str) -> Track:
    return Track(
        id=track_id,
        name=f"Song {track_id}",
        artist=f"Artist {track_id}",
        album="Album",
        uri=f"spotify:track:{track_id}",
        preview_url=f"https://p.scdn.co/{track_id}",
    )


def lobby(player_count: int, room_code: str = "ABC123") -> Session:
    """A lobby with players p0..pN holding playlists pl0..plN."""
    session = engine.new_session(room_code, HOST_ID)
    for index in range(player_count):
        session = engine.add_player(
            session, f"p{index}", f"Player {index}", make_playlist(f"pl{index}")
        )
    return session


def playing(player_count: int, room_code: str = "ABC123") -> Session:
    return engine.start_game(lobby(player_count, room_code))


def with_round(
    session: Session, playlist_id: str | None = None, now: int = 1_000
) -> Session:
    """Start a round on the given (or first available) playlist."""
    chosen = playlist_id or engine.get_available(session)[0].id
    return engine.select_playlist(
        session, chosen, [make_track("t1")], now=now, rng=random.Random(0)
    )


def with_scores(session: Session, *scores: int) -> Session:
    players = tuple(
        replace(player, score=score)
        for player, score in zip(session.players, scores, strict=True)
    )
    return replace(session, players=players)


def raw_track(track_id: str, preview: bool = True) -> dict[str, object]:
    return {
        "id": track_id,
        "name": f"Song {track_id}",
        "artists": [{"name": f"Artist {track_id}"}],
        "album": {"name": "Album", "images": [{"url": f"https://img/{track_id}"}]},
        "uri": f"spotify:track:{track_id}",
        "preview_url": f"https://p.scdn.co/{track_id}" if preview else None,
    }


@dataclass
class FakeCatalogClient(CatalogClient):
    """Catalog client serving canned Spotify payloads."""

    playlists: list[dict[str, object]] = field(
        default_factory=lambda: [
            {
                "id": f"pl{index}",
                "name": f"Playlist {index}",
                "description": "",
                "images": [],
                "tracks": {"total": 2},
            }
            for index in range(4)
        ]
    )
    tracks: dict[str, list[dict[str, object]]] = field(default_factory=dict)
    failures: int = 0
    calls: list[str] = field(default_factory=list)

    async def get_user_playlists(
        self, user_id: str, limit: int = 50
    ) -> list[dict[str, object]]:
        self._record(f"playlists:{user_id}")
        return self.playlists

    async def get_playlist_tracks(self, playlist_id: str) -> list[dict[str, object]]:
        self._record(f"tracks:{playlist_id}")
        return self.tracks.get(
            playlist_id,
            [{"track": raw_track(f"{playlist_id}-a")}, {"track": raw_track(f"{playlist_id}-b")}],
        )

    async def get_track(self, track_id: str) -> dict[str, object]:
        self._record(f"track:{track_id}")
        return raw_track(track_id)

    def _record(self, call: str) -> None:
        self.calls.append(call)
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("catalog down")


@dataclass
class FakeIdentityClient(IdentityClient):
    profiles: dict[str, dict[str, object]] = field(
        default_factory=lambda: {
            HOST_TOKEN: {"id": HOST_ID, "display_name": "Host"},
            "guest-token": {"id": "guest-user", "display_name": "Guest"},
        }
    )

    async def get_current_user(self, access_token: str) -> dict[str, object]:
        request = httpx.Request("GET", "https://api.spotify.com/v1/me")
        if access_token == "flaky-token":
            raise httpx.ConnectTimeout("timed out", request=request)
        if access_token not in self.profiles:
            response = httpx.Response(401, request=request)
            raise httpx.HTTPStatusError(
                "401 Unauthorized", request=request, response=response
            )
        return self.profiles[access_token]


@dataclass
class FakeAudioBackend:
    """Audio backend recording the commands it receives."""

    ready: bool = True
    commands: list[tuple] = field(default_factory=list)
    devices: list[dict[str, object]] = field(default_factory=list)
    closed: bool = False

    async def play(self, uri: str, remaining_ms: int) -> None:
        self.commands.append(("play", uri, remaining_ms))

    async def pause(self) -> None:
        self.commands.append(("pause",))

    async def stop(self) -> None:
        self.commands.append(("stop",))

    async def get_devices(self) -> list[dict[str, object]]:
        return self.devices

    async def close(self) -> None:
        self.closed = True


@dataclass
class RecordingSleep:
    """Sleep replacement that yields to the loop and records each delay."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


async def sleep_forever(_seconds: float) -> None:
    await asyncio.get_running_loop().create_future()


@dataclass
class FakeClock:
    value: int = 10_000

    def __call__(self) -> int:
        self.value += 1
        return self.value


@pytest.fixture
def settings() -> Settings:
    return Settings(
        spotify_client_id="client-id",
        spotify_client_secret="client-secret",
        spotify_catalog_user_id=None,
        room_store="memory",
        room_ttl_seconds=None,
        countdown_step_seconds=1.0,
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def synchronizer() -> SessionSynchronizer:
    return SessionSynchronizer(InMemoryRoomStore())


@pytest.fixture
def catalog_client() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def audio_backend() -> FakeAudioBackend:
    return FakeAudioBackend()


def build_game_service(
    synchronizer: SessionSynchronizer,
    catalog_client: FakeCatalogClient,
    *,
    sleep=sleep_forever,
    audio_backend: FakeAudioBackend | None = None,
) -> GameService:
    clock = FakeClock()
    timer = PlaybackTimer(synchronizer, step_seconds=1.0, clock=clock, sleep=sleep)
    catalog = CatalogService(
        client=catalog_client, cache=InMemoryCache(), retry_delay_seconds=0
    )
    return GameService(
        synchronizer=synchronizer,
        timer=timer,
        catalog=catalog,
        hosts=HostService(FakeIdentityClient()),
        audio_backend_factory=(
            (lambda token, device: audio_backend) if audio_backend else None
        ),
        rng=random.Random(7),
        clock=clock,
    )


@pytest.fixture
def game_service(
    synchronizer: SessionSynchronizer, catalog_client: FakeCatalogClient
) -> GameService:
    return build_game_service(synchronizer, catalog_client)


@pytest.fixture
def container(
    settings: Settings,
    synchronizer: SessionSynchronizer,
    catalog_client: FakeCatalogClient,
    audio_backend: FakeAudioBackend,
) -> AppContainer:
    game_service = build_game_service(
        synchronizer, catalog_client, audio_backend=audio_backend
    )

    async def close_resources() -> None:
        await game_service.shutdown()

    return AppContainer(
        settings=settings,
        synchronizer=synchronizer,
        timer=game_service.timer,
        catalog_service=game_service.catalog,
        host_service=game_service.hosts,
        game_service=game_service,
        close_resources=close_resources,
    )
