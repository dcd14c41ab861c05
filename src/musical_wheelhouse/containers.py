"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from musical_wheelhouse.adapters.memory_room_store import InMemoryRoomStore
from musical_wheelhouse.adapters.spotify_client import HttpxSpotifyClient
from musical_wheelhouse.adapters.spotify_connect import HttpxSpotifyConnectBackend
from musical_wheelhouse.adapters.supabase_room_store import SupabaseRoomStore
from musical_wheelhouse.config import Settings, parse_allowed_host_ids
from musical_wheelhouse.services.cache import InMemoryCache
from musical_wheelhouse.services.catalog import CatalogService
from musical_wheelhouse.services.game import GameService
from musical_wheelhouse.services.hosts import HostService
from musical_wheelhouse.services.sync import RoomStore, SessionSynchronizer
from musical_wheelhouse.services.timing import PlaybackTimer


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    synchronizer: SessionSynchronizer
    timer: PlaybackTimer
    catalog_service: CatalogService
    host_service: HostService
    game_service: GameService
    close_resources: Callable[[], Awaitable[None]]


def build_room_store(settings: Settings) -> RoomStore:
    """Create the configured room store."""
    if settings.room_store == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError("Supabase room store needs SUPABASE_URL and key")
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseRoomStore(client, table=settings.rooms_table)
    if settings.room_store == "memory":
        return InMemoryRoomStore(ttl_seconds=settings.room_ttl_seconds)
    raise ValueError(f"Unknown room store {settings.room_store!r}")


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    spotify_client = HttpxSpotifyClient.create(
        client_id=resolved_settings.spotify_client_id,
        client_secret=resolved_settings.spotify_client_secret,
        api_base_url=resolved_settings.spotify_api_base_url,
        accounts_url=resolved_settings.spotify_accounts_url,
    )
    synchronizer = SessionSynchronizer(build_room_store(resolved_settings))
    timer = PlaybackTimer(
        synchronizer, step_seconds=resolved_settings.countdown_step_seconds
    )
    catalog_service = CatalogService(
        client=spotify_client,
        cache=InMemoryCache(),
        ttl_seconds=resolved_settings.catalog_cache_ttl_seconds,
        preview_only=resolved_settings.preview_only_tracks,
    )
    host_service = HostService(
        identity_client=spotify_client,
        allowed_host_ids=parse_allowed_host_ids(resolved_settings.allowed_host_ids),
    )
    game_service = GameService(
        synchronizer=synchronizer,
        timer=timer,
        catalog=catalog_service,
        hosts=host_service,
        catalog_owner_id=resolved_settings.spotify_catalog_user_id,
        audio_backend_factory=HttpxSpotifyConnectBackend.create,
    )

    async def close_resources() -> None:
        await game_service.shutdown()
        await spotify_client.close()

    return AppContainer(
        settings=resolved_settings,
        synchronizer=synchronizer,
        timer=timer,
        catalog_service=catalog_service,
        host_service=host_service,
        game_service=game_service,
        close_resources=close_resources,
    )
