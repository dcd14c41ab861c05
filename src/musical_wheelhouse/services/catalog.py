"""Music catalog lookups with caching."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from musical_wheelhouse.adapters.spotify_client import CatalogClient
from musical_wheelhouse.domain.errors import UpstreamUnavailable
from musical_wheelhouse.domain.models import Playlist, Track
from musical_wheelhouse.services.cache import Cache, get_or_fetch

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CatalogService:
    """Playlist and track lookups shaped for the game."""

    client: CatalogClient
    cache: Cache
    ttl_seconds: int = 86400
    preview_only: bool = False
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def list_playlists(self, owner_id: str) -> list[Playlist]:
        """Return the playlists owned by a catalog account."""

        async def fetch() -> list[Playlist]:
            items = await self._call_with_retry(
                lambda: self.client.get_user_playlists(owner_id),
                action=f"playlists:{owner_id}",
            )
            return [_map_playlist(item) for item in items if item]

        return await get_or_fetch(
            self.cache, f"spotify:playlists:{owner_id}", self.ttl_seconds, fetch
        )

    async def get_playlist_tracks(self, playlist_id: str) -> list[Track]:
        """Return the playable tracks of a playlist."""

        async def fetch() -> list[Track]:
            items = await self._call_with_retry(
                lambda: self.client.get_playlist_tracks(playlist_id),
                action=f"tracks:{playlist_id}",
            )
            tracks = [
                _map_track(item["track"])
                for item in items
                if isinstance(item, dict) and item.get("track")
            ]
            if self.preview_only:
                tracks = [track for track in tracks if track.preview_url]
            _logger.info(
                "Loaded %s tracks for playlist %s", len(tracks), playlist_id
            )
            return tracks

        return await get_or_fetch(
            self.cache, f"spotify:tracks:{playlist_id}", self.ttl_seconds, fetch
        )

    async def get_track(self, track_id: str) -> Track:
        payload = await self._call_with_retry(
            lambda: self.client.get_track(track_id), action=f"track:{track_id}"
        )
        return _map_track(payload)

    def clear(self) -> None:
        self.cache.clear()

    async def _call_with_retry(
        self, func: Callable[[], Awaitable[T]], *, action: str
    ) -> T:
        """Call the catalog with a short retry, then report it unavailable."""
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as exc:
                attempt += 1
                _logger.warning(
                    "Catalog %s failed (attempt %s/%s, status=%s): %s",
                    action,
                    attempt,
                    self.retry_attempts + 1,
                    _status_code_from_exception(exc),
                    exc,
                )
                if attempt > self.retry_attempts:
                    raise UpstreamUnavailable(
                        f"Music catalog unavailable ({action})"
                    ) from exc
                await asyncio.sleep(self.retry_delay_seconds)


def _status_code_from_exception(exc: Exception) -> str:
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    return str(status_code) if status_code is not None else "n/a"


def _first_image(images: object) -> str | None:
    if isinstance(images, list) and images and isinstance(images[0], dict):
        return images[0].get("url")
    return None


def _map_playlist(item: dict) -> Playlist:
    tracks = item.get("tracks") or {}
    return Playlist(
        id=str(item["id"]),
        name=str(item.get("name", "")),
        description=str(item.get("description") or ""),
        image=_first_image(item.get("images")),
        track_count=int(tracks.get("total", 0)) if isinstance(tracks, dict) else 0,
    )


def _map_track(item: dict) -> Track:
    artists = item.get("artists") or []
    album = item.get("album") or {}
    return Track(
        id=str(item["id"]),
        name=str(item.get("name", "")),
        artist=str(artists[0].get("name", "")) if artists else "",
        album=str(album.get("name", "")),
        album_art=_first_image(album.get("images")),
        uri=item.get("uri"),
        preview_url=item.get("preview_url"),
    )
