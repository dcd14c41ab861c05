"""Spotify Web API client adapter."""

import base64
import time
from dataclasses import dataclass
from typing import Protocol

import httpx

_TOKEN_REFRESH_MARGIN_SECONDS = 300


class CatalogClient(Protocol):
    """Interface for music catalog lookups."""

    async def get_user_playlists(
        self, user_id: str, limit: int = 50
    ) -> list[dict[str, object]]:
        """Return raw playlist objects owned by a user."""

    async def get_playlist_tracks(self, playlist_id: str) -> list[dict[str, object]]:
        """Return raw playlist items for a playlist, across all pages."""

    async def get_track(self, track_id: str) -> dict[str, object]:
        """Return a raw track object."""


class IdentityClient(Protocol):
    """Interface for resolving a user access token."""

    async def get_current_user(self, access_token: str) -> dict[str, object]:
        """Return the profile of the user owning an access token."""


@dataclass
class HttpxSpotifyClient(CatalogClient, IdentityClient):
    """Spotify client using the client-credentials flow for catalog reads."""

    client_id: str
    client_secret: str
    http_client: httpx.AsyncClient
    api_base_url: str = "https://api.spotify.com/v1"
    accounts_url: str = "https://accounts.spotify.com/api/token"
    _access_token: str | None = None
    _token_expires_at: float = 0.0

    @classmethod
    def create(
        cls,
        client_id: str,
        client_secret: str,
        api_base_url: str = "https://api.spotify.com/v1",
        accounts_url: str = "https://accounts.spotify.com/api/token",
    ) -> "HttpxSpotifyClient":
        """Create a Spotify client with a managed httpx session."""
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            http_client=httpx.AsyncClient(),
            api_base_url=api_base_url,
            accounts_url=accounts_url,
        )

    async def get_user_playlists(
        self, user_id: str, limit: int = 50
    ) -> list[dict[str, object]]:
        """Fetch playlists owned by a Spotify user."""
        payload = await self._get(f"/users/{user_id}/playlists", {"limit": limit})
        return list(payload.get("items", []))

    async def get_playlist_tracks(self, playlist_id: str) -> list[dict[str, object]]:
        """Fetch every item of a playlist, following pagination."""
        items: list[dict[str, object]] = []
        url: str | None = f"{self.api_base_url}/playlists/{playlist_id}/tracks"
        params: dict[str, object] | None = {"limit": 50}
        while url:
            payload = await self._get_absolute(url, params)
            items.extend(payload.get("items", []))
            url = payload.get("next")
            params = None
        return items

    async def get_track(self, track_id: str) -> dict[str, object]:
        """Fetch a single track."""
        return await self._get(f"/tracks/{track_id}")

    async def get_current_user(self, access_token: str) -> dict[str, object]:
        """Fetch the profile for a user access token."""
        response = await self.http_client.get(
            f"{self.api_base_url}/me",
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=10,
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _get(
        self, path: str, params: dict[str, object] | None = None
    ) -> dict[str, object]:
        return await self._get_absolute(f"{self.api_base_url}{path}", params)

    async def _get_absolute(
        self, url: str, params: dict[str, object] | None
    ) -> dict[str, object]:
        token = await self._app_token()
        response = await self.http_client.get(
            url,
            params=params,
            headers={"Authorization": f"Bearer {token}"},
            timeout=15,
        )
        response.raise_for_status()
        return response.json()

    async def _app_token(self) -> str:
        """Return a cached app token, refreshing it shortly before expiry."""
        if (
            self._access_token
            and self._token_expires_at > time.time() + _TOKEN_REFRESH_MARGIN_SECONDS
        ):
            return self._access_token

        credentials = base64.b64encode(
            f"{self.client_id}:{self.client_secret}".encode()
        ).decode()
        response = await self.http_client.post(
            self.accounts_url,
            data={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {credentials}"},
            timeout=10,
        )
        response.raise_for_status()
        payload = response.json()
        token = payload.get("access_token")
        if not token:
            raise RuntimeError("Spotify token response had no access_token")
        self._access_token = str(token)
        self._token_expires_at = time.time() + float(payload.get("expires_in", 3600))
        return self._access_token
