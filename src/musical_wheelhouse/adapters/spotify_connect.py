"""Spotify Connect audio backend adapter."""

from dataclasses import dataclass

import httpx


@dataclass
class HttpxSpotifyConnectBackend:
    """Plays clips on one of the host's Spotify Connect devices."""

    access_token: str
    device_id: str | None
    http_client: httpx.AsyncClient
    api_base_url: str = "https://api.spotify.com/v1"

    @classmethod
    def create(
        cls, access_token: str, device_id: str | None
    ) -> "HttpxSpotifyConnectBackend":
        """Create a backend with a managed httpx session."""
        return cls(
            access_token=access_token,
            device_id=device_id,
            http_client=httpx.AsyncClient(),
        )

    @property
    def ready(self) -> bool:
        return bool(self.access_token and self.device_id)

    async def play(self, uri: str, remaining_ms: int) -> None:
        """Start a track on the device.

        The device plays until paused; the clip window is enforced by the
        playback timer, so ``remaining_ms`` is not sent.
        """
        response = await self.http_client.put(
            f"{self.api_base_url}/me/player/play",
            params={"device_id": self.device_id},
            json={"uris": [uri]},
            headers=self._headers(),
            timeout=10,
        )
        response.raise_for_status()

    async def pause(self) -> None:
        response = await self.http_client.put(
            f"{self.api_base_url}/me/player/pause",
            params={"device_id": self.device_id},
            headers=self._headers(),
            timeout=10,
        )
        response.raise_for_status()

    async def stop(self) -> None:
        await self.pause()

    async def get_devices(self) -> list[dict[str, object]]:
        """List the Connect devices available to the host account."""
        response = await self.http_client.get(
            f"{self.api_base_url}/me/player/devices",
            headers=self._headers(),
            timeout=10,
        )
        response.raise_for_status()
        return list(response.json().get("devices", []))

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}
