"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    spotify_client_id: str
    spotify_client_secret: str
    spotify_api_base_url: str = "https://api.spotify.com/v1"
    spotify_accounts_url: str = "https://accounts.spotify.com/api/token"
    spotify_catalog_user_id: str | None = None
    room_store: str = "memory"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    rooms_table: str = "rooms"
    room_ttl_seconds: int | None = 6 * 3600
    allowed_host_ids: str | None = None
    catalog_cache_ttl_seconds: int = 86400
    preview_only_tracks: bool = False
    countdown_step_seconds: float = 1.0
    poll_interval_seconds: float = 0.5
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_allowed_host_ids(raw: str | None) -> set[str] | None:
    """Parse the comma-separated list of Spotify user ids allowed to host."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return None
    ids = {chunk.strip() for chunk in cleaned.split(",") if chunk.strip()}
    return ids or None
