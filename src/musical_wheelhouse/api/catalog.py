"""Catalog maintenance endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Header, Request

from musical_wheelhouse.api.rooms import bearer_token

if TYPE_CHECKING:
    from musical_wheelhouse.containers import AppContainer

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.post("/cache/clear")
async def clear_cache(
    request: Request, authorization: str | None = Header(default=None)
) -> dict[str, str]:
    """Drop cached playlists and tracks so the next lookup refetches them."""
    container: AppContainer = request.app.state.container
    await container.host_service.authorize(bearer_token(authorization))
    container.catalog_service.clear()
    return {"message": "Cache cleared"}
