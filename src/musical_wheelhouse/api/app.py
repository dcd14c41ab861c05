"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from musical_wheelhouse.api.catalog import router as catalog_router
from musical_wheelhouse.api.rooms import router as rooms_router
from musical_wheelhouse.app_logging import configure_logging
from musical_wheelhouse.containers import AppContainer
from musical_wheelhouse.domain.errors import (
    GameError,
    HostNotAuthorized,
    RoomNotFound,
    UpstreamUnavailable,
)

_STATUS_BY_ERROR: dict[type[GameError], int] = {
    RoomNotFound: status.HTTP_404_NOT_FOUND,
    HostNotAuthorized: status.HTTP_401_UNAUTHORIZED,
    UpstreamUnavailable: status.HTTP_502_BAD_GATEWAY,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(rooms_router)
    app.include_router(catalog_router)

    @app.exception_handler(GameError)
    async def game_error_handler(request: Request, exc: GameError) -> JSONResponse:
        """Report a rejected action with a reason the client can show."""
        status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_409_CONFLICT)
        if status_code >= 500:
            logger.warning("Upstream failure on %s: %s", request.url.path, exc.reason)
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.kind, "reason": exc.reason},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
