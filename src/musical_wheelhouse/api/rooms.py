"""Room action endpoints."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from fastapi import APIRouter, Header, Request, WebSocket, WebSocketDisconnect, status

from musical_wheelhouse.api.models import (
    AddPlayerRequest,
    AttachAudioRequest,
    BuzzRequest,
    JudgeRequest,
    SelectPlaylistRequest,
    SetModeRequest,
)
from musical_wheelhouse.domain.codec import encode_playlist, encode_session
from musical_wheelhouse.domain.models import Session
from musical_wheelhouse.services import engine

if TYPE_CHECKING:
    from musical_wheelhouse.containers import AppContainer
    from musical_wheelhouse.services.game import GameService

router = APIRouter(prefix="/rooms", tags=["rooms"])


def _game(request: Request) -> GameService:
    container: AppContainer = request.app.state.container
    return container.game_service


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def _room(session: Session) -> dict[str, object]:
    return {"room": encode_session(session)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_room(
    request: Request, authorization: str | None = Header(default=None)
) -> dict[str, object]:
    """Create a room hosted by the caller's Spotify account."""
    session = await _game(request).create_room(bearer_token(authorization))
    return _room(session)


@router.get("/{code}")
async def get_room(code: str, request: Request) -> dict[str, object]:
    """Latest snapshot, for clients that poll."""
    return _room(_game(request).state(code.upper()))


@router.delete("/{code}", status_code=status.HTTP_204_NO_CONTENT)
async def close_room(code: str, request: Request) -> None:
    await _game(request).close_room(code.upper())


@router.post("/{code}/join")
async def join_room(code: str, request: Request) -> dict[str, object]:
    session, player_id = _game(request).join_room(code)
    return {"room": encode_session(session), "playerId": player_id}


@router.post("/{code}/playlists")
async def load_playlists(
    code: str, request: Request, authorization: str | None = Header(default=None)
) -> dict[str, object]:
    """Publish the host's playlists to the room."""
    session = await _game(request).load_playlists(
        code.upper(), bearer_token(authorization)
    )
    return _room(session)


@router.get("/{code}/available")
async def available_playlists(code: str, request: Request) -> dict[str, object]:
    playlists = _game(request).available(code.upper())
    return {"playlists": [encode_playlist(playlist) for playlist in playlists]}


@router.put("/{code}/players/{player_id}")
async def add_player(
    code: str, player_id: str, payload: AddPlayerRequest, request: Request
) -> dict[str, object]:
    session = _game(request).add_player(
        code.upper(), player_id, payload.name, payload.playlist_id
    )
    return _room(session)


@router.delete("/{code}/players/{player_id}")
async def remove_player(code: str, player_id: str, request: Request) -> dict[str, object]:
    return _room(_game(request).remove_player(code.upper(), player_id))


@router.post("/{code}/start")
async def start_game(code: str, request: Request) -> dict[str, object]:
    return _room(_game(request).start_game(code.upper()))


@router.post("/{code}/select")
async def select_playlist(
    code: str, payload: SelectPlaylistRequest, request: Request
) -> dict[str, object]:
    session = await _game(request).select_playlist(code.upper(), payload.playlist_id)
    return _room(session)


@router.post("/{code}/buzz")
async def buzz(code: str, payload: BuzzRequest, request: Request) -> dict[str, object]:
    return _room(_game(request).buzz(code.upper(), payload.player_idx))


@router.get("/{code}/options/{player_idx}")
async def guess_options(code: str, player_idx: int, request: Request) -> dict[str, object]:
    options = _game(request).options(code.upper(), player_idx)
    return {
        "title": options.title,
        "artist": options.artist,
        "both": options.both,
        "remaining": options.remaining,
    }


@router.post("/{code}/mode")
async def set_mode(
    code: str, payload: SetModeRequest, request: Request
) -> dict[str, object]:
    return _room(_game(request).set_mode(code.upper(), payload.mode))


@router.post("/{code}/cancel-buzz")
async def cancel_buzz(code: str, request: Request) -> dict[str, object]:
    return _room(_game(request).cancel_buzz(code.upper()))


@router.post("/{code}/judge")
async def judge(code: str, payload: JudgeRequest, request: Request) -> dict[str, object]:
    return _room(_game(request).judge(code.upper(), payload.correct))


@router.post("/{code}/skip")
async def skip_round(code: str, request: Request) -> dict[str, object]:
    return _room(_game(request).skip_round(code.upper()))


@router.post("/{code}/replay")
async def replay(code: str, request: Request) -> dict[str, object]:
    return _room(_game(request).replay(code.upper()))


@router.get("/{code}/standings")
async def standings(code: str, request: Request) -> dict[str, object]:
    session = _game(request).state(code.upper())
    return {
        "status": session.status,
        "players": [
            {"id": player.id, "name": player.name, "score": player.score}
            for player in engine.standings(session)
        ],
    }


@router.post("/{code}/audio", status_code=status.HTTP_204_NO_CONTENT)
async def attach_audio(
    code: str,
    payload: AttachAudioRequest,
    request: Request,
    authorization: str | None = Header(default=None),
) -> None:
    """Play this room's clips on one of the host's Connect devices."""
    await _game(request).attach_audio(
        code.upper(), bearer_token(authorization), payload.device_id
    )


@router.get("/{code}/devices")
async def list_devices(
    code: str, request: Request, authorization: str | None = Header(default=None)
) -> dict[str, object]:
    """List the host's Connect devices for the audio picker."""
    devices = await _game(request).list_devices(
        code.upper(), bearer_token(authorization)
    )
    return {
        "devices": [
            {
                "id": device.id,
                "name": device.name,
                "type": device.type,
                "isActive": device.is_active,
            }
            for device in devices
        ]
    }


@router.websocket("/{code}/ws")
async def room_updates(websocket: WebSocket, code: str) -> None:
    """Push each new snapshot of a room to the client."""
    container: AppContainer = websocket.app.state.container
    await websocket.accept()

    async def push() -> None:
        async for session in container.synchronizer.watch(
            code.upper(), container.settings.poll_interval_seconds
        ):
            await websocket.send_json(_room(session))

    pusher = asyncio.create_task(push())
    listener = asyncio.create_task(_until_disconnect(websocket))
    done, pending = await asyncio.wait(
        {pusher, listener}, return_when=asyncio.FIRST_COMPLETED
    )
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    if listener in done:
        return
    try:
        pusher.result()
    except WebSocketDisconnect:
        return
    # The room is gone.
    await websocket.close()


async def _until_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
