"""Wire and storage representation of sessions.

The JSON shape uses the camelCase keys browser clients poll for, so a
stored room can be rendered by any client without translation.
"""

from musical_wheelhouse.domain.models import (
    CLIP_DURATION_MS,
    Playback,
    Player,
    Playlist,
    SelectedPlaylist,
    Session,
    SolvedParts,
    Track,
)


def encode_playlist(playlist: Playlist) -> dict[str, object]:
    return {
        "id": playlist.id,
        "name": playlist.name,
        "description": playlist.description,
        "image": playlist.image,
        "trackCount": playlist.track_count,
    }


def decode_playlist(data: dict) -> Playlist:
    return Playlist(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        description=str(data.get("description") or ""),
        image=data.get("image"),
        track_count=int(data.get("trackCount") or 0),
    )


def encode_track(track: Track) -> dict[str, object]:
    return {
        "id": track.id,
        "name": track.name,
        "artist": track.artist,
        "album": track.album,
        "albumArt": track.album_art,
        "uri": track.uri,
        "previewUrl": track.preview_url,
    }


def decode_track(data: dict) -> Track:
    return Track(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        artist=str(data.get("artist", "")),
        album=str(data.get("album") or ""),
        album_art=data.get("albumArt"),
        uri=data.get("uri"),
        preview_url=data.get("previewUrl"),
    )


def _encode_player(player: Player) -> dict[str, object]:
    return {
        "id": player.id,
        "name": player.name,
        "playlist": encode_playlist(player.playlist),
        "score": player.score,
    }


def _decode_player(data: dict) -> Player:
    return Player(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        playlist=decode_playlist(data["playlist"]),
        score=int(data.get("score", 0)),
    )


def _encode_playback(playback: Playback | None) -> dict[str, object] | None:
    if playback is None:
        return None
    return {
        "trackUri": playback.track_uri,
        "previewUrl": playback.preview_url,
        "startedAt": playback.started_at,
        "isPlaying": playback.is_playing,
        "duration": playback.duration,
    }


def _decode_playback(data: dict | None) -> Playback | None:
    if not data:
        return None
    return Playback(
        track_uri=data.get("trackUri"),
        preview_url=data.get("previewUrl"),
        started_at=int(data.get("startedAt", 0)),
        is_playing=bool(data.get("isPlaying", False)),
        duration=int(data.get("duration", CLIP_DURATION_MS)),
    )


def encode_session(session: Session) -> dict[str, object]:
    """Encode a session into its JSON-compatible wire form."""
    selected = session.selected_playlist
    return {
        "roomCode": session.room_code,
        "hostId": session.host_id,
        "status": session.status,
        "players": [_encode_player(player) for player in session.players],
        "djIdx": session.dj_idx,
        "song": encode_track(session.song) if session.song else None,
        "playback": _encode_playback(session.playback),
        "history": list(session.history),
        "guessesUsed": dict(session.guesses_used),
        "solvedParts": {
            "song": session.solved_parts.song,
            "artist": session.solved_parts.artist,
        },
        "buzzed": session.buzzed,
        "mode": session.mode,
        "countdown": session.countdown,
        "djPickedOwn": session.dj_picked_own,
        "anyoneGuessedCorrectly": session.anyone_guessed_correctly,
        "round": session.round,
        "playlists": [encode_playlist(playlist) for playlist in session.playlists],
        "selectedPlaylist": (
            {"id": selected.id, "name": selected.name} if selected else None
        ),
    }


def decode_session(data: dict) -> Session:
    """Decode a session from its wire form."""
    solved = data.get("solvedParts") or {}
    selected = data.get("selectedPlaylist")
    song = data.get("song")
    return Session(
        room_code=str(data["roomCode"]),
        host_id=str(data["hostId"]),
        status=data.get("status", "lobby"),
        players=tuple(_decode_player(item) for item in data.get("players", [])),
        dj_idx=int(data.get("djIdx", 0)),
        song=decode_track(song) if song else None,
        playback=_decode_playback(data.get("playback")),
        history=tuple(str(item) for item in data.get("history", [])),
        guesses_used={
            str(key): int(value)
            for key, value in (data.get("guessesUsed") or {}).items()
        },
        solved_parts=SolvedParts(
            song=bool(solved.get("song", False)),
            artist=bool(solved.get("artist", False)),
        ),
        buzzed=data.get("buzzed"),
        mode=data.get("mode"),
        countdown=data.get("countdown"),
        dj_picked_own=bool(data.get("djPickedOwn", False)),
        anyone_guessed_correctly=bool(data.get("anyoneGuessedCorrectly", False)),
        round=int(data.get("round", 0)),
        playlists=tuple(decode_playlist(item) for item in data.get("playlists", [])),
        selected_playlist=(
            SelectedPlaylist(id=str(selected["id"]), name=str(selected.get("name", "")))
            if selected
            else None
        ),
    )
