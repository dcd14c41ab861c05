"""Errors raised by the game engine and its collaborators."""


class GameError(Exception):
    """Base error carrying a reason that can be shown to players."""

    kind = "GameError"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class PlaylistTaken(GameError):
    kind = "PlaylistTaken"

    def __init__(self, playlist_id: str) -> None:
        self.playlist_id = playlist_id
        super().__init__(f"Playlist {playlist_id} is already taken")


class InsufficientPlayers(GameError):
    kind = "InsufficientPlayers"

    def __init__(self, count: int, required: int = 2) -> None:
        self.count = count
        self.required = required
        super().__init__(f"Need at least {required} players, have {count}")


class InvalidTransition(GameError):
    """An action was attempted in the wrong status or with a stale precondition."""

    kind = "InvalidTransition"


class RoomNotFound(GameError):
    kind = "RoomNotFound"

    def __init__(self, room_code: str) -> None:
        self.room_code = room_code
        super().__init__(f"Room {room_code} not found")


class UpstreamUnavailable(GameError):
    """The music catalog or audio backend failed."""

    kind = "UpstreamUnavailable"


class HostNotAuthorized(GameError):
    kind = "HostNotAuthorized"
