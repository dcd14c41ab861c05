"""Domain models for game sessions."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal

Status = Literal["lobby", "playing", "gameOver"]
GuessMode = Literal["title", "artist", "both"]

WIN_SCORE = 20
GUESS_BUDGET = 2
CLIP_DURATION_MS = 30000
COUNTDOWN_START = 3
OWN_PLAYLIST_BONUS = 1
DJ_PENALTY = 1
MODE_POINTS: dict[str, int] = {"both": 4, "title": 2, "artist": 1}


@dataclass(frozen=True)
class Playlist:
    """A playlist a player contributes to the room."""

    id: str
    name: str
    description: str = ""
    image: str | None = None
    track_count: int = 0


@dataclass(frozen=True)
class Track:
    """A playable track from the music catalog."""

    id: str
    name: str
    artist: str
    album: str = ""
    album_art: str | None = None
    uri: str | None = None
    preview_url: str | None = None


@dataclass(frozen=True)
class Player:
    """A participant seated in the room."""

    id: str
    name: str
    playlist: Playlist
    score: int = 0


@dataclass(frozen=True)
class Playback:
    """Descriptor of the clip currently queued for the audio backend."""

    track_uri: str | None
    preview_url: str | None
    started_at: int
    is_playing: bool = False
    duration: int = CLIP_DURATION_MS


@dataclass(frozen=True)
class SolvedParts:
    """Which answer components were guessed this round."""

    song: bool = False
    artist: bool = False

    @property
    def complete(self) -> bool:
        return self.song and self.artist


@dataclass(frozen=True)
class SelectedPlaylist:
    id: str
    name: str


@dataclass(frozen=True)
class GuessOptions:
    """Guess categories still open to a player."""

    title: bool
    artist: bool
    both: bool
    remaining: int

    def allows(self, mode: str) -> bool:
        return bool(getattr(self, mode, False))


@dataclass(frozen=True)
class HostIdentity:
    """Authenticated streaming-provider account acting as host."""

    user_id: str
    display_name: str | None = None


@dataclass(frozen=True)
class AudioDevice:
    """A Connect device the host can play clips on."""

    id: str
    name: str
    type: str = ""
    is_active: bool = False


@dataclass(frozen=True)
class Session:
    """Complete shared state of one room.

    Every transition returns a new instance; nothing mutates a Session
    in place.
    """

    room_code: str
    host_id: str
    status: Status = "lobby"
    players: tuple[Player, ...] = ()
    dj_idx: int = 0
    song: Track | None = None
    playback: Playback | None = None
    history: tuple[str, ...] = ()
    guesses_used: Mapping[str, int] = field(default_factory=dict)
    solved_parts: SolvedParts = SolvedParts()
    buzzed: int | None = None
    mode: GuessMode | None = None
    countdown: int | None = None
    dj_picked_own: bool = False
    anyone_guessed_correctly: bool = False
    round: int = 0
    playlists: tuple[Playlist, ...] = ()
    selected_playlist: SelectedPlaylist | None = None

    def __post_init__(self) -> None:
        # Snapshots never share a mutable counter table.
        object.__setattr__(
            self, "guesses_used", MappingProxyType(dict(self.guesses_used))
        )

    @property
    def dj(self) -> Player | None:
        if 0 <= self.dj_idx < len(self.players):
            return self.players[self.dj_idx]
        return None


def guess_key(player_idx: int) -> str:
    """Key used in ``guesses_used`` for a player index."""
    return f"p{player_idx}"
