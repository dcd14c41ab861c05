"""Turn-state machine for a game room.

Every function takes the current Session and returns a new one. Nothing
here performs I/O: clock readings, track lists and the random source are
passed in by the caller. Preconditions are checked up front, so a rejected
action never yields a partially updated session.
"""

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from musical_wheelhouse.domain.errors import (
    InsufficientPlayers,
    InvalidTransition,
    PlaylistTaken,
)
from musical_wheelhouse.domain.models import (
    DJ_PENALTY,
    GUESS_BUDGET,
    MODE_POINTS,
    OWN_PLAYLIST_BONUS,
    WIN_SCORE,
    GuessMode,
    GuessOptions,
    Player,
    Playback,
    Playlist,
    SelectedPlaylist,
    Session,
    SolvedParts,
    Track,
    guess_key,
)

_logger = logging.getLogger(__name__)

MIN_PLAYERS = 2


def new_session(room_code: str, host_id: str) -> Session:
    """Create an empty lobby for a room."""
    return Session(room_code=room_code, host_id=host_id)


# Lobby


def add_player(
    session: Session, player_id: str, name: str, playlist: Playlist
) -> Session:
    """Seat a player, or update their name and playlist if already seated."""
    _require_status(session, "lobby", "join the room")
    for player in session.players:
        if player.playlist.id == playlist.id and player.id != player_id:
            raise PlaylistTaken(playlist.id)

    index = _player_index(session, player_id)
    if index is None:
        players = (*session.players, Player(id=player_id, name=name, playlist=playlist))
    else:
        updated = replace(session.players[index], name=name, playlist=playlist)
        players = _replace_at(session.players, index, updated)
    return replace(session, players=players)


def remove_player(session: Session, player_id: str) -> Session:
    _require_status(session, "lobby", "leave the room")
    index = _player_index(session, player_id)
    if index is None:
        raise InvalidTransition(f"Player {player_id} is not in this room")
    players = session.players[:index] + session.players[index + 1 :]
    return replace(session, players=players)


def set_playlists(session: Session, playlists: Sequence[Playlist]) -> Session:
    """Publish the host's catalog playlists so every client can pick one."""
    if session.status == "gameOver":
        raise InvalidTransition("The game is over")
    return replace(session, playlists=tuple(playlists))


def start_game(session: Session) -> Session:
    _require_status(session, "lobby", "start the game")
    if len(session.players) < MIN_PLAYERS:
        raise InsufficientPlayers(len(session.players), MIN_PLAYERS)
    return replace(session, status="playing", dj_idx=0)


# Rounds


def get_available(session: Session) -> list[Playlist]:
    """Return the playlists the DJ may pick from this round.

    A playlist chosen within the last ``max(1, N // 2)`` rounds is held back,
    so the spacing between repeats grows with the table.
    """
    blocked_rounds = max(1, len(session.players) // 2)
    recent = set(session.history[-blocked_rounds:])
    return [
        player.playlist
        for player in session.players
        if player.playlist.id not in recent
    ]


def select_playlist(
    session: Session,
    playlist_id: str,
    tracks: Sequence[Track],
    *,
    now: int,
    rng: random.Random | None = None,
) -> Session:
    """Start a round from one of the DJ's available playlists.

    Playback is queued paused; the timing controller starts it once the
    countdown completes.
    """
    _require_status(session, "playing", "pick a playlist")
    if session.song is not None:
        raise InvalidTransition("A song is already playing this round")
    available = {playlist.id: playlist for playlist in get_available(session)}
    playlist = available.get(playlist_id)
    if playlist is None:
        raise InvalidTransition(f"Playlist {playlist_id} is not available this round")
    if not tracks:
        raise InvalidTransition(f"Playlist {playlist.name} has no playable tracks")

    song = tracks[(rng or random).randrange(len(tracks))]
    dj = session.players[session.dj_idx]
    picked_own = dj.playlist.id == playlist_id
    players = session.players
    if picked_own:
        players = _adjust_score(players, session.dj_idx, OWN_PLAYLIST_BONUS)

    return replace(
        session,
        players=players,
        song=song,
        playback=Playback(
            track_uri=song.uri,
            preview_url=song.preview_url,
            started_at=now,
            is_playing=False,
        ),
        history=(*session.history, playlist_id),
        guesses_used={},
        solved_parts=SolvedParts(),
        buzzed=None,
        mode=None,
        countdown=None,
        dj_picked_own=picked_own,
        anyone_guessed_correctly=False,
        round=session.round + 1,
        selected_playlist=SelectedPlaylist(id=playlist.id, name=playlist.name),
    )


def get_options(session: Session, player_idx: int) -> GuessOptions:
    """Return which guess categories a player may still commit to."""
    used = session.guesses_used.get(guess_key(player_idx), 0)
    remaining = max(0, GUESS_BUDGET - used)
    solved = session.solved_parts
    return GuessOptions(
        title=not solved.song and remaining > 0,
        artist=not solved.artist and remaining > 0,
        both=not solved.song and not solved.artist and remaining > 0,
        remaining=remaining,
    )


def buzz(session: Session, player_idx: int) -> Session:
    """Give a player the floor and pause the clip."""
    _require_status(session, "playing", "buzz in")
    if not 0 <= player_idx < len(session.players):
        raise InvalidTransition(f"No player at seat {player_idx}")
    if player_idx == session.dj_idx:
        raise InvalidTransition("The DJ cannot buzz in")
    if session.song is None:
        raise InvalidTransition("No song is playing yet")
    if session.buzzed is not None:
        raise InvalidTransition("Someone else already buzzed in")
    if get_options(session, player_idx).remaining == 0:
        raise InvalidTransition("No guesses left this round")
    return replace(
        session,
        buzzed=player_idx,
        countdown=None,
        playback=_paused(session.playback),
    )


def set_mode(session: Session, mode: GuessMode) -> Session:
    """Record what the buzzed player is going to guess."""
    _require_status(session, "playing", "choose a guess")
    if session.buzzed is None:
        raise InvalidTransition("Nobody has buzzed in")
    if session.mode is not None:
        raise InvalidTransition(f"Already guessing {session.mode}")
    if mode not in MODE_POINTS:
        raise InvalidTransition(f"Unknown guess category {mode!r}")
    if not get_options(session, session.buzzed).allows(mode):
        raise InvalidTransition(f"Cannot guess {mode} right now")
    return replace(session, mode=mode)


def cancel_buzz(session: Session) -> Session:
    """Release the floor without spending a guess."""
    _require_status(session, "playing", "cancel a buzz")
    if session.buzzed is None:
        raise InvalidTransition("Nobody has buzzed in")
    return replace(session, buzzed=None, mode=None)


def judge(session: Session, correct: bool) -> Session:
    """Apply the DJ's verdict on the buzzed player's spoken guess."""
    _require_status(session, "playing", "judge a guess")
    if session.buzzed is None:
        raise InvalidTransition("Nobody has buzzed in")

    guesser = session.buzzed
    key = guess_key(guesser)
    guesses_used = {**session.guesses_used, key: session.guesses_used.get(key, 0) + 1}

    if correct and session.mode is not None:
        mode = session.mode
        players = _adjust_score(session.players, guesser, MODE_POINTS[mode])
        solved = SolvedParts(
            song=session.solved_parts.song or mode in ("title", "both"),
            artist=session.solved_parts.artist or mode in ("artist", "both"),
        )
        judged = replace(
            session,
            players=players,
            guesses_used=guesses_used,
            solved_parts=solved,
            anyone_guessed_correctly=True,
        )
        if solved.complete:
            return next_round(judged, players, someone_guessed_correctly=True)
        return _reopen_floor(judged)

    judged = replace(session, guesses_used=guesses_used)
    if _guesses_exhausted(judged):
        players = session.players
        if not session.anyone_guessed_correctly:
            players = _adjust_score(players, session.dj_idx, -DJ_PENALTY)
        return next_round(judged, players, session.anyone_guessed_correctly)
    return _reopen_floor(judged)


def skip_round(session: Session) -> Session:
    """End the round early; the DJ loses a point unless someone scored."""
    _require_status(session, "playing", "skip the round")
    if session.song is None:
        raise InvalidTransition("No round in progress")
    players = session.players
    if not session.anyone_guessed_correctly:
        players = _adjust_score(players, session.dj_idx, -DJ_PENALTY)
    return next_round(session, players, session.anyone_guessed_correctly)


def next_round(
    session: Session,
    players: Sequence[Player] | None = None,
    someone_guessed_correctly: bool = False,
) -> Session:
    """Close the round: end the game on a winning score or pass the DJ seat on."""
    players = tuple(players if players is not None else session.players)
    if any(player.score >= WIN_SCORE for player in players):
        _logger.info("Game over in room %s", session.room_code)
        return replace(
            session,
            status="gameOver",
            players=players,
            buzzed=None,
            mode=None,
            countdown=None,
            playback=_paused(session.playback),
        )

    dj_idx = (session.dj_idx + 1) % len(players)
    _logger.info(
        "Room %s round %s closed (guessed=%s), DJ seat %s -> %s",
        session.room_code,
        session.round,
        someone_guessed_correctly,
        session.dj_idx,
        dj_idx,
    )
    return replace(
        session,
        players=players,
        dj_idx=dj_idx,
        song=None,
        playback=None,
        guesses_used={},
        solved_parts=SolvedParts(),
        buzzed=None,
        mode=None,
        countdown=None,
        dj_picked_own=False,
        anyone_guessed_correctly=False,
        selected_playlist=None,
    )


def standings(session: Session) -> list[Player]:
    """Players ordered by score, ties kept in seat order."""
    return sorted(session.players, key=lambda player: -player.score)


def winner(session: Session) -> Player | None:
    ranked = standings(session)
    return ranked[0] if ranked else None


# Timing transitions


def is_cycle_current(session: Session, round_index: int) -> bool:
    """Whether a countdown/playback cycle scheduled for a round may still act."""
    return (
        session.status == "playing"
        and session.round == round_index
        and session.playback is not None
        and session.buzzed is None
    )


def countdown_tick(session: Session, value: int, round_index: int) -> Session:
    if not is_cycle_current(session, round_index):
        return session
    return replace(session, countdown=value, playback=_paused(session.playback))


def begin_playback(session: Session, now: int, round_index: int) -> Session:
    """Countdown finished: start the clip and reset its clock to zero."""
    if not is_cycle_current(session, round_index):
        return session
    return replace(
        session,
        countdown=None,
        playback=replace(session.playback, is_playing=True, started_at=now),
    )


def auto_stop(session: Session, round_index: int, started_at: int) -> Session:
    """Stop the clip when its window elapses, unless the cycle is stale."""
    playback = session.playback
    if (
        session.round != round_index
        or playback is None
        or not playback.is_playing
        or playback.started_at != started_at
    ):
        return session
    return replace(session, playback=_paused(playback))


# Explicit actions


@dataclass(frozen=True)
class AddPlayer:
    player_id: str
    name: str
    playlist: Playlist


@dataclass(frozen=True)
class RemovePlayer:
    player_id: str


@dataclass(frozen=True)
class SetPlaylists:
    playlists: tuple[Playlist, ...]


@dataclass(frozen=True)
class StartGame:
    pass


@dataclass(frozen=True)
class SelectPlaylist:
    playlist_id: str
    tracks: tuple[Track, ...]
    now: int
    rng: random.Random | None = None


@dataclass(frozen=True)
class Buzz:
    player_idx: int


@dataclass(frozen=True)
class SetMode:
    mode: GuessMode


@dataclass(frozen=True)
class CancelBuzz:
    pass


@dataclass(frozen=True)
class Judge:
    correct: bool


@dataclass(frozen=True)
class SkipRound:
    pass


@dataclass(frozen=True)
class CountdownTick:
    value: int
    round_index: int


@dataclass(frozen=True)
class BeginPlayback:
    now: int
    round_index: int


@dataclass(frozen=True)
class AutoStop:
    round_index: int
    started_at: int


Action = (
    AddPlayer
    | RemovePlayer
    | SetPlaylists
    | StartGame
    | SelectPlaylist
    | Buzz
    | SetMode
    | CancelBuzz
    | Judge
    | SkipRound
    | CountdownTick
    | BeginPlayback
    | AutoStop
)

_Handler = Callable[[Session, Action], Session]

_LOBBY: dict[type, _Handler] = {
    AddPlayer: lambda s, a: add_player(s, a.player_id, a.name, a.playlist),
    RemovePlayer: lambda s, a: remove_player(s, a.player_id),
    SetPlaylists: lambda s, a: set_playlists(s, a.playlists),
    StartGame: lambda s, a: start_game(s),
}

_PLAYING: dict[type, _Handler] = {
    SetPlaylists: lambda s, a: set_playlists(s, a.playlists),
    SelectPlaylist: lambda s, a: select_playlist(
        s, a.playlist_id, a.tracks, now=a.now, rng=a.rng
    ),
    Buzz: lambda s, a: buzz(s, a.player_idx),
    SetMode: lambda s, a: set_mode(s, a.mode),
    CancelBuzz: lambda s, a: cancel_buzz(s),
    Judge: lambda s, a: judge(s, a.correct),
    SkipRound: lambda s, a: skip_round(s),
    CountdownTick: lambda s, a: countdown_tick(s, a.value, a.round_index),
    BeginPlayback: lambda s, a: begin_playback(s, a.now, a.round_index),
    AutoStop: lambda s, a: auto_stop(s, a.round_index, a.started_at),
}

# Timers still in flight when the game ends are ignored rather than rejected.
_GAME_OVER: dict[type, _Handler] = {
    CountdownTick: lambda s, a: s,
    BeginPlayback: lambda s, a: s,
    AutoStop: lambda s, a: auto_stop(s, a.round_index, a.started_at),
}

TRANSITIONS: dict[str, dict[type, _Handler]] = {
    "lobby": _LOBBY,
    "playing": _PLAYING,
    "gameOver": _GAME_OVER,
}


def apply(session: Session, action: Action) -> Session:
    """Apply an action through the transition table of the current status."""
    handler = TRANSITIONS[session.status].get(type(action))
    if handler is None:
        raise InvalidTransition(
            f"{type(action).__name__} is not allowed while the room is {session.status}"
        )
    return handler(session, action)


def _require_status(session: Session, status: str, action: str) -> None:
    if session.status != status:
        raise InvalidTransition(f"Cannot {action} while the room is {session.status}")


def _player_index(session: Session, player_id: str) -> int | None:
    for index, player in enumerate(session.players):
        if player.id == player_id:
            return index
    return None


def _replace_at(
    players: tuple[Player, ...], index: int, player: Player
) -> tuple[Player, ...]:
    return players[:index] + (player,) + players[index + 1 :]


def _adjust_score(
    players: Sequence[Player], index: int, delta: int
) -> tuple[Player, ...]:
    players = tuple(players)
    player = players[index]
    return _replace_at(players, index, replace(player, score=max(0, player.score + delta)))


def _paused(playback: Playback | None) -> Playback | None:
    if playback is None or not playback.is_playing:
        return playback
    return replace(playback, is_playing=False)


def _guesses_exhausted(session: Session) -> bool:
    return all(
        session.guesses_used.get(guess_key(index), 0) >= GUESS_BUDGET
        for index in range(len(session.players))
        if index != session.dj_idx
    )


def _reopen_floor(session: Session) -> Session:
    """Clear the floor so the remaining guessers get another listen."""
    return replace(
        session,
        buzzed=None,
        mode=None,
        countdown=None,
        playback=_paused(session.playback),
    )
