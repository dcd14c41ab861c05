"""Tests for the game turn-state machine."""

import random
from dataclasses import replace

import pytest

from musical_wheelhouse.domain.errors import (
    InsufficientPlayers,
    InvalidTransition,
    PlaylistTaken,
)
from musical_wheelhouse.domain.models import Playback, SolvedParts
from musical_wheelhouse.services import engine
from tests.conftest import (
    lobby,
    make_playlist,
    make_track,
    playing,
    with_round,
    with_scores,
)


def _guess(session, player_idx, mode, correct):
    session = engine.buzz(session, player_idx)
    if mode is not None:
        session = engine.set_mode(session, mode)
    return engine.judge(session, correct)


def test_add_player_resubmission_replaces_in_place() -> None:
    session = lobby(2)

    session = engine.add_player(session, "p0", "Renamed", make_playlist("pl9"))

    assert [player.id for player in session.players] == ["p0", "p1"]
    assert session.players[0].name == "Renamed"
    assert session.players[0].playlist.id == "pl9"


def test_add_player_rejects_taken_playlist() -> None:
    session = lobby(2)

    with pytest.raises(PlaylistTaken) as excinfo:
        engine.add_player(session, "p2", "Late", make_playlist("pl1"))

    assert "pl1" in excinfo.value.reason
    assert len(session.players) == 2


def test_add_player_allows_keeping_own_playlist() -> None:
    session = engine.add_player(lobby(2), "p1", "Still Me", make_playlist("pl1"))

    assert session.players[1].name == "Still Me"


def test_remove_player_in_lobby() -> None:
    session = engine.remove_player(lobby(3), "p1")

    assert [player.id for player in session.players] == ["p0", "p2"]
    with pytest.raises(InvalidTransition):
        engine.remove_player(session, "missing")


def test_start_game_requires_two_players() -> None:
    with pytest.raises(InsufficientPlayers):
        engine.start_game(lobby(1))

    session = engine.start_game(lobby(2))

    assert session.status == "playing"
    assert session.dj_idx == 0


def test_lobby_actions_rejected_once_playing() -> None:
    session = playing(2)

    with pytest.raises(InvalidTransition):
        engine.add_player(session, "p9", "Late", make_playlist("pl9"))
    with pytest.raises(InvalidTransition):
        engine.start_game(session)


@pytest.mark.parametrize(
    ("players", "history", "excluded"),
    [
        (2, [], set()),
        (2, ["pl0"], {"pl0"}),
        (3, ["pl0", "pl1"], {"pl1"}),
        (4, ["pl0", "pl1"], {"pl0", "pl1"}),
        (4, ["pl0", "pl1", "pl2"], {"pl1", "pl2"}),
        (6, ["pl0", "pl1", "pl2", "pl3"], {"pl1", "pl2", "pl3"}),
    ],
)
def test_get_available_blocks_recent_history(players, history, excluded) -> None:
    session = replace(playing(players), history=tuple(history))

    available = {playlist.id for playlist in engine.get_available(session)}

    assert available == {f"pl{i}" for i in range(players)} - excluded


def test_select_own_playlist_awards_dj_immediately() -> None:
    session = engine.select_playlist(
        playing(2), "pl0", [make_track("t1")], now=5_000, rng=random.Random(1)
    )

    assert session.dj_picked_own is True
    assert session.players[0].score == 1
    assert session.song.id == "t1"
    assert session.playback == Playback(
        track_uri="spotify:track:t1",
        preview_url="https://p.scdn.co/t1",
        started_at=5_000,
        is_playing=False,
        duration=30000,
    )
    assert session.history == ("pl0",)
    assert session.round == 1
    assert session.selected_playlist.id == "pl0"


def test_select_other_playlist_gives_no_bonus() -> None:
    session = with_round(playing(2), "pl1")

    assert session.dj_picked_own is False
    assert [player.score for player in session.players] == [0, 0]


def test_select_playlist_picks_from_track_list() -> None:
    tracks = [make_track(f"t{i}") for i in range(5)]

    picked = {
        engine.select_playlist(
            playing(2), "pl1", tracks, now=0, rng=random.Random(seed)
        ).song.id
        for seed in range(30)
    }

    assert picked <= {track.id for track in tracks}
    assert len(picked) > 1


def test_select_playlist_preconditions() -> None:
    session = playing(2)

    with pytest.raises(InvalidTransition):
        engine.select_playlist(session, "pl1", [], now=0)
    with pytest.raises(InvalidTransition):
        engine.select_playlist(session, "nope", [make_track("t1")], now=0)
    with pytest.raises(InvalidTransition):
        engine.select_playlist(with_round(session), "pl1", [make_track("t2")], now=0)
    with pytest.raises(InvalidTransition):
        engine.select_playlist(lobby(2), "pl1", [make_track("t1")], now=0)


def test_buzz_pauses_playback() -> None:
    session = with_round(playing(2))
    session = replace(session, playback=replace(session.playback, is_playing=True))

    session = engine.buzz(session, 1)

    assert session.buzzed == 1
    assert session.playback.is_playing is False


@pytest.mark.parametrize("reason", ["dj", "no_song", "taken", "exhausted", "range"])
def test_buzz_rejections(reason) -> None:
    session = with_round(playing(3))
    seat = 1
    if reason == "dj":
        seat = 0
    elif reason == "no_song":
        session = playing(3)
    elif reason == "taken":
        session = engine.buzz(session, 2)
    elif reason == "exhausted":
        session = replace(session, guesses_used={"p1": 2})
    elif reason == "range":
        seat = 7

    with pytest.raises(InvalidTransition):
        engine.buzz(session, seat)


def test_get_options_follow_solved_parts_and_budget() -> None:
    session = with_round(playing(2))
    assert engine.get_options(session, 1).remaining == 2
    assert engine.get_options(session, 1).both is True

    session = replace(session, solved_parts=SolvedParts(song=True), guesses_used={"p1": 1})
    options = engine.get_options(session, 1)

    assert (options.title, options.artist, options.both) == (False, True, False)
    assert options.remaining == 1

    spent = engine.get_options(replace(session, guesses_used={"p1": 2}), 1)
    assert (spent.title, spent.artist, spent.both, spent.remaining) == (
        False,
        False,
        False,
        0,
    )


def test_set_mode_preconditions() -> None:
    session = with_round(playing(2))

    with pytest.raises(InvalidTransition):
        engine.set_mode(session, "title")

    buzzed = engine.buzz(session, 1)
    chosen = engine.set_mode(buzzed, "title")
    assert chosen.mode == "title"
    with pytest.raises(InvalidTransition):
        engine.set_mode(chosen, "artist")

    solved = replace(buzzed, solved_parts=SolvedParts(song=True))
    with pytest.raises(InvalidTransition):
        engine.set_mode(solved, "title")
    with pytest.raises(InvalidTransition):
        engine.set_mode(solved, "both")


def test_cancel_buzz_releases_floor_without_spending_guess() -> None:
    session = engine.set_mode(engine.buzz(with_round(playing(2)), 1), "both")

    session = engine.cancel_buzz(session)

    assert session.buzzed is None
    assert session.mode is None
    assert session.guesses_used == {}
    with pytest.raises(InvalidTransition):
        engine.cancel_buzz(session)


def test_two_player_round_title_then_artist() -> None:
    session = with_round(playing(2), "pl0")
    assert session.players[0].score == 1

    session = _guess(session, 1, "title", correct=True)

    assert session.players[1].score == 2
    assert session.solved_parts == SolvedParts(song=True, artist=False)
    assert session.buzzed is None
    assert session.mode is None
    assert session.song is not None
    assert session.anyone_guessed_correctly is True
    assert session.guesses_used == {"p1": 1}

    session = _guess(session, 1, "artist", correct=True)

    assert session.players[1].score == 3
    assert session.players[0].score == 1
    assert session.dj_idx == 1
    assert session.song is None
    assert session.playback is None
    assert session.solved_parts == SolvedParts()
    assert session.guesses_used == {}


def test_judge_both_resolves_round() -> None:
    session = with_round(playing(3), "pl1")

    session = _guess(session, 2, "both", correct=True)

    assert session.players[2].score == 4
    assert session.dj_idx == 1
    assert session.song is None
    assert session.status == "playing"


def test_judge_increments_guesses_by_one() -> None:
    session = with_round(playing(3))

    session = _guess(session, 1, "title", correct=False)

    assert session.guesses_used == {"p1": 1}
    assert session.buzzed is None
    assert session.song is not None


def test_judge_correct_without_mode_counts_as_miss() -> None:
    session = engine.buzz(with_round(playing(2), "pl1"), 1)

    session = engine.judge(session, True)

    assert session.guesses_used == {"p1": 1}
    assert [player.score for player in session.players] == [0, 0]
    assert session.solved_parts == SolvedParts()


def test_judge_requires_buzz() -> None:
    with pytest.raises(InvalidTransition):
        engine.judge(with_round(playing(2)), True)


def test_three_players_exhaust_guesses_penalizes_dj() -> None:
    session = with_round(with_scores(playing(3), 5, 0, 0), "pl1")

    for seat in (1, 2, 1, 2):
        session = _guess(session, seat, "title", correct=False)

    assert session.players[0].score == 4
    assert session.dj_idx == 1
    assert session.song is None


def test_exhaustion_after_correct_guess_spares_dj() -> None:
    session = with_round(with_scores(playing(3), 5, 0, 0), "pl1")

    session = _guess(session, 1, "title", correct=True)
    for seat in (1, 2, 2):
        session = _guess(session, seat, "artist", correct=False)

    assert session.players[0].score == 5
    assert session.players[1].score == 2
    assert session.dj_idx == 1


def test_dj_penalty_clamps_at_zero() -> None:
    session = with_round(playing(2), "pl1")

    session = engine.skip_round(session)

    assert session.players[0].score == 0
    assert session.dj_idx == 1


def test_skip_round_applies_penalty_unless_someone_scored() -> None:
    session = with_round(with_scores(playing(3), 3, 0, 0), "pl1")
    penalized = engine.skip_round(session)
    assert penalized.players[0].score == 2

    guessed = _guess(session, 2, "artist", correct=True)
    spared = engine.skip_round(guessed)
    assert spared.players[0].score == 3
    assert spared.players[2].score == 1


def test_skip_round_requires_round() -> None:
    with pytest.raises(InvalidTransition):
        engine.skip_round(playing(2))


def test_next_round_ends_game_at_win_score() -> None:
    session = with_round(with_scores(playing(2), 0, 16), "pl1")

    session = _guess(session, 1, "both", correct=True)

    assert session.status == "gameOver"
    assert session.players[1].score == 20
    assert engine.winner(session).id == "p1"
    with pytest.raises(InvalidTransition):
        engine.skip_round(session)


def test_next_round_below_threshold_keeps_playing() -> None:
    session = with_scores(with_round(playing(2), "pl1"), 19, 19)

    session = engine.next_round(session)

    assert session.status == "playing"
    assert session.dj_idx == 1
    assert session.buzzed is None
    assert session.mode is None
    assert session.playback is None


def test_dj_rotation_stays_in_range() -> None:
    session = playing(3)
    seen = []

    for _ in range(7):
        session = engine.skip_round(with_round(session))
        assert 0 <= session.dj_idx < len(session.players)
        seen.append(session.dj_idx)

    assert seen == [1, 2, 0, 1, 2, 0, 1]


def test_apply_dispatches_per_status() -> None:
    session = engine.apply(lobby(2), engine.StartGame())
    assert session.status == "playing"

    with pytest.raises(InvalidTransition):
        engine.apply(lobby(2), engine.Buzz(1))
    with pytest.raises(InvalidTransition):
        engine.apply(session, engine.StartGame())

    session = engine.apply(
        session,
        engine.SelectPlaylist("pl1", (make_track("t1"),), now=0, rng=random.Random(0)),
    )
    session = engine.apply(session, engine.Buzz(1))
    session = engine.apply(session, engine.SetMode("both"))
    session = engine.apply(session, engine.Judge(True))
    assert session.players[1].score == 4


def test_game_over_ignores_late_timers() -> None:
    session = replace(with_round(playing(2)), status="gameOver")

    assert engine.apply(session, engine.CountdownTick(2, session.round)) is session
    with pytest.raises(InvalidTransition):
        engine.apply(session, engine.Buzz(1))


def test_timing_transitions_detect_stale_rounds() -> None:
    session = with_round(playing(2), now=1_000)

    ticked = engine.countdown_tick(session, 3, session.round)
    assert ticked.countdown == 3
    assert engine.countdown_tick(session, 3, session.round - 1) is session

    started = engine.begin_playback(ticked, 2_000, session.round)
    assert started.countdown is None
    assert started.playback.is_playing is True
    assert started.playback.started_at == 2_000

    assert engine.auto_stop(started, session.round, 1_000) is started
    stopped = engine.auto_stop(started, session.round, 2_000)
    assert stopped.playback.is_playing is False

    buzzed = engine.buzz(started, 1)
    assert engine.begin_playback(buzzed, 3_000, session.round) is buzzed


def test_standings_order_by_score() -> None:
    session = with_scores(playing(3), 4, 9, 4)

    assert [player.id for player in engine.standings(session)] == ["p1", "p0", "p2"]


def test_set_playlists_publishes_catalog() -> None:
    session = engine.set_playlists(lobby(0), [make_playlist("x"), make_playlist("y")])

    assert [playlist.id for playlist in session.playlists] == ["x", "y"]


def test_guess_counters_are_read_only_per_snapshot() -> None:
    before = _guess(with_round(playing(3)), 1, "title", correct=False)
    seeded = replace(before, guesses_used={"p2": 1})

    after = _guess(before, 2, "artist", correct=False)

    with pytest.raises(TypeError):
        before.guesses_used["p1"] = 5  # type: ignore[index]
    assert before.guesses_used == {"p1": 1}
    assert seeded.guesses_used == {"p2": 1}
    assert after.guesses_used == {"p1": 1, "p2": 1}
