"""Tests for the session wire format."""

import json
from dataclasses import replace

from musical_wheelhouse.domain.codec import decode_session, encode_session
from musical_wheelhouse.services import engine
from tests.conftest import make_playlist, playing, with_round


def test_mid_round_session_survives_json_roundtrip() -> None:
    session = with_round(playing(3), "pl0")
    session = engine.set_playlists(session, [make_playlist("pl0"), make_playlist("pl1")])
    session = engine.set_mode(engine.buzz(session, 2), "artist")
    session = replace(session, countdown=2)

    wire = json.loads(json.dumps(encode_session(session)))

    assert decode_session(wire) == session


def test_encoded_keys_match_client_shape() -> None:
    session = with_round(playing(2), "pl1")

    wire = encode_session(session)

    assert wire["roomCode"] == "ABC123"
    assert wire["djIdx"] == 0
    assert wire["playback"]["isPlaying"] is False
    assert wire["playback"]["duration"] == 30000
    assert wire["solvedParts"] == {"song": False, "artist": False}
    assert wire["song"]["previewUrl"] == "https://p.scdn.co/t1"
    assert wire["selectedPlaylist"] == {"id": "pl1", "name": "Playlist pl1"}


def test_decode_tolerates_minimal_lobby_record() -> None:
    session = decode_session({"roomCode": "ZZZ999", "hostId": "h"})

    assert session == engine.new_session("ZZZ999", "h")
