"""Pydantic models for room action payloads."""

from typing import Literal

from pydantic import BaseModel, Field


class AddPlayerRequest(BaseModel):
    """A player taking a seat with one of the room's playlists."""

    name: str = Field(min_length=1, max_length=40)
    playlist_id: str = Field(alias="playlistId")


class SelectPlaylistRequest(BaseModel):
    playlist_id: str = Field(alias="playlistId")


class BuzzRequest(BaseModel):
    player_idx: int = Field(alias="playerIdx", ge=0)


class SetModeRequest(BaseModel):
    mode: Literal["title", "artist", "both"]


class JudgeRequest(BaseModel):
    correct: bool


class AttachAudioRequest(BaseModel):
    """The host's Spotify Connect device to play clips on."""

    device_id: str = Field(alias="deviceId")
