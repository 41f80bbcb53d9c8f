"""Pydantic models for the upstream and downstream payload fields we consume."""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class LastFMArtist(BaseModel):
    text: str = Field(alias="#text")


class LastFMTrackAttr(BaseModel):
    nowplaying: Optional[bool] = None

    @field_validator("nowplaying", mode="before")
    @classmethod
    def _parse_flag(cls, value: Any) -> Optional[bool]:
        # Last.fm encodes the flag as the strings "true"/"false".
        if isinstance(value, bool):
            return value
        if value == "true":
            return True
        if value == "false":
            return False
        return None


class LastFMTrack(BaseModel):
    artist: LastFMArtist
    name: str
    attr: Optional[LastFMTrackAttr] = Field(default=None, alias="@attr")


class LastFMRecentTracks(BaseModel):
    track: List[LastFMTrack] = Field(default_factory=list)

    @field_validator("track", mode="before")
    @classmethod
    def _wrap_single(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [value]
        return value


class LastFMRecentTracksResponse(BaseModel):
    recenttracks: LastFMRecentTracks


class LastFMErrorBody(BaseModel):
    error: int
    message: str = ""


class ListenBrainzTrackMetadata(BaseModel):
    artist_name: str
    track_name: str


class ListenBrainzListen(BaseModel):
    playing_now: bool = False
    track_metadata: ListenBrainzTrackMetadata


class ListenBrainzPayload(BaseModel):
    listens: List[ListenBrainzListen] = Field(default_factory=list)


class ListenBrainzPlayingNowResponse(BaseModel):
    payload: ListenBrainzPayload


class RevoltUserStatus(BaseModel):
    text: Optional[str] = None
    presence: Optional[str] = None


class RevoltUser(BaseModel):
    status: Optional[RevoltUserStatus] = None


class RevoltEditUser(BaseModel):
    """Body of ``PATCH /users/@me``; serialise with ``exclude_none``."""

    status: Optional[RevoltUserStatus] = None
    remove: Optional[List[Literal["StatusText"]]] = None


class LoginRequest(BaseModel):
    email: str
    password: str
    friendly_name: Optional[str] = None


class MfaRequest(BaseModel):
    mfa_ticket: str
    mfa_response: Optional[dict[str, str]] = None
    friendly_name: Optional[str] = None


class LoginSuccess(BaseModel):
    result: Literal["Success"]
    token: str
    name: str = ""


class LoginMfaRequired(BaseModel):
    result: Literal["MFA"]
    ticket: str
    allowed_methods: List[str] = Field(default_factory=list)


class LoginDisabled(BaseModel):
    result: Literal["Disabled"]


LoginResponse = Annotated[
    Union[LoginSuccess, LoginMfaRequired, LoginDisabled], Field(discriminator="result")
]
login_response_adapter: TypeAdapter[LoginResponse] = TypeAdapter(LoginResponse)


class AuthifierErrorBody(BaseModel):
    type: str


__all__ = [
    "AuthifierErrorBody",
    "LastFMErrorBody",
    "LastFMRecentTracksResponse",
    "ListenBrainzPlayingNowResponse",
    "LoginDisabled",
    "LoginMfaRequired",
    "LoginRequest",
    "LoginResponse",
    "LoginSuccess",
    "MfaRequest",
    "RevoltEditUser",
    "RevoltUser",
    "RevoltUserStatus",
    "login_response_adapter",
]
