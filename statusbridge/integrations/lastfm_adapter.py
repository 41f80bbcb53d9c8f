"""Last.fm source adapter based on ``user.getRecentTracks``."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

import httpx
from pydantic import ValidationError

from statusbridge.integrations.contracts import (
    AdapterError,
    Failure,
    FatalAdapterError,
    Idle,
    Playing,
    PollOutcome,
    RecoverableAdapterError,
    TrackSnapshot,
)
from statusbridge.integrations.schemas import LastFMErrorBody, LastFMRecentTracksResponse

PROVIDER_NAME = "lastfm"
DEFAULT_API_URL = "https://ws.audioscrobbler.com/2.0/"


class LastFMErrorCode(IntEnum):
    """Error codes documented for the Last.fm web service."""

    AUTHENTICATION_FAILED = 4
    INVALID_PARAMETERS = 6
    OPERATION_FAILED = 8
    INVALID_API_KEY = 10
    SERVICE_OFFLINE = 11
    TEMPORARY_ERROR = 16
    SUSPENDED_API_KEY = 26
    RATE_LIMIT_EXCEEDED = 29


_FATAL_CODES = frozenset(
    {
        LastFMErrorCode.AUTHENTICATION_FAILED,
        LastFMErrorCode.INVALID_PARAMETERS,
        LastFMErrorCode.INVALID_API_KEY,
        LastFMErrorCode.SUSPENDED_API_KEY,
    }
)

_ERROR_MESSAGES: dict[int, str] = {
    LastFMErrorCode.AUTHENTICATION_FAILED: "Authentication failed",
    LastFMErrorCode.INVALID_PARAMETERS: "Invalid parameters (unknown user?)",
    LastFMErrorCode.OPERATION_FAILED: "Something went wrong with Last.fm API",
    LastFMErrorCode.INVALID_API_KEY: "Provided API key is invalid",
    LastFMErrorCode.SERVICE_OFFLINE: "API is temporarily offline",
    LastFMErrorCode.TEMPORARY_ERROR: "A temporary error occurred",
    LastFMErrorCode.SUSPENDED_API_KEY: "API key has been suspended",
    LastFMErrorCode.RATE_LIMIT_EXCEEDED: "Rate limit exceeded",
}


@dataclass(slots=True)
class LastFMAdapter:
    """Report the Last.fm user's now-playing track."""

    username: str
    api_key: str = field(repr=False)
    check_interval: float = 16
    api_url: str = DEFAULT_API_URL
    timeout_ms: int = 10_000
    transport: httpx.AsyncBaseTransport | None = None
    name: str = PROVIDER_NAME
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    async def poll(self) -> PollOutcome:
        params = {
            "method": "user.getrecenttracks",
            "user": self.username,
            "api_key": self.api_key,
            "limit": "1",
            "format": "json",
        }
        try:
            response = await self._http().get(self.api_url, params=params)
        except httpx.TimeoutException as exc:
            return self._recoverable("Last.fm request timed out", cause=exc)
        except httpx.HTTPError as exc:
            # str(exc) can embed the request URL, which carries the api_key.
            return self._recoverable(
                f"Last.fm request failed: {type(exc).__name__}", cause=exc
            )

        if response.status_code != httpx.codes.OK:
            return Failure(self._classify_error_response(response))

        try:
            data = LastFMRecentTracksResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            return self._recoverable("Last.fm returned an unexpected payload", cause=exc)

        tracks = data.recenttracks.track
        if not tracks:
            return Idle()
        latest = tracks[0]
        if latest.attr is None or latest.attr.nowplaying is not True:
            return Idle()
        return Playing(TrackSnapshot(artist=latest.artist.text, title=latest.name))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout_seconds = max(self.timeout_ms, 100) / 1000
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0)),
                headers={"Accept": "application/json"},
                transport=self.transport,
            )
        return self._client

    def _classify_error_response(self, response: httpx.Response) -> AdapterError:
        status = response.status_code
        try:
            body = LastFMErrorBody.model_validate(response.json())
        except (ValueError, ValidationError):
            body = None

        if body is None:
            message = f"Unexpected status code: {status}"
            if status in (httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN):
                return FatalAdapterError(self.name, message, status_code=status)
            return RecoverableAdapterError(self.name, message, status_code=status)

        message = _ERROR_MESSAGES.get(body.error) or f"Unexpected API error: {body.message}"
        error_type = FatalAdapterError if body.error in _FATAL_CODES else RecoverableAdapterError
        return error_type(self.name, message, status_code=status, code=body.error)

    def _recoverable(self, message: str, *, cause: Exception) -> Failure:
        return Failure(RecoverableAdapterError(self.name, message, cause=cause))


__all__ = ["DEFAULT_API_URL", "LastFMAdapter", "LastFMErrorCode"]
