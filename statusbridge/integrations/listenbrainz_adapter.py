"""ListenBrainz source adapter based on the ``playing-now`` endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import quote

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
from statusbridge.integrations.schemas import ListenBrainzPlayingNowResponse

PROVIDER_NAME = "listenbrainz"
DEFAULT_API_URL = "https://api.listenbrainz.org"


@dataclass(slots=True)
class ListenBrainzAdapter:
    """Report the ListenBrainz user's playing-now listen."""

    username: str
    check_interval: float = 16
    api_url: str = DEFAULT_API_URL
    token: str | None = field(default=None, repr=False)
    timeout_ms: int = 10_000
    transport: httpx.AsyncBaseTransport | None = None
    name: str = PROVIDER_NAME
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    async def poll(self) -> PollOutcome:
        path = f"/1/user/{quote(self.username, safe='')}/playing-now"
        try:
            response = await self._http().get(path)
        except httpx.TimeoutException as exc:
            return Failure(
                RecoverableAdapterError(self.name, "ListenBrainz request timed out", cause=exc)
            )
        except httpx.HTTPError as exc:
            return Failure(
                RecoverableAdapterError(
                    self.name, f"ListenBrainz request failed: {exc}", cause=exc
                )
            )

        if response.status_code != httpx.codes.OK:
            return Failure(self._classify_status(response.status_code))

        try:
            data = ListenBrainzPlayingNowResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            return Failure(
                RecoverableAdapterError(
                    self.name, "ListenBrainz returned an unexpected payload", cause=exc
                )
            )

        listens = data.payload.listens
        if not listens or not listens[0].playing_now:
            return Idle()
        metadata = listens[0].track_metadata
        return Playing(TrackSnapshot(artist=metadata.artist_name, title=metadata.track_name))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Token {self.token}"
            timeout_seconds = max(self.timeout_ms, 100) / 1000
            self._client = httpx.AsyncClient(
                base_url=self.api_url.rstrip("/"),
                timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0)),
                headers=headers,
                transport=self.transport,
            )
        return self._client

    def _classify_status(self, status: int) -> AdapterError:
        if status == httpx.codes.NOT_FOUND:
            return FatalAdapterError(self.name, "User not found.", status_code=status)
        if status in (httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN):
            return FatalAdapterError(
                self.name, "ListenBrainz rejected the configured token", status_code=status
            )
        return RecoverableAdapterError(
            self.name, f"Unexpected HTTP status: {status}", status_code=status
        )


__all__ = ["DEFAULT_API_URL", "ListenBrainzAdapter"]
