"""Async HTTP client applying status updates to a Revolt account."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from statusbridge.core.transitions import StatusUpdateIntent
from statusbridge.integrations.schemas import RevoltEditUser, RevoltUser, RevoltUserStatus

DEFAULT_API_URL = "https://api.revolt.chat"
SESSION_HEADER = "X-Session-Token"
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset-After"


class SyncError(RuntimeError):
    """Base exception raised for status platform failures."""


class SyncRateLimitedError(SyncError):
    """Raised when the platform asked us to back off before writing again."""

    def __init__(self, retry_after_ms: int) -> None:
        super().__init__(f"Revolt API rate limit exceeded, retry after {retry_after_ms}ms")
        self.retry_after_ms = retry_after_ms

    @property
    def retry_after_seconds(self) -> float:
        return self.retry_after_ms / 1000


class SyncTransportError(SyncError):
    """Raised when the request never produced an HTTP response."""


class SyncUnauthorizedError(SyncError):
    """Raised when the session token was rejected."""

    def __init__(self) -> None:
        super().__init__("Revolt API authentication failed. Please check your credentials.")


class SyncUnexpectedError(SyncError):
    """Raised for any other unexpected status or payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class RevoltStatusClient:
    """Read and write the ``status.text`` field of the authenticated user."""

    session_token: str = field(repr=False)
    api_url: str = DEFAULT_API_URL
    timeout_ms: int = 10_000
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    async def read_current_status(self) -> str | None:
        response = await self._request("GET", "/users/@me")
        try:
            user = RevoltUser.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise SyncUnexpectedError(
                "Revolt API returned an unexpected user payload",
                status_code=response.status_code,
            ) from exc
        return user.status.text if user.status is not None else None

    async def set_status_text(self, text: str | None) -> None:
        if text is None:
            body = RevoltEditUser(remove=["StatusText"])
        else:
            body = RevoltEditUser(status=RevoltUserStatus(text=text))
        await self._request("PATCH", "/users/@me", json=body.model_dump(exclude_none=True))

    async def apply(self, intent: StatusUpdateIntent) -> None:
        await self.set_status_text(intent.text)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout_seconds = max(self.timeout_ms, 100) / 1000
            self._client = httpx.AsyncClient(
                base_url=self.api_url.rstrip("/"),
                timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0)),
                headers={"Accept": "application/json", SESSION_HEADER: self.session_token},
                transport=self.transport,
            )
        return self._client

    async def _request(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        try:
            response = await self._http().request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise SyncTransportError("Revolt request timed out") from exc
        except httpx.HTTPError as exc:
            raise SyncTransportError(f"Revolt request failed: {exc}") from exc

        status = response.status_code
        if status in (httpx.codes.OK, httpx.codes.NO_CONTENT):
            return response
        if status == httpx.codes.UNAUTHORIZED:
            raise SyncUnauthorizedError()
        if status == httpx.codes.TOO_MANY_REQUESTS:
            raise SyncRateLimitedError(parse_retry_after_ms(response.headers))
        raise SyncUnexpectedError(
            f"Revolt API returned an unexpected error: HTTP {status}", status_code=status
        )


def parse_retry_after_ms(headers: Mapping[str, Any]) -> int:
    """Return the back-off advertised by a rate-limited response in milliseconds.

    ``X-RateLimit-Reset-After`` carries milliseconds; the generic ``Retry-After``
    carries seconds. Unparsable or missing values yield ``0``.
    """

    reset_after = _header_int(headers, RATE_LIMIT_RESET_HEADER)
    if reset_after is not None:
        return reset_after
    retry_after = _header_int(headers, "Retry-After")
    if retry_after is not None:
        return retry_after * 1000
    return 0


def _header_int(headers: Mapping[str, Any], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        value = next(
            (item for key, item in headers.items() if str(key).lower() == lowered), None
        )
    if value is None:
        return None
    try:
        return max(0, int(str(value).strip()))
    except (TypeError, ValueError):
        return None


__all__ = [
    "DEFAULT_API_URL",
    "RevoltStatusClient",
    "SyncError",
    "SyncRateLimitedError",
    "SyncTransportError",
    "SyncUnauthorizedError",
    "SyncUnexpectedError",
    "parse_retry_after_ms",
]
