from __future__ import annotations

from typing import Any

import httpx
import pytest

from statusbridge.integrations.contracts import Failure, Idle, Playing, TrackSnapshot
from statusbridge.integrations.listenbrainz_adapter import ListenBrainzAdapter


def _listen(artist: str, track: str, *, playing_now: bool = True) -> dict[str, Any]:
    return {
        "playing_now": playing_now,
        "track_metadata": {"artist_name": artist, "track_name": track, "release_name": "x"},
    }


def _payload(*listens: dict[str, Any]) -> dict[str, Any]:
    return {"payload": {"count": len(listens), "playing_now": True, "listens": list(listens)}}


def _adapter(handler, **kwargs: Any) -> ListenBrainzAdapter:
    return ListenBrainzAdapter(
        username="some user",
        api_url="https://lb.test/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_poll_reports_playing_now_listen() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_payload(_listen("Muse", "Supremacy")))

    adapter = _adapter(handler)
    try:
        outcome = await adapter.poll()
    finally:
        await adapter.aclose()

    assert outcome == Playing(TrackSnapshot(artist="Muse", title="Supremacy"))
    assert captured[0].url.raw_path == b"/1/user/some%20user/playing-now"
    assert "Authorization" not in captured[0].headers


@pytest.mark.asyncio
async def test_poll_sends_token_when_configured() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_payload())

    adapter = _adapter(handler, token="lb-token")
    try:
        await adapter.poll()
    finally:
        await adapter.aclose()

    assert captured[0].headers["Authorization"] == "Token lb-token"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [_payload(), _payload(_listen("Muse", "Supremacy", playing_now=False))],
)
async def test_poll_reports_idle(payload: dict[str, Any]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    adapter = _adapter(handler)
    try:
        outcome = await adapter.poll()
    finally:
        await adapter.aclose()

    assert outcome == Idle()


@pytest.mark.asyncio
@pytest.mark.parametrize("status,fatal", [(404, True), (401, True), (500, False), (503, False)])
async def test_poll_classifies_status_codes(status: int, fatal: bool) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": "nope"})

    adapter = _adapter(handler)
    try:
        outcome = await adapter.poll()
    finally:
        await adapter.aclose()

    assert isinstance(outcome, Failure)
    assert outcome.error.fatal is fatal
    assert outcome.error.provider == "listenbrainz"


@pytest.mark.asyncio
async def test_unknown_user_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    adapter = _adapter(handler)
    try:
        outcome = await adapter.poll()
    finally:
        await adapter.aclose()

    assert isinstance(outcome, Failure)
    assert str(outcome.error) == "User not found."


@pytest.mark.asyncio
async def test_transport_error_is_recoverable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    adapter = _adapter(handler)
    try:
        outcome = await adapter.poll()
    finally:
        await adapter.aclose()

    assert isinstance(outcome, Failure)
    assert not outcome.error.fatal
