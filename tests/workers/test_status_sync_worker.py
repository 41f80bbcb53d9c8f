from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import pytest

from statusbridge.config import StatusConfig
from statusbridge.core.transitions import StatusUpdateIntent
from statusbridge.errors import SourceAbortedError, SyncAbortedError
from statusbridge.integrations.contracts import (
    Failure,
    FatalAdapterError,
    Idle,
    Playing,
    PollOutcome,
    RecoverableAdapterError,
    TrackSnapshot,
)
from statusbridge.integrations.revolt_client import (
    SyncError,
    SyncRateLimitedError,
    SyncUnauthorizedError,
)
from statusbridge.orchestrator.scheduler import PollScheduler
from statusbridge.workers import status_sync_worker
from statusbridge.workers.status_sync_worker import StatusSyncWorker

SUPREMACY = TrackSnapshot("Muse", "Supremacy")
MADNESS = TrackSnapshot("Muse", "Madness")


class _ScriptedSource:
    """Return the scripted outcomes, then invoke ``on_drained``."""

    name = "scripted"
    check_interval = 0

    def __init__(self, outcomes: list[PollOutcome]) -> None:
        self._outcomes = list(outcomes)
        self.on_drained: Callable[[], None] | None = None
        self.calls = 0

    async def poll(self) -> PollOutcome:
        self.calls += 1
        outcome = self._outcomes.pop(0) if self._outcomes else Idle()
        if not self._outcomes and self.on_drained is not None:
            self.on_drained()
        return outcome

    async def aclose(self) -> None:
        return None


class _RecordingSyncClient:
    def __init__(
        self,
        *,
        initial: str | None = None,
        apply_errors: list[SyncError] | None = None,
        read_errors: list[SyncError] | None = None,
    ) -> None:
        self.initial = initial
        self.apply_errors = list(apply_errors or [])
        self.read_errors = list(read_errors or [])
        self.attempts: list[StatusUpdateIntent] = []
        self.attempted_at: list[float] = []
        self.applied: list[str | None] = []
        self.reads = 0

    async def read_current_status(self) -> str | None:
        self.reads += 1
        if self.read_errors:
            raise self.read_errors.pop(0)
        return self.initial

    async def apply(self, intent: StatusUpdateIntent) -> None:
        self.attempts.append(intent)
        self.attempted_at.append(time.monotonic())
        if self.apply_errors:
            raise self.apply_errors.pop(0)
        self.applied.append(intent.text)


def _worker(
    source: _ScriptedSource,
    client: _RecordingSyncClient,
    *,
    template: str = "🎵 %NAME% by %ARTIST%",
    idle: str | None = None,
    restore_initial: bool = False,
    interval: float = 0,
) -> StatusSyncWorker:
    worker = StatusSyncWorker(
        source=source,
        sync_client=client,
        status_config=StatusConfig(template=template, idle=idle, restore_initial=restore_initial),
        scheduler=PollScheduler(source, interval_seconds=interval),
    )
    source.on_drained = worker.request_stop
    return worker


@pytest.mark.asyncio
async def test_end_to_end_playback_cycle() -> None:
    source = _ScriptedSource([Idle(), Playing(SUPREMACY), Playing(SUPREMACY), Idle()])
    client = _RecordingSyncClient()
    worker = _worker(source, client, idle="Not listening to anything")

    await asyncio.wait_for(worker.run(), timeout=5)

    assert source.calls == 4
    assert client.applied == ["🎵 Supremacy by Muse", "Not listening to anything"]
    assert worker.applied_state is None
    assert client.reads == 0


@pytest.mark.asyncio
async def test_track_change_updates_status() -> None:
    source = _ScriptedSource([Playing(SUPREMACY), Playing(MADNESS)])
    client = _RecordingSyncClient()
    worker = _worker(source, client, template="%NAME%")

    await asyncio.wait_for(worker.run(), timeout=5)

    assert client.applied == ["Supremacy", "Madness"]
    assert worker.applied_state == MADNESS


@pytest.mark.asyncio
async def test_fatal_source_error_aborts_without_writes() -> None:
    error = FatalAdapterError("scripted", "Invalid credentials")
    source = _ScriptedSource([Failure(error), Playing(SUPREMACY)])
    client = _RecordingSyncClient()
    worker = _worker(source, client)

    with pytest.raises(SourceAbortedError) as excinfo:
        await asyncio.wait_for(worker.run(), timeout=5)

    assert excinfo.value.cause is error
    assert source.calls == 1
    assert client.attempts == []


@pytest.mark.asyncio
async def test_recoverable_source_error_keeps_polling() -> None:
    source = _ScriptedSource(
        [
            Playing(SUPREMACY),
            Failure(RecoverableAdapterError("scripted", "offline")),
            Playing(SUPREMACY),
        ]
    )
    client = _RecordingSyncClient()
    worker = _worker(source, client, template="%NAME%")

    await asyncio.wait_for(worker.run(), timeout=5)

    assert source.calls == 3
    assert client.applied == ["Supremacy"]
    assert worker.applied_state == SUPREMACY


@pytest.mark.asyncio
async def test_rate_limited_write_converges_to_latest_track() -> None:
    source = _ScriptedSource([Playing(SUPREMACY), Playing(MADNESS), Playing(MADNESS)])
    client = _RecordingSyncClient(apply_errors=[SyncRateLimitedError(0)])
    worker = _worker(source, client, template="%NAME%")

    await asyncio.wait_for(worker.run(), timeout=5)

    assert [intent.text for intent in client.attempts] == ["Supremacy", "Madness"]
    assert client.applied == ["Madness"]
    assert worker.applied_state == MADNESS


@pytest.mark.asyncio
async def test_rate_limited_write_is_retried_on_next_tick() -> None:
    source = _ScriptedSource([Playing(SUPREMACY), Playing(SUPREMACY)])
    client = _RecordingSyncClient(apply_errors=[SyncRateLimitedError(0)])
    worker = _worker(source, client, template="%NAME%")

    await asyncio.wait_for(worker.run(), timeout=5)

    assert client.applied == ["Supremacy"]
    assert worker.applied_state == SUPREMACY


@pytest.mark.asyncio
async def test_rate_limit_suspends_writes_for_the_advertised_delay() -> None:
    source = _ScriptedSource([Playing(SUPREMACY), Playing(SUPREMACY)])
    client = _RecordingSyncClient(apply_errors=[SyncRateLimitedError(300)])
    worker = _worker(source, client, template="%NAME%", interval=0.05)

    await asyncio.wait_for(worker.run(), timeout=5)

    assert len(client.attempted_at) == 2
    gap = client.attempted_at[1] - client.attempted_at[0]
    assert 0.29 <= gap < 0.6
    assert client.applied == ["Supremacy"]
    assert worker.applied_state == SUPREMACY


@pytest.mark.asyncio
async def test_stop_interrupts_rate_limit_backoff() -> None:
    source = _ScriptedSource([Playing(SUPREMACY), Playing(SUPREMACY)])
    client = _RecordingSyncClient(apply_errors=[SyncRateLimitedError(60_000)])
    worker = _worker(source, client, interval=3600)
    source.on_drained = None
    asyncio.get_running_loop().call_later(0.01, worker.request_stop)

    await asyncio.wait_for(worker.run(), timeout=5)

    assert source.calls == 1
    assert worker.applied_state is None


@pytest.mark.asyncio
async def test_rejected_write_aborts() -> None:
    source = _ScriptedSource([Playing(SUPREMACY), Playing(MADNESS)])
    client = _RecordingSyncClient(apply_errors=[SyncUnauthorizedError()])
    worker = _worker(source, client)

    with pytest.raises(SyncAbortedError):
        await asyncio.wait_for(worker.run(), timeout=5)

    assert source.calls == 1
    assert worker.applied_state is None


@pytest.mark.asyncio
async def test_initial_status_is_restored_when_playback_stops() -> None:
    source = _ScriptedSource([Playing(SUPREMACY), Idle()])
    client = _RecordingSyncClient(initial="Working from home")
    worker = _worker(source, client, template="%NAME%", restore_initial=True)

    await asyncio.wait_for(worker.run(), timeout=5)

    assert worker.idle_text == "Working from home"
    assert client.applied == ["Supremacy", "Working from home"]


@pytest.mark.asyncio
async def test_configured_idle_text_wins_over_initial_status() -> None:
    client = _RecordingSyncClient(initial="Working from home")
    worker = _worker(_ScriptedSource([]), client, idle="Quiet", restore_initial=True)

    await worker.prepare()

    assert worker.idle_text == "Quiet"
    assert client.reads == 0


@pytest.mark.asyncio
async def test_status_is_cleared_without_idle_text() -> None:
    source = _ScriptedSource([Playing(SUPREMACY), Idle()])
    client = _RecordingSyncClient(initial="Working from home")
    worker = _worker(source, client, template="%NAME%", restore_initial=False)

    await asyncio.wait_for(worker.run(), timeout=5)

    assert worker.idle_text is None
    assert client.applied == ["Supremacy", None]
    assert client.reads == 0


@pytest.mark.asyncio
async def test_initial_status_read_retries_after_rate_limit(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(status_sync_worker, "MIN_STARTUP_RETRY_SECONDS", 0.0)
    client = _RecordingSyncClient(initial="Busy", read_errors=[SyncRateLimitedError(0)])
    worker = _worker(_ScriptedSource([]), client, restore_initial=True)

    await asyncio.wait_for(worker.prepare(), timeout=5)

    assert worker.idle_text == "Busy"
    assert client.reads == 2


@pytest.mark.asyncio
async def test_initial_status_read_failure_aborts() -> None:
    client = _RecordingSyncClient(read_errors=[SyncUnauthorizedError()])
    worker = _worker(_ScriptedSource([]), client, restore_initial=True)

    with pytest.raises(SyncAbortedError):
        await worker.prepare()


@pytest.mark.asyncio
async def test_start_and_stop_background_task() -> None:
    source = _ScriptedSource([Playing(SUPREMACY)])
    client = _RecordingSyncClient()
    worker = _worker(source, client, template="%NAME%", interval=3600)
    source.on_drained = None

    await worker.start()
    assert worker.is_running
    for _ in range(100):
        if client.applied:
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert not worker.is_running
    assert client.applied == ["Supremacy"]
