"""Supervisor loop reconciling the now-playing track into a status text."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Protocol

from statusbridge.config import StatusConfig
from statusbridge.core.transitions import StatusUpdateIntent, decide
from statusbridge.errors import SourceAbortedError, SyncAbortedError
from statusbridge.integrations.contracts import (
    Idle,
    Playing,
    PollOutcome,
    SourceAdapter,
    TrackSnapshot,
)
from statusbridge.integrations.revolt_client import SyncError, SyncRateLimitedError
from statusbridge.logging import get_logger
from statusbridge.logging_events import log_event
from statusbridge.orchestrator.scheduler import PollScheduler

logger = get_logger(__name__)

DEFAULT_SHUTDOWN_GRACE_SECONDS = 5.0
MIN_STARTUP_RETRY_SECONDS = 1.0
_COMPONENT = "worker.status_sync"


class StatusSyncClient(Protocol):
    async def read_current_status(self) -> str | None: ...

    async def apply(self, intent: StatusUpdateIntent) -> None: ...


def _outcome_kind(outcome: PollOutcome) -> str:
    if isinstance(outcome, Playing):
        return "playing"
    if isinstance(outcome, Idle):
        return "idle"
    return "failure"


class StatusSyncWorker:
    """Poll the source, decide transitions and apply them downstream.

    The worker exclusively owns the applied state, which only changes after
    the status platform confirmed a write.
    """

    def __init__(
        self,
        *,
        source: SourceAdapter,
        sync_client: StatusSyncClient,
        status_config: StatusConfig,
        scheduler: PollScheduler | None = None,
        shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
    ) -> None:
        self._source = source
        self._sync = sync_client
        self._status_config = status_config
        self._scheduler = scheduler or PollScheduler(source)
        self._shutdown_grace = max(0.0, float(shutdown_grace_seconds))
        self._applied: TrackSnapshot | None = None
        self._idle_text: str | None = None
        self._prepared = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

        log_event(
            logger,
            "worker.config",
            component=_COMPONENT,
            provider=source.name,
            interval_s=self._scheduler.interval,
            idle_text_configured=status_config.idle is not None,
            restore_initial=status_config.restore_initial,
        )

    @property
    def applied_state(self) -> TrackSnapshot | None:
        return self._applied

    @property
    def idle_text(self) -> str | None:
        return self._idle_text

    @property
    def is_running(self) -> bool:
        task = self._task
        return bool(task and not task.done())

    def request_stop(self) -> None:
        """Ask the loop to finish after the current tick."""

        self._stop_event.set()

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(), name="status-sync-worker")

    async def stop(self) -> None:
        self._stop_event.set()
        task = self._task
        if task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._shutdown_grace)
        except asyncio.TimeoutError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        finally:
            self._task = None

    async def prepare(self) -> None:
        """Resolve the text applied when playback stops."""

        if self._prepared:
            return
        config = self._status_config
        if config.idle is not None:
            self._idle_text = config.idle
        elif config.restore_initial:
            self._idle_text = await self._read_initial_status()
        else:
            self._idle_text = None
        self._prepared = True

    async def run(self) -> None:
        """Run until stopped; raise when the source or the platform fails permanently."""

        await self.prepare()
        log_event(
            logger,
            "worker.start",
            component=_COMPONENT,
            status="running",
            provider=self._source.name,
        )
        try:
            async with contextlib.aclosing(self._scheduler.run(self._stop_event)) as outcomes:
                async for outcome in outcomes:
                    await self.handle_outcome(outcome)
        finally:
            log_event(
                logger,
                "worker.stop",
                component=_COMPONENT,
                status="stopped",
                polls=self._scheduler.ticks,
            )

    async def handle_outcome(self, outcome: PollOutcome) -> None:
        """Process one poll outcome, raising when the loop must abort."""

        decision = decide(
            self._applied,
            outcome,
            template=self._status_config.template,
            idle_text=self._idle_text,
        )
        log_event(
            logger,
            "worker.tick",
            level=logging.DEBUG,
            component=_COMPONENT,
            outcome=_outcome_kind(outcome),
            update=decision.intent is not None,
        )

        error = decision.error
        if error is not None:
            log_event(
                logger,
                "source.error",
                level=logging.ERROR if decision.should_abort else logging.WARNING,
                component=_COMPONENT,
                provider=error.provider,
                fatal=decision.should_abort,
                error=str(error),
            )
            if decision.should_abort:
                raise SourceAbortedError(error.provider, error)
            return

        if decision.intent is None:
            return

        await self._apply(decision.intent)

    async def _apply(self, intent: StatusUpdateIntent) -> None:
        try:
            await self._sync.apply(intent)
        except SyncRateLimitedError as exc:
            log_event(
                logger,
                "status.rate_limited",
                level=logging.WARNING,
                component=_COMPONENT,
                retry_after_ms=exc.retry_after_ms,
            )
            await self._wait(exc.retry_after_seconds)
            return
        except SyncError as exc:
            raise SyncAbortedError(exc) from exc

        self._applied = intent.snapshot
        log_event(
            logger,
            "status.sync",
            component=_COMPONENT,
            status="playing" if intent.snapshot is not None else "idle",
            cleared=intent.text is None,
        )

    async def _read_initial_status(self) -> str | None:
        while True:
            try:
                return await self._sync.read_current_status()
            except SyncRateLimitedError as exc:
                if self._stop_event.is_set():
                    return None
                await self._wait(max(exc.retry_after_seconds, MIN_STARTUP_RETRY_SECONDS))
            except SyncError as exc:
                raise SyncAbortedError(exc) from exc

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)


__all__ = ["StatusSyncClient", "StatusSyncWorker"]
