"""Fixed-cadence poll scheduler driving a single source adapter."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
import contextlib
import time

from statusbridge.integrations.contracts import PollOutcome, SourceAdapter
from statusbridge.logging import get_logger

logger = get_logger(__name__)

MIN_INTERVAL_SECONDS = 0.0


class PollScheduler:
    """Yield one :data:`PollOutcome` per tick.

    The first tick fires immediately. Later ticks follow a fixed cadence; when
    the consumer overruns a deadline the next tick fires at once and the
    cadence re-anchors, so missed ticks are delayed rather than replayed.
    Polls never overlap because the consumer runs between yields.
    """

    def __init__(
        self,
        adapter: SourceAdapter,
        *,
        interval_seconds: float | None = None,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        interval = adapter.check_interval if interval_seconds is None else interval_seconds
        self._adapter = adapter
        self._interval = max(float(interval), MIN_INTERVAL_SECONDS)
        self._time_source = time_source
        self._ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def ticks(self) -> int:
        return self._ticks

    async def run(self, stop_event: asyncio.Event) -> AsyncIterator[PollOutcome]:
        next_deadline = self._time_source()
        while not stop_event.is_set():
            self._ticks += 1
            logger.debug("Polling %s (tick %d)", self._adapter.name, self._ticks)
            outcome = await self._adapter.poll()
            yield outcome
            if stop_event.is_set():
                break
            now = self._time_source()
            next_deadline += self._interval
            if next_deadline <= now:
                next_deadline = now
                await asyncio.sleep(0)
                continue
            await self._sleep_until(next_deadline - now, stop_event)

    async def _sleep_until(self, delay: float, stop_event: asyncio.Event) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=delay)


__all__ = ["PollScheduler"]
