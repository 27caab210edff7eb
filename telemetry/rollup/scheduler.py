"""Wall-clock driven rollup scheduler.

A single loop sleeps until the next top of the hour, recomputed from the
current time after every firing so that nothing drifts. On each wake it
fires the hourly job and then every coarser job whose boundary has been
crossed, finest first, because each coarser job reads the rows the finer
one just wrote.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from shared.utils.concurrency import run_blocking
from telemetry.core.logger import get_logger
from telemetry.core.metrics import ROLLUP_ERRORS, ROLLUP_LATENCY_SECONDS, ROLLUP_RUNS
from telemetry.domain.granularity import Granularity, RollupCalendar

from .jobs import JobResult, RollupJob

logger = get_logger("telemetry.rollup.scheduler")


def now_ms() -> int:
    return int(time.time() * 1000)


class RollupScheduler:
    def __init__(
        self,
        jobs: dict[Granularity, RollupJob],
        calendar: RollupCalendar,
        clock: Callable[[], int] = now_ms,
        fire_delay_seconds: float = 1.0,
    ):
        self.jobs = jobs
        self.calendar = calendar
        self.clock = clock
        self.fire_delay_seconds = fire_delay_seconds
        # Boundary each job last fired for; empty until the startup pass
        self._fired: dict[Granularity, int] = {}

    def due(self, at_ms: int) -> list[Granularity]:
        """Granularities whose current boundary has not been fired yet."""
        out = []
        for g in Granularity.ordered():
            if g not in self.jobs:
                continue
            boundary = self.calendar.floor(g, at_ms)
            last = self._fired.get(g)
            if last is None or boundary > last:
                out.append(g)
        return out

    async def run_due(
        self, at_ms: int | None = None, only_missing: bool = False
    ) -> list[JobResult]:
        at_ms = self.clock() if at_ms is None else at_ms
        results = []
        for g in self.due(at_ms):
            self._fired[g] = self.calendar.floor(g, at_ms)
            result = await self.run_job(g, at_ms, only_missing)
            if result is not None:
                results.append(result)
        return results

    async def run_job(
        self, granularity: Granularity, at_ms: int, only_missing: bool = False
    ) -> JobResult | None:
        """Run one job; failures are logged and dropped, never retried."""
        job = self.jobs[granularity]
        try:
            with ROLLUP_LATENCY_SECONDS.labels(granularity.value).time():
                result = await run_blocking(job.run, at_ms, only_missing)
        except Exception as e:  # noqa: BLE001
            ROLLUP_ERRORS.labels(granularity.value).inc()
            logger.exception(
                "rollup_failed",
                extra={"granularity": granularity.value, "error": str(e)},
            )
            return None
        ROLLUP_RUNS.labels(granularity.value).inc()
        return result

    def seconds_until_next_firing(self, at_ms: int) -> float:
        nxt = self.calendar.next_boundary(Granularity.HOUR, at_ms)
        return max((nxt - at_ms) / 1000, 0.0) + self.fire_delay_seconds

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Catch up on startup, then fire at every boundary until stopped."""
        logger.info("rollup_scheduler_started", extra={"jobs": [g.value for g in self.jobs]})
        await self.run_due(only_missing=True)
        while not stop_event.is_set():
            delay = self.seconds_until_next_firing(self.clock())
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break
            await self.run_due()
        logger.info("rollup_scheduler_stopped")
