"""One rollup job per granularity.

A job aggregates the closed window preceding a given instant into one row
of its own table, trims that table to its retention cap and, for the hourly
job only, sweeps the heartbeat rows it consumed. All of it happens in one
store transaction, so a failure leaves the source rows in place for the next
run to pick up.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from telemetry.core.logger import get_logger
from telemetry.core.metrics import HEARTBEATS_SWEPT
from telemetry.domain.granularity import Granularity, RollupCalendar
from telemetry.domain.models import RollupRow
from telemetry.infrastructure.sqlite.store import TelemetryStore

from .aggregator import aggregate_heartbeats, aggregate_rollups

logger = get_logger("telemetry.rollup.jobs")


@dataclass
class JobResult:
    granularity: Granularity
    row: RollupRow
    source_rows: int
    evicted: int = 0
    swept: int = 0
    skipped: bool = False


class RollupJob:
    def __init__(
        self,
        store: TelemetryStore,
        granularity: Granularity,
        calendar: RollupCalendar,
        retention_cap: int,
    ):
        self.store = store
        self.granularity = granularity
        self.calendar = calendar
        self.retention_cap = retention_cap

    @property
    def name(self) -> str:
        return f"rollup_{self.granularity.value}"

    def run(self, now_ms: int, only_missing: bool = False) -> JobResult:
        """Aggregate the closed window immediately preceding `now_ms`."""
        start, end = self.calendar.previous_window(self.granularity, now_ms)
        return self.aggregate_window(start, end, only_missing)

    def aggregate_window(
        self, start: int, end: int, only_missing: bool = False
    ) -> JobResult:
        """Upsert the row for `[start, end)`.

        With `only_missing`, an existing row is left untouched; used by the
        startup pass, where finer rows may already have left their retention
        ring and a recomputation would undercount.
        """
        started = time.perf_counter()
        with self.store.transaction():
            existing = self.store.get_rollup(self.granularity, start)
            if existing is not None and only_missing:
                return JobResult(self.granularity, existing, 0, skipped=True)

            if self.granularity is Granularity.HOUR:
                # Leftovers from a missed firing are folded into this window
                # rather than stranded past the sweep.
                sources = self.store.heartbeats_before(end)
                row = aggregate_heartbeats(sources, self.granularity, start, end)
                if existing is not None and sources:
                    # The rows behind `existing` are gone; add to it.
                    row = aggregate_rollups([existing, row], self.granularity, start, end)
            else:
                finer = self.granularity.finer
                assert finer is not None
                # Finer rows no earlier coarse row covers, so windows missed
                # while the process was down fold into this one.
                covered = self.store.latest_window_end(self.granularity, start)
                sources = self.store.rollups_closed_between(finer, covered, end)
                row = aggregate_rollups(sources, self.granularity, start, end)

            if not sources and existing is not None:
                logger.info(
                    "rollup_skipped_already_aggregated",
                    extra={"granularity": self.granularity.value, "window_start": start},
                )
                return JobResult(self.granularity, existing, 0, skipped=True)

            self.store.upsert_rollup(row)
            evicted = self.store.evict_oldest(self.granularity, self.retention_cap)
            swept = 0
            if self.granularity is Granularity.HOUR:
                swept = self.store.delete_heartbeats_before(end)

        if swept:
            HEARTBEATS_SWEPT.inc(swept)
        logger.info(
            "rollup_completed",
            extra={
                "granularity": self.granularity.value,
                "window_start": start,
                "window_end": end,
                "source_rows": len(sources),
                "online_users": row.online_users,
                "evicted": evicted,
                "swept": swept,
                "duration_s": round(time.perf_counter() - started, 4),
            },
        )
        return JobResult(self.granularity, row, len(sources), evicted, swept)


def build_jobs(
    store: TelemetryStore,
    calendar: RollupCalendar,
    retention_caps: dict[str, int],
) -> dict[Granularity, RollupJob]:
    return {
        g: RollupJob(store, g, calendar, retention_caps[g.value])
        for g in Granularity.ordered()
    }
