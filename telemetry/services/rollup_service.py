"""Read side for dashboards: stored rollups plus a live row for the open window."""

from __future__ import annotations

import time
from typing import Callable

from telemetry.domain.granularity import Granularity, RollupCalendar
from telemetry.domain.models import RollupRow
from telemetry.infrastructure.sqlite import TelemetryStore
from telemetry.rollup.aggregator import aggregate_heartbeats, aggregate_rollups


def now_ms() -> int:
    return int(time.time() * 1000)


class RollupQueryService:
    def __init__(
        self,
        store: TelemetryStore,
        calendar: RollupCalendar,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.calendar = calendar
        self.clock = clock

    def list_rollups(
        self,
        granularity: Granularity,
        include_partial: bool = False,
        limit: int | None = None,
    ) -> list[RollupRow]:
        rows = self.store.list_rollups(granularity, limit)
        if include_partial:
            rows.append(self.partial_row(granularity, self.clock()))
        return rows

    def partial_row(self, granularity: Granularity, at_ms: int) -> RollupRow:
        """Synthetic, never stored row for the window containing `at_ms`.

        Advisory only: it changes with every heartbeat until the window closes.
        """
        start, end = self.calendar.current_window(granularity, at_ms)
        finer = granularity.finer
        if finer is None:
            sources = self.store.heartbeats_between(start, end)
            return aggregate_heartbeats(sources, granularity, start, end, partial=True)

        # Same source set the job will read when this window closes
        covered = self.store.latest_window_end(granularity, start)
        parts = self.store.rollups_closed_between(finer, covered, end)
        finer_partial = self.partial_row(finer, at_ms)
        # A week straddling a month end belongs to the month it closes in
        if finer_partial.window_end <= end:
            parts.append(finer_partial)
        return aggregate_rollups(parts, granularity, start, end, partial=True)

    def online_now(self) -> int:
        start, end = self.calendar.current_window(Granularity.HOUR, self.clock())
        return len(self.store.heartbeats_between(start, end))
