"""Pure aggregation of source rows into one rollup row."""

from __future__ import annotations

from typing import Sequence

from telemetry.domain import distribution
from telemetry.domain.granularity import Granularity
from telemetry.domain.models import ClientHeartbeat, RollupRow


def aggregate_heartbeats(
    rows: Sequence[ClientHeartbeat],
    granularity: Granularity,
    window_start: int,
    window_end: int,
    partial: bool = False,
) -> RollupRow:
    """Every row counts as one online user; null fields feed no distribution."""
    return RollupRow(
        granularity=granularity,
        window_start=window_start,
        window_end=window_end,
        online_users=len(rows),
        version_totals=distribution.tally(r.version for r in rows),
        browser_totals=distribution.tally(r.browser for r in rows),
        os_totals=distribution.tally(r.os for r in rows),
        partial=partial,
    )


def aggregate_rollups(
    rows: Sequence[RollupRow],
    granularity: Granularity,
    window_start: int,
    window_end: int,
    partial: bool = False,
) -> RollupRow:
    """Sum finer rows: online users add up, distributions merge key-wise."""
    return RollupRow(
        granularity=granularity,
        window_start=window_start,
        window_end=window_end,
        online_users=sum(r.online_users for r in rows),
        version_totals=distribution.merge(r.version_totals for r in rows),
        browser_totals=distribution.merge(r.browser_totals for r in rows),
        os_totals=distribution.merge(r.os_totals for r in rows),
        partial=partial,
    )
