"""Rollup granularities and calendar-aligned window arithmetic.

Every boundary is derived from wall-clock time in the configured zone, so a
restarted process lands on the same windows as the one it replaced.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo

HOUR_MS = 3_600_000


class Granularity(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @classmethod
    def ordered(cls) -> list["Granularity"]:
        """Finest first."""
        return [cls.HOUR, cls.DAY, cls.WEEK, cls.MONTH, cls.YEAR]

    @property
    def finer(self) -> "Granularity | None":
        order = Granularity.ordered()
        idx = order.index(self)
        return order[idx - 1] if idx > 0 else None

    @property
    def coarser(self) -> "Granularity | None":
        order = Granularity.ordered()
        idx = order.index(self)
        return order[idx + 1] if idx < len(order) - 1 else None

    @property
    def table(self) -> str:
        return _TABLES[self]


_TABLES = {
    Granularity.HOUR: "rollups_hourly",
    Granularity.DAY: "rollups_daily",
    Granularity.WEEK: "rollups_weekly",
    Granularity.MONTH: "rollups_monthly",
    Granularity.YEAR: "rollups_yearly",
}


def to_ms(dt: datetime) -> int:
    return round(dt.timestamp() * 1000)


class RollupCalendar:
    """Window boundaries for each granularity in one time zone.

    hour: top of the hour; day: local midnight; week: `week_start` weekday
    00:00 (Monday by default); month: the 1st 00:00; year: Jan 1 00:00.
    """

    def __init__(self, tz: str | tzinfo = "UTC", week_start: int = 0):
        if not 0 <= week_start <= 6:
            raise ValueError("week_start must be between 0 (Monday) and 6 (Sunday)")
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz
        self.week_start = week_start

    def _local(self, ts_ms: int) -> datetime:
        return datetime.fromtimestamp(ts_ms / 1000, self.tz)

    def _midnight(self, day: date) -> int:
        return to_ms(datetime.combine(day, time(0), tzinfo=self.tz))

    def _start_day(self, granularity: Granularity, local: datetime) -> date:
        day = local.date()
        if granularity is Granularity.DAY:
            return day
        if granularity is Granularity.WEEK:
            return day - timedelta(days=(day.weekday() - self.week_start) % 7)
        if granularity is Granularity.MONTH:
            return day.replace(day=1)
        return date(day.year, 1, 1)

    def floor(self, granularity: Granularity, ts_ms: int) -> int:
        """Start of the window containing `ts_ms`."""
        local = self._local(ts_ms)
        if granularity is Granularity.HOUR:
            return to_ms(local.replace(minute=0, second=0, microsecond=0))
        return self._midnight(self._start_day(granularity, local))

    def next_boundary(self, granularity: Granularity, ts_ms: int) -> int:
        """Start of the window after the one containing `ts_ms`."""
        if granularity is Granularity.HOUR:
            return self.floor(granularity, ts_ms) + HOUR_MS
        start = self._start_day(granularity, self._local(ts_ms))
        if granularity is Granularity.DAY:
            nxt = start + timedelta(days=1)
        elif granularity is Granularity.WEEK:
            nxt = start + timedelta(days=7)
        elif granularity is Granularity.MONTH:
            nxt = (start + timedelta(days=32)).replace(day=1)
        else:
            nxt = date(start.year + 1, 1, 1)
        return self._midnight(nxt)

    def current_window(self, granularity: Granularity, ts_ms: int) -> tuple[int, int]:
        """The still-open window `[start, end)` containing `ts_ms`."""
        return self.floor(granularity, ts_ms), self.next_boundary(granularity, ts_ms)

    def previous_window(self, granularity: Granularity, ts_ms: int) -> tuple[int, int]:
        """The most recent closed window `[start, end)` before `ts_ms`."""
        end = self.floor(granularity, ts_ms)
        return self.floor(granularity, end - 1), end
