from datetime import datetime, timezone

import pytest

from telemetry.core.config import Settings
from telemetry.domain import distribution
from telemetry.domain.granularity import Granularity, RollupCalendar
from telemetry.domain.models import RollupRow
from telemetry.rollup.jobs import RollupJob, build_jobs

HOUR = 3_600_000
DAY = 24 * HOUR


def ms(*args) -> int:
    return round(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def serialized(row: RollupRow) -> tuple:
    return (
        row.window_start,
        row.window_end,
        row.online_users,
        distribution.dumps(row.version_totals),
        distribution.dumps(row.browser_totals),
        distribution.dumps(row.os_totals),
    )


def hourly(start: int, users: int, **totals) -> RollupRow:
    return RollupRow(
        granularity=Granularity.HOUR,
        window_start=start,
        window_end=start + HOUR,
        online_users=users,
        **totals,
    )


@pytest.fixture
def hour_job(store, calendar):
    return RollupJob(store, Granularity.HOUR, calendar, retention_cap=24)


def test_two_clients_same_hour(store, hour_job, make_heartbeat):
    store.upsert_heartbeat(make_heartbeat("client-a", ms(2024, 5, 2, 10, 5)))
    store.upsert_heartbeat(make_heartbeat("client-b", ms(2024, 5, 2, 10, 20)))

    result = hour_job.run(ms(2024, 5, 2, 11, 0, 1))

    row = store.get_rollup(Granularity.HOUR, ms(2024, 5, 2, 10))
    assert row is not None
    assert row.online_users == 2
    assert row.version_totals == {"1.0.0": 2}
    assert row.browser_totals == {"Chrome": 2}
    assert row.os_totals == {"Windows": 2}
    assert row.window_end == ms(2024, 5, 2, 11)
    assert result.source_rows == 2
    assert result.swept == 2


def test_hourly_sweep_removes_aggregated_heartbeats_only(store, hour_job, make_heartbeat):
    store.upsert_heartbeat(make_heartbeat("old", ms(2024, 5, 2, 10, 30)))
    store.upsert_heartbeat(make_heartbeat("current", ms(2024, 5, 2, 11, 0, 0)))

    hour_job.run(ms(2024, 5, 2, 11, 0, 1))

    assert store.heartbeats_between(ms(2024, 5, 2, 10), ms(2024, 5, 2, 11)) == []
    assert store.get_heartbeat("old") is None
    assert store.get_heartbeat("current") is not None


def test_rerun_is_idempotent(store, hour_job, make_heartbeat):
    store.upsert_heartbeat(make_heartbeat("a", ms(2024, 5, 2, 10, 5)))
    store.upsert_heartbeat(make_heartbeat("b", ms(2024, 5, 2, 10, 6), browser=None))
    now = ms(2024, 5, 2, 11, 0, 1)

    first = serialized(hour_job.run(now).row)
    second = hour_job.run(now)

    assert second.skipped is True
    assert serialized(store.get_rollup(Granularity.HOUR, ms(2024, 5, 2, 10))) == first


def test_coarse_rerun_is_idempotent(store, calendar):
    day_start = ms(2024, 5, 1)
    for h in range(3):
        store.upsert_rollup(hourly(day_start + h * HOUR, 2, version_totals={"1.0.0": 2}))
    job = RollupJob(store, Granularity.DAY, calendar, retention_cap=7)

    first = serialized(job.run(ms(2024, 5, 2, 0, 0, 1)).row)
    second = serialized(job.run(ms(2024, 5, 2, 0, 0, 1)).row)

    assert first == second
    assert store.count_rollups(Granularity.DAY) == 1


def test_distribution_never_exceeds_online_users(store, hour_job, make_heartbeat):
    store.upsert_heartbeat(make_heartbeat("a", ms(2024, 5, 2, 10, 1)))
    store.upsert_heartbeat(
        make_heartbeat("b", ms(2024, 5, 2, 10, 2), version=None, browser=None, os=None)
    )
    row = hour_job.run(ms(2024, 5, 2, 11, 0, 1)).row

    assert row.online_users == 2
    for totals in (row.version_totals, row.browser_totals, row.os_totals):
        assert sum(totals.values()) <= row.online_users


def test_missed_window_leftovers_fold_into_next_run(store, hour_job, make_heartbeat):
    # Process was down at 09:00; the 08:xx heartbeat is still present at 11:00
    store.upsert_heartbeat(make_heartbeat("stale", ms(2024, 5, 2, 8, 30)))
    store.upsert_heartbeat(make_heartbeat("fresh", ms(2024, 5, 2, 10, 30)))

    row = hour_job.run(ms(2024, 5, 2, 11, 0, 1)).row

    assert row.online_users == 2
    assert store.count_heartbeats() == 0


def test_late_write_is_added_to_existing_hour(store, hour_job, make_heartbeat):
    store.upsert_heartbeat(make_heartbeat("a", ms(2024, 5, 2, 10, 5)))
    hour_job.run(ms(2024, 5, 2, 11, 0, 1))

    store.upsert_heartbeat(make_heartbeat("late", ms(2024, 5, 2, 10, 59), version="2.0.0"))
    row = hour_job.run(ms(2024, 5, 2, 11, 0, 2)).row

    assert row.online_users == 2
    assert row.version_totals == {"1.0.0": 1, "2.0.0": 1}


def test_empty_window_stores_zero_row(store, hour_job):
    result = hour_job.run(ms(2024, 5, 2, 11, 0, 1))
    assert result.skipped is False
    row = store.get_rollup(Granularity.HOUR, ms(2024, 5, 2, 10))
    assert row.online_users == 0
    assert row.version_totals == {}


def test_retention_ring_keeps_most_recent(store, calendar):
    job = RollupJob(store, Granularity.HOUR, calendar, retention_cap=3)
    for h in range(1, 6):
        job.run(ms(2024, 5, 2, h, 0, 1))

    starts = [r.window_start for r in store.list_rollups(Granularity.HOUR)]
    assert starts == [ms(2024, 5, 2, 2), ms(2024, 5, 2, 3), ms(2024, 5, 2, 4)]


def test_day_job_reads_hours_that_closed_inside_the_day(store, calendar):
    store.upsert_rollup(
        RollupRow(
            granularity=Granularity.DAY,
            window_start=ms(2024, 4, 30),
            window_end=ms(2024, 5, 1),
            online_users=7,
        )
    )
    store.upsert_rollup(hourly(ms(2024, 4, 30, 23), 7))  # already in April 30
    store.upsert_rollup(hourly(ms(2024, 5, 1, 0), 1, version_totals={"1.0.0": 1}))
    store.upsert_rollup(hourly(ms(2024, 5, 1, 12), 2, version_totals={"1.0.0": 1, "2.0.0": 1}))
    store.upsert_rollup(hourly(ms(2024, 5, 1, 23), 3, browser_totals={"Chrome": 3}))
    store.upsert_rollup(hourly(ms(2024, 5, 2, 0), 9))  # next day

    job = RollupJob(store, Granularity.DAY, calendar, retention_cap=7)
    result = job.run(ms(2024, 5, 2, 0, 0, 1))

    assert result.source_rows == 3
    assert result.row.window_start == ms(2024, 5, 1)
    assert result.row.online_users == 6
    assert result.row.version_totals == {"1.0.0": 2, "2.0.0": 1}
    assert result.row.browser_totals == {"Chrome": 3}
    # Coarser jobs never delete their sources
    assert store.count_rollups(Granularity.HOUR) == 5


def test_week_straddling_months_counts_where_it_closes(store, calendar):
    week = RollupRow(
        granularity=Granularity.WEEK,
        window_start=ms(2024, 4, 29),
        window_end=ms(2024, 5, 6),
        online_users=4,
    )
    store.upsert_rollup(week)
    job = RollupJob(store, Granularity.MONTH, calendar, retention_cap=12)

    april = job.run(ms(2024, 5, 1, 0, 0, 1)).row
    may = job.run(ms(2024, 6, 1, 0, 0, 1)).row

    assert april.online_users == 0
    assert may.online_users == 4


def test_only_missing_leaves_existing_row(store, calendar):
    existing = RollupRow(
        granularity=Granularity.DAY,
        window_start=ms(2024, 5, 1),
        window_end=ms(2024, 5, 2),
        online_users=42,
    )
    store.upsert_rollup(existing)
    store.upsert_rollup(hourly(ms(2024, 5, 1, 3), 1))
    job = RollupJob(store, Granularity.DAY, calendar, retention_cap=7)

    result = job.run(ms(2024, 5, 2, 0, 0, 1), only_missing=True)

    assert result.skipped is True
    assert store.get_rollup(Granularity.DAY, ms(2024, 5, 1)).online_users == 42


def test_failure_leaves_sources_in_place(store, hour_job, make_heartbeat, monkeypatch):
    store.upsert_heartbeat(make_heartbeat("a", ms(2024, 5, 2, 10, 5)))

    def broken(end_ms):
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "delete_heartbeats_before", broken)
    with pytest.raises(RuntimeError):
        hour_job.run(ms(2024, 5, 2, 11, 0, 1))

    assert store.get_heartbeat("a") is not None
    assert store.count_rollups(Granularity.HOUR) == 0


def test_build_jobs_covers_every_granularity(store, calendar):
    caps = {"hour": 25, "day": 7, "week": 5, "month": 12, "year": 25}
    jobs = build_jobs(store, calendar, caps)
    assert list(jobs) == Granularity.ordered()
    assert jobs[Granularity.WEEK].retention_cap == 5
    assert jobs[Granularity.YEAR].name == "rollup_year"


def test_outage_across_days_folds_missed_hours_into_next_day(store, calendar):
    # Down from Monday night until Wednesday 03:00: no daily job ran for Monday
    monday = ms(2024, 5, 6)
    for h in range(22):
        store.upsert_rollup(hourly(monday + h * HOUR, 10, version_totals={"1.0.0": 10}))
    job = RollupJob(store, Granularity.DAY, calendar, retention_cap=7)

    tuesday = job.run(ms(2024, 5, 8, 3, 0, 1)).row

    assert tuesday.window_start == ms(2024, 5, 7)
    assert tuesday.online_users == 220
    assert tuesday.version_totals == {"1.0.0": 220}

    # Counted once: the next day starts after the row just written
    wednesday = job.run(ms(2024, 5, 9, 0, 0, 1)).row
    assert wednesday.online_users == 0


def test_dst_fall_back_day_keeps_all_hours(store, make_heartbeat):
    cal = RollupCalendar("Europe/Berlin")
    day_start, day_end = cal.current_window(Granularity.DAY, ms(2024, 10, 27, 12))
    assert day_end - day_start == 25 * HOUR

    hour_job = RollupJob(
        store, Granularity.HOUR, cal, Settings(client_id_salt=None).retention_hourly
    )
    for i in range(25):
        store.upsert_heartbeat(make_heartbeat(f"c{i}", day_start + i * HOUR + 60_000))
        hour_job.run(day_start + (i + 1) * HOUR + 1_000)

    day = RollupJob(store, Granularity.DAY, cal, retention_cap=7).run(day_end + 1_000)

    assert day.row.window_start == day_start
    assert day.source_rows == 25
    assert day.row.online_users == 25
