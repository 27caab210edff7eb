import sqlite3

import pytest

from telemetry.core.errors import StoreError
from telemetry.domain.granularity import Granularity
from telemetry.domain.models import RollupRow
from telemetry.infrastructure.sqlite import TelemetryStore

HOUR = 3_600_000


def hourly(start: int, users: int = 1, **totals) -> RollupRow:
    return RollupRow(
        granularity=Granularity.HOUR,
        window_start=start,
        window_end=start + HOUR,
        online_users=users,
        **totals,
    )


def test_upsert_heartbeat_last_write_wins(store, make_heartbeat):
    store.upsert_heartbeat(make_heartbeat("abc", 1_000, version="1.0.0"))
    store.upsert_heartbeat(
        make_heartbeat("abc", 2_000, version="1.1.0", browser="Firefox", os=None)
    )

    hb = store.get_heartbeat("abc")
    assert hb is not None
    assert hb.version == "1.1.0"
    assert hb.browser == "Firefox"
    assert hb.os is None
    assert hb.last_seen == 2_000
    assert store.count_heartbeats() == 1


def test_heartbeat_range_queries_and_delete(store, make_heartbeat):
    for i, ts in enumerate([500, 1_000, 1_500, 2_000]):
        store.upsert_heartbeat(make_heartbeat(f"c{i}", ts))

    assert {h.client_id for h in store.heartbeats_before(1_500)} == {"c0", "c1"}
    assert {h.client_id for h in store.heartbeats_between(1_000, 2_000)} == {"c1", "c2"}

    assert store.delete_heartbeats_before(1_500) == 2
    assert store.count_heartbeats() == 2


def test_client_id_length_enforced_by_schema(store, make_heartbeat):
    with pytest.raises(StoreError):
        store.upsert_heartbeat(make_heartbeat("x" * 101, 1_000))


def test_rollup_roundtrip(store):
    row = hourly(
        0,
        users=3,
        version_totals={"1.0.0": 2},
        browser_totals={"Chrome": 3},
        os_totals={"Windows": 1, "Linux": 1},
    )
    store.upsert_rollup(row)

    loaded = store.get_rollup(Granularity.HOUR, 0)
    assert loaded == row
    assert store.get_rollup(Granularity.DAY, 0) is None


def test_rollup_upsert_overwrites_same_window(store):
    store.upsert_rollup(hourly(0, users=1))
    store.upsert_rollup(hourly(0, users=5))
    assert store.count_rollups(Granularity.HOUR) == 1
    assert store.get_rollup(Granularity.HOUR, 0).online_users == 5


def test_list_rollups_returns_latest_in_ascending_order(store):
    for i in range(5):
        store.upsert_rollup(hourly(i * HOUR, users=i))

    assert [r.online_users for r in store.list_rollups(Granularity.HOUR)] == [0, 1, 2, 3, 4]
    assert [r.online_users for r in store.list_rollups(Granularity.HOUR, 2)] == [3, 4]


def test_rollups_closed_between_uses_half_open_end_bound(store):
    for i in range(4):
        store.upsert_rollup(hourly(i * HOUR))
    # window_end values: 1h, 2h, 3h, 4h
    rows = store.rollups_closed_between(Granularity.HOUR, HOUR, 3 * HOUR)
    assert [r.window_end for r in rows] == [2 * HOUR, 3 * HOUR]


def test_evict_oldest_keeps_most_recent(store):
    cap = 3
    for i in range(cap + 1):
        store.upsert_rollup(hourly(i * HOUR))

    assert store.evict_oldest(Granularity.HOUR, cap) == 1
    remaining = [r.window_start for r in store.list_rollups(Granularity.HOUR)]
    assert remaining == [HOUR, 2 * HOUR, 3 * HOUR]
    assert store.evict_oldest(Granularity.HOUR, cap) == 0


def test_transaction_rolls_back_on_error(store, make_heartbeat):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.upsert_heartbeat(make_heartbeat("abc", 1_000))
            store.upsert_rollup(hourly(0))
            raise RuntimeError("boom")

    assert store.get_heartbeat("abc") is None
    assert store.count_rollups(Granularity.HOUR) == 0


def test_tables_and_indexes_created(store):
    conn = sqlite3.connect(store.path)
    try:
        names = {
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type IN ('table', 'index')")
        }
    finally:
        conn.close()
    assert {"heartbeats", "idx_heartbeats_last_seen"} <= names
    for g in Granularity.ordered():
        assert g.table in names
        assert f"idx_{g.table}_window_end" in names


def test_unconnected_store_raises(tmp_path):
    store = TelemetryStore(str(tmp_path / "never.sqlite3"))
    with pytest.raises(StoreError):
        store.count_heartbeats()


def test_unopenable_path_raises(tmp_path):
    # A directory cannot be opened as a database file
    with pytest.raises(StoreError):
        TelemetryStore(str(tmp_path)).connect()


class FailingCommit:
    """Connection wrapper whose first COMMIT fails like a full disk."""

    def __init__(self, conn):
        self._conn = conn
        self.failed = False

    def execute(self, sql, *params):
        if sql == "COMMIT" and not self.failed:
            self.failed = True
            raise sqlite3.OperationalError("disk I/O error")
        return self._conn.execute(sql, *params)

    def __getattr__(self, name):
        return getattr(self._conn, name)


def test_failed_commit_rolls_back_and_store_stays_usable(store, make_heartbeat, monkeypatch):
    monkeypatch.setattr(store, "_conn", FailingCommit(store._conn))

    with pytest.raises(StoreError, match="commit failed"):
        store.upsert_heartbeat(make_heartbeat("a", 1_000))
    store.upsert_heartbeat(make_heartbeat("b", 2_000))

    assert store.get_heartbeat("a") is None
    assert store.get_heartbeat("b") is not None
    assert store.count_heartbeats() == 1
