"""SQLite-backed storage for client heartbeats and rollup tables.

One connection, shared across threads and serialized by a re-entrant lock.
Callers on the event loop go through `shared.utils.concurrency.run_blocking`.
Multi-statement units of work (aggregate, upsert, evict, sweep) run inside
`transaction()` so a failure leaves every table as it was.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from telemetry.core.errors import StoreError
from telemetry.core.logger import get_logger
from telemetry.domain import distribution
from telemetry.domain.granularity import Granularity
from telemetry.domain.models import ClientHeartbeat, RollupRow

from .ddl import all_ddls

logger = get_logger("telemetry.store")

_UPSERT_HEARTBEAT = """
INSERT INTO heartbeats (client_id, version, browser, os, last_seen)
VALUES (:client_id, :version, :browser, :os, :last_seen)
ON CONFLICT(client_id) DO UPDATE SET
    version = excluded.version,
    browser = excluded.browser,
    os = excluded.os,
    last_seen = excluded.last_seen
"""

_UPSERT_ROLLUP = """
INSERT INTO {table}
    (window_start, online_users, version_totals, browser_totals, os_totals, window_end)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(window_start) DO UPDATE SET
    online_users = excluded.online_users,
    version_totals = excluded.version_totals,
    browser_totals = excluded.browser_totals,
    os_totals = excluded.os_totals,
    window_end = excluded.window_end
"""

_ROLLUP_COLUMNS = (
    "window_start, online_users, version_totals, browser_totals, os_totals, window_end"
)


class TelemetryStore:
    def __init__(self, path: str):
        self.path = path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    # Lifecycle
    def connect(self) -> None:
        """Open the database and create missing tables."""
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(
                self.path,
                timeout=30.0,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            if self.path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            for ddl in all_ddls():
                conn.execute(ddl)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open database {self.path}: {e}") from e
        self._conn = conn
        logger.info("store_connected", extra={"path": self.path})

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def ping(self) -> bool:
        with self._lock:
            return self._require().execute("SELECT 1").fetchone()[0] == 1

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("store not connected; call connect() first")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator["TelemetryStore"]:
        """Run the enclosed calls as one atomic unit (nesting joins the outer one)."""
        with self._lock:
            conn = self._require()
            if self._depth == 0:
                try:
                    conn.execute("BEGIN IMMEDIATE")
                except sqlite3.Error as e:
                    raise StoreError(f"cannot begin transaction: {e}") from e
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._rollback(conn)
                raise
            self._depth -= 1
            if self._depth == 0:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as e:
                    # A failed COMMIT can leave the transaction open
                    self._rollback(conn)
                    raise StoreError(f"commit failed: {e}") from e

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("store_rollback_failed")

    def _query(self, sql: str, params: tuple | dict = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._require().execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def _execute(self, sql: str, params: tuple | dict = ()) -> int:
        with self.transaction():
            try:
                return self._require().execute(sql, params).rowcount
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    # Heartbeats
    def upsert_heartbeat(self, heartbeat: ClientHeartbeat) -> None:
        self._execute(_UPSERT_HEARTBEAT, heartbeat.model_dump())

    def get_heartbeat(self, client_id: str) -> ClientHeartbeat | None:
        rows = self._query(
            "SELECT client_id, version, browser, os, last_seen "
            "FROM heartbeats WHERE client_id = ?",
            (client_id,),
        )
        return ClientHeartbeat(**dict(rows[0])) if rows else None

    def heartbeats_before(self, end_ms: int) -> list[ClientHeartbeat]:
        rows = self._query(
            "SELECT client_id, version, browser, os, last_seen "
            "FROM heartbeats WHERE last_seen < ?",
            (end_ms,),
        )
        return [ClientHeartbeat(**dict(r)) for r in rows]

    def heartbeats_between(self, start_ms: int, end_ms: int) -> list[ClientHeartbeat]:
        rows = self._query(
            "SELECT client_id, version, browser, os, last_seen "
            "FROM heartbeats WHERE last_seen >= ? AND last_seen < ?",
            (start_ms, end_ms),
        )
        return [ClientHeartbeat(**dict(r)) for r in rows]

    def count_heartbeats(self) -> int:
        return self._query("SELECT COUNT(*) FROM heartbeats")[0][0]

    def delete_heartbeats_before(self, end_ms: int) -> int:
        return self._execute("DELETE FROM heartbeats WHERE last_seen < ?", (end_ms,))

    # Rollups
    def upsert_rollup(self, row: RollupRow) -> None:
        self._execute(
            _UPSERT_ROLLUP.format(table=row.granularity.table),
            (
                row.window_start,
                row.online_users,
                distribution.dumps(row.version_totals),
                distribution.dumps(row.browser_totals),
                distribution.dumps(row.os_totals),
                row.window_end,
            ),
        )

    def get_rollup(self, granularity: Granularity, window_start: int) -> RollupRow | None:
        rows = self._query(
            f"SELECT {_ROLLUP_COLUMNS} FROM {granularity.table} WHERE window_start = ?",
            (window_start,),
        )
        return self._to_rollup(granularity, rows[0]) if rows else None

    def rollups_closed_between(
        self, granularity: Granularity, start_ms: int | None, end_ms: int
    ) -> list[RollupRow]:
        """Rows whose window closed inside `(start_ms, end_ms]`; no lower bound when None."""
        if start_ms is None:
            rows = self._query(
                f"SELECT {_ROLLUP_COLUMNS} FROM {granularity.table} "
                "WHERE window_end <= ? ORDER BY window_start ASC",
                (end_ms,),
            )
        else:
            rows = self._query(
                f"SELECT {_ROLLUP_COLUMNS} FROM {granularity.table} "
                "WHERE window_end > ? AND window_end <= ? ORDER BY window_start ASC",
                (start_ms, end_ms),
            )
        return [self._to_rollup(granularity, r) for r in rows]

    def list_rollups(
        self, granularity: Granularity, limit: int | None = None
    ) -> list[RollupRow]:
        """Most recent `limit` rows (all when None), ordered by window_start."""
        if limit is None:
            rows = self._query(
                f"SELECT {_ROLLUP_COLUMNS} FROM {granularity.table} "
                "ORDER BY window_start ASC"
            )
        else:
            rows = self._query(
                f"SELECT {_ROLLUP_COLUMNS} FROM ("
                f"SELECT * FROM {granularity.table} ORDER BY window_start DESC LIMIT ?"
                ") ORDER BY window_start ASC",
                (limit,),
            )
        return [self._to_rollup(granularity, r) for r in rows]

    def latest_window_end(self, granularity: Granularity, at_most: int) -> int | None:
        """End of the newest stored window that closed at or before `at_most`."""
        return self._query(
            f"SELECT MAX(window_end) FROM {granularity.table} WHERE window_end <= ?",
            (at_most,),
        )[0][0]

    def count_rollups(self, granularity: Granularity) -> int:
        return self._query(f"SELECT COUNT(*) FROM {granularity.table}")[0][0]

    def evict_oldest(self, granularity: Granularity, keep: int) -> int:
        """Delete the oldest rows by window_start until at most `keep` remain."""
        if keep <= 0:
            return 0
        with self.transaction():
            excess = self.count_rollups(granularity) - keep
            if excess <= 0:
                return 0
            return self._execute(
                f"DELETE FROM {granularity.table} WHERE window_start IN ("
                f"SELECT window_start FROM {granularity.table} "
                "ORDER BY window_start ASC LIMIT ?)",
                (excess,),
            )

    @staticmethod
    def _to_rollup(granularity: Granularity, row: sqlite3.Row) -> RollupRow:
        return RollupRow(
            granularity=granularity,
            window_start=row["window_start"],
            window_end=row["window_end"],
            online_users=row["online_users"],
            version_totals=distribution.loads(row["version_totals"]),
            browser_totals=distribution.loads(row["browser_totals"]),
            os_totals=distribution.loads(row["os_totals"]),
        )
