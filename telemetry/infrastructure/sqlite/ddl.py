from telemetry.domain.granularity import Granularity

HEARTBEATS_DDL = """
CREATE TABLE IF NOT EXISTS heartbeats (
    client_id TEXT PRIMARY KEY CHECK (length(client_id) <= 100),
    version TEXT,
    browser TEXT,
    os TEXT,
    last_seen INTEGER NOT NULL
)
"""

HEARTBEATS_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS idx_heartbeats_last_seen ON heartbeats(last_seen)
"""

ROLLUP_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    window_start INTEGER PRIMARY KEY,
    online_users INTEGER NOT NULL,
    version_totals TEXT NOT NULL,
    browser_totals TEXT NOT NULL,
    os_totals TEXT NOT NULL,
    window_end INTEGER NOT NULL
)
"""

ROLLUP_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS idx_{table}_window_end ON {table}(window_end)
"""


def all_ddls() -> list[str]:
    ddls = [HEARTBEATS_DDL, HEARTBEATS_INDEX_DDL]
    for granularity in Granularity.ordered():
        ddls.append(ROLLUP_TABLE_DDL.format(table=granularity.table))
        ddls.append(ROLLUP_INDEX_DDL.format(table=granularity.table))
    return ddls
