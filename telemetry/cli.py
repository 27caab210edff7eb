"""`telemetry-rollup`: run one rollup job by hand.

Useful to backfill after a long outage or to re-aggregate a window:

    telemetry-rollup day --at 2024-05-02T00:30:00+00:00
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime

from telemetry.core.config import settings
from telemetry.core.errors import ConfigurationError
from telemetry.core.logger import get_logger
from telemetry.domain.granularity import Granularity, to_ms
from telemetry.rollup.jobs import RollupJob
from telemetry.rollup.scheduler import now_ms
from telemetry.startup import build_calendar, open_store

logger = get_logger("telemetry.cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Aggregate the closed window preceding an instant"
    )
    p.add_argument("granularity", choices=[g.value for g in Granularity.ordered()])
    p.add_argument(
        "--at",
        help="ISO-8601 instant; the window closed just before it is aggregated "
        "(default: now)",
    )
    p.add_argument(
        "--only-missing",
        action="store_true",
        help="leave an existing row for that window untouched",
    )
    p.add_argument("--database", default=None, help="override DATABASE_PATH")
    return p.parse_args(argv)


def _instant(raw: str | None) -> int:
    if raw is None:
        return now_ms()
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        raise SystemExit("--at needs a UTC offset, e.g. 2024-05-02T00:30:00+00:00")
    return to_ms(dt)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = settings
    if args.database:
        cfg = settings.model_copy(update={"database_path": args.database})
    g = Granularity(args.granularity)
    try:
        calendar = build_calendar(cfg)
        store = open_store(cfg)
    except ConfigurationError as e:
        logger.error("rollup_cli_config_error", extra={"error": str(e)})
        return 2
    try:
        job = RollupJob(store, g, calendar, cfg.retention_caps()[g.value])
        result = job.run(_instant(args.at), only_missing=args.only_missing)
    finally:
        store.close()
    out = {
        "granularity": g.value,
        "skipped": result.skipped,
        "sourceRows": result.source_rows,
        "evicted": result.evicted,
        "swept": result.swept,
        "row": result.row.model_dump(by_alias=True, mode="json"),
    }
    print(json.dumps(out, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
