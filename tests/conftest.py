import os
from datetime import datetime, timezone

import pytest

# Settings are read at import time; keep them deterministic for the test run
os.environ.setdefault("APP_ENVIRONMENT", "testing")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")
os.environ.setdefault("CLIENT_ID_SALT", "test-salt")

from telemetry.domain.granularity import RollupCalendar  # noqa: E402
from telemetry.infrastructure.sqlite import TelemetryStore  # noqa: E402


def utc_ms(*args) -> int:
    return round(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


@pytest.fixture
def store(tmp_path):
    """Connected store on a throwaway database file."""
    s = TelemetryStore(str(tmp_path / "telemetry.sqlite3"))
    s.connect()
    yield s
    s.close()


@pytest.fixture
def calendar() -> RollupCalendar:
    return RollupCalendar("UTC")
