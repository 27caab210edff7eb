import pytest

from telemetry.domain.models import ClientHeartbeat


@pytest.fixture
def make_heartbeat():
    """Factory for heartbeats with the fields the two-client scenario uses."""

    def _make(client_id: str, last_seen: int, **fields) -> ClientHeartbeat:
        data = {"version": "1.0.0", "browser": "Chrome", "os": "Windows"}
        data.update(fields)
        return ClientHeartbeat(client_id=client_id, last_seen=last_seen, **data)

    return _make
