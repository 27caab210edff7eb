import time
from typing import Any, Callable

from telemetry.core.errors import HeartbeatValidationError
from telemetry.core.logger import get_logger
from telemetry.core.metrics import HEARTBEATS_ACCEPTED, HEARTBEATS_INVALID
from telemetry.domain.models import ClientHeartbeat
from telemetry.schemas.heartbeat import parse_heartbeat

from .pseudonymize import ClientIdHasher
from .queue import HeartbeatQueue

logger = get_logger("telemetry.ingestion")


def now_ms() -> int:
    return int(time.time() * 1000)


class IngestionService:
    """Validate, pseudonymize and enqueue an admitted heartbeat."""

    def __init__(
        self,
        queue: HeartbeatQueue,
        hasher: ClientIdHasher,
        char_limit: int = 100,
        clock: Callable[[], int] = now_ms,
    ):
        self.queue = queue
        self.hasher = hasher
        self.char_limit = char_limit
        self.clock = clock

    def accept(self, payload: Any) -> ClientHeartbeat:
        try:
            hb = parse_heartbeat(payload, self.char_limit)
        except HeartbeatValidationError:
            HEARTBEATS_INVALID.inc()
            raise
        record = ClientHeartbeat(
            client_id=self.hasher(hb.client_id),
            version=hb.version,
            browser=hb.browser,
            os=hb.os,
            last_seen=self.clock(),
        )
        self.queue.submit(record)
        HEARTBEATS_ACCEPTED.inc()
        logger.debug("heartbeat_enqueued", extra={"queue_size": self.queue.qsize()})
        return record
