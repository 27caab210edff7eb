"""Write-serialization queue between request handlers and the heartbeat table.

Handlers only ever `submit`; a single `heartbeat_writer` task owns the
store side, so upserts are applied in submission order and never overlap.
The queue lives in memory only: whatever is still queued when the process
dies is lost.
"""

from __future__ import annotations

import asyncio

from shared.utils.concurrency import run_blocking
from telemetry.core.logger import get_logger
from telemetry.core.metrics import (
    HEARTBEAT_WRITE_ERRORS,
    HEARTBEAT_WRITES,
    QUEUE_CURRENT_SIZE,
)
from telemetry.domain.models import ClientHeartbeat
from telemetry.infrastructure.sqlite import TelemetryStore

logger = get_logger("telemetry.ingestion.queue")


class HeartbeatQueue:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[ClientHeartbeat] = asyncio.Queue()

    def submit(self, heartbeat: ClientHeartbeat) -> None:
        """Never blocks and never refuses; there is no backpressure."""
        self._queue.put_nowait(heartbeat)
        QUEUE_CURRENT_SIZE.set(self._queue.qsize())

    async def get(self, timeout: float) -> ClientHeartbeat | None:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def task_done(self) -> None:
        self._queue.task_done()
        QUEUE_CURRENT_SIZE.set(self._queue.qsize())

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    async def join(self) -> None:
        await self._queue.join()


async def write_one(store: TelemetryStore, heartbeat: ClientHeartbeat) -> bool:
    """Upsert one heartbeat. Failures are logged and the record dropped."""
    try:
        await run_blocking(store.upsert_heartbeat, heartbeat)
    except Exception as e:  # noqa: BLE001
        HEARTBEAT_WRITE_ERRORS.inc()
        logger.exception(
            "heartbeat_write_failed",
            extra={"error_type": type(e).__name__, "error": str(e)},
        )
        return False
    HEARTBEAT_WRITES.inc()
    return True


async def heartbeat_writer(
    queue: HeartbeatQueue,
    store: TelemetryStore,
    stop_event: asyncio.Event,
    poll_timeout: float = 0.5,
):
    """Drain `queue` into `store` one record at a time until stopped.

    Anything already queued when `stop_event` is set is still written.
    """
    while not stop_event.is_set() or not queue.empty():
        item = await queue.get(poll_timeout)
        if item is None:
            continue
        try:
            await write_one(store, item)
        finally:
            queue.task_done()
    logger.info("heartbeat_writer_stopped")
