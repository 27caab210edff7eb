from __future__ import annotations

import time
from typing import Callable

from telemetry.core.logger import get_logger
from telemetry.core.metrics import RATE_LIMIT_BANS, RATE_LIMIT_REJECTIONS

from .state import Decision, RateLimitPolicy, admit
from .store import BanStore

logger = get_logger("telemetry.ratelimit")


def now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """Gates the ingestion pipeline; a denied request never reaches the queue."""

    def __init__(
        self,
        store: BanStore,
        policy: RateLimitPolicy,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.policy = policy
        self.clock = clock

    async def check(self, identifier: str) -> Decision:
        now = self.clock()
        decision = await self.store.update(
            identifier, lambda record: admit(record, self.policy, now)
        )
        if not decision.allowed:
            RATE_LIMIT_REJECTIONS.labels(decision.state.value).inc()
            if decision.newly_banned:
                RATE_LIMIT_BANS.inc()
            logger.warning(
                "rate_limit_rejected",
                extra={
                    "identifier": identifier,
                    "state": decision.state.value,
                    "banned": decision.newly_banned,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
        return decision
