"""Where ban records live: this process, or redis when several workers share limits."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable

from redis.asyncio import Redis
from redis.exceptions import WatchError

from shared.constants import RedisKeys

from .state import BanRecord, Decision, RateLimitPolicy

Transition = Callable[[BanRecord], Decision]


class BanStore(ABC):
    @abstractmethod
    async def update(self, identifier: str, transition: Transition) -> Decision:
        """Apply `transition` to the identifier's record atomically."""

    async def close(self) -> None:
        return None


class InMemoryBanStore(BanStore):
    """Process-local records guarded by one asyncio lock.

    Idle records are pruned once per window so the map stays bounded by the
    number of identifiers active in the last window.
    """

    def __init__(self, policy: RateLimitPolicy, clock: Callable[[], int]):
        self.policy = policy
        self.clock = clock
        self._records: dict[str, BanRecord] = {}
        self._lock = asyncio.Lock()
        self._last_prune = clock()

    async def update(self, identifier: str, transition: Transition) -> Decision:
        async with self._lock:
            self._prune()
            record = self._records.setdefault(identifier, BanRecord())
            return transition(record)

    def get(self, identifier: str) -> BanRecord | None:
        return self._records.get(identifier)

    def __len__(self) -> int:
        return len(self._records)

    def _prune(self) -> None:
        now = self.clock()
        if now - self._last_prune < self.policy.window_ms:
            return
        self._last_prune = now
        for key, record in list(self._records.items()):
            if record.is_idle(now, self.policy):
                del self._records[key]


class RedisBanStore(BanStore):
    """Records as JSON strings, updated with WATCH/MULTI so concurrent
    workers never lose each other's hits."""

    def __init__(self, redis: Redis, policy: RateLimitPolicy):
        self.r = redis
        self.policy = policy
        self.ttl_ms = max(policy.window_ms, policy.ban_ms)

    async def update(self, identifier: str, transition: Transition) -> Decision:
        key = RedisKeys.ban_record_key(identifier)
        async with self.r.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    record = BanRecord.from_json(raw) if raw else BanRecord()
                    decision = transition(record)
                    pipe.multi()
                    pipe.set(key, record.to_json(), px=self.ttl_ms)
                    await pipe.execute()
                    return decision
                except WatchError:
                    continue

    async def get(self, identifier: str) -> BanRecord | None:
        raw = await self.r.get(RedisKeys.ban_record_key(identifier))
        return BanRecord.from_json(raw) if raw else None

    async def close(self) -> None:
        await self.r.aclose()
