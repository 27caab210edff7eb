import redis.asyncio as redis

from shared.utils.retry import retry_async
from telemetry.core.logger import get_logger

logger = get_logger("telemetry.redis")


async def connect_redis(host: str, port: int, db: int) -> redis.Redis:
    """Connect and ping, backing off while redis comes up."""

    async def _connect():
        r = redis.Redis(host=host, port=port, db=db, decode_responses=True)
        await r.ping()
        return r

    async def _on_retry(attempt: int, exc: BaseException, sleep_for: float):
        logger.warning(
            "redis_connect_retry",
            extra={
                "attempt": attempt,
                "error": str(exc),
                "sleep_for": round(sleep_for, 2),
            },
        )

    r = await retry_async(
        _connect,
        retries=6,
        base_delay=0.5,
        max_delay=8.0,
        jitter=0.2,
        on_retry=_on_retry,
    )
    logger.info("redis_connected", extra={"host": host, "port": port, "db": db})
    return r
