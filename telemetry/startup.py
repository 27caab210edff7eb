"""Build every long-lived resource the service needs, or refuse to start.

Anything wrong here (no salt, bad timezone, unusable database, unknown ban
backend) raises `ConfigurationError` out of the lifespan, which stops the
process before it accepts a single request.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from zoneinfo import ZoneInfoNotFoundError

from telemetry.core.config import Settings
from telemetry.core.errors import ConfigurationError, StoreError
from telemetry.core.logger import get_logger
from telemetry.domain.granularity import Granularity, RollupCalendar
from telemetry.infrastructure.redis.client import connect_redis
from telemetry.infrastructure.sqlite import TelemetryStore
from telemetry.ingestion import ClientIdHasher, HeartbeatQueue, IngestionService
from telemetry.ratelimit import RateLimiter, RateLimitPolicy
from telemetry.ratelimit.store import BanStore, InMemoryBanStore, RedisBanStore
from telemetry.rollup.jobs import build_jobs
from telemetry.rollup.scheduler import RollupScheduler, now_ms
from telemetry.services.rollup_service import RollupQueryService

logger = get_logger("startup")

# Rows of each granularity the next one up reads in a single run
_COVERAGE = {
    Granularity.HOUR: 25,
    Granularity.DAY: 7,
    Granularity.WEEK: 5,
    Granularity.MONTH: 12,
}


def build_calendar(settings: Settings) -> RollupCalendar:
    if not 0 <= settings.rollup_week_start <= 6:
        raise ConfigurationError("ROLLUP_WEEK_START must be between 0 and 6")
    try:
        return RollupCalendar(settings.rollup_timezone, settings.rollup_week_start)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(
            f"unknown rollup timezone {settings.rollup_timezone!r}"
        ) from e


def open_store(settings: Settings) -> TelemetryStore:
    store = TelemetryStore(settings.database_path)
    try:
        store.connect()
        store.ping()
    except StoreError as e:
        raise ConfigurationError(str(e)) from e
    return store


def check_retention(settings: Settings) -> None:
    """Warn when a ring is too small to feed the next granularity up."""
    caps = settings.retention_caps()
    for g, needed in _COVERAGE.items():
        cap = caps[g.value]
        if cap < needed:
            logger.warning(
                "retention_below_coverage",
                extra={"granularity": g.value, "cap": cap, "needed": needed},
            )


async def build_ban_store(settings: Settings, policy: RateLimitPolicy) -> BanStore:
    backend = settings.rate_limit_backend.lower()
    if backend == "memory":
        return InMemoryBanStore(policy, now_ms)
    if backend == "redis":
        r = await connect_redis(settings.redis_host, settings.redis_port, settings.redis_db)
        return RedisBanStore(r, policy)
    raise ConfigurationError(f"unknown rate limit backend {backend!r}")


async def initialize_application(settings: Settings) -> SimpleNamespace:
    logger.info("initializing_application", extra={"service": settings.otel_service_name})
    hasher = ClientIdHasher.from_settings(settings)
    if not hasher.enabled:
        logger.warning("client_id_hashing_disabled")
    calendar = build_calendar(settings)
    check_retention(settings)
    store = open_store(settings)

    policy = RateLimitPolicy.from_settings(settings)
    try:
        ban_store = await build_ban_store(settings, policy)
    except Exception:
        store.close()
        raise

    queue = HeartbeatQueue()
    resources = SimpleNamespace(
        settings=settings,
        store=store,
        calendar=calendar,
        queue=queue,
        ban_store=ban_store,
        rate_limiter=RateLimiter(ban_store, policy),
        ingestion=IngestionService(queue, hasher, settings.input_char_limit),
        rollups=RollupQueryService(store, calendar),
        scheduler=RollupScheduler(
            build_jobs(store, calendar, settings.retention_caps()),
            calendar,
            fire_delay_seconds=settings.rollup_fire_delay_seconds,
        ),
        stop_event=asyncio.Event(),
        ready_event=asyncio.Event(),
    )
    logger.info(
        "application_initialized",
        extra={
            "database_path": settings.database_path,
            "rate_limit_backend": settings.rate_limit_backend,
            "rollup_timezone": settings.rollup_timezone,
            "client_id_hashing": hasher.enabled,
        },
    )
    return resources
