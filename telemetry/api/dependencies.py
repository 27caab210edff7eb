from fastapi import Depends, Request

from telemetry.core.config import Settings
from telemetry.core.errors import RateLimitExceeded
from telemetry.ingestion import IngestionService
from telemetry.ratelimit import RateLimiter
from telemetry.ratelimit.identity import select_identifier
from telemetry.services.rollup_service import RollupQueryService


def get_settings(request: Request) -> Settings:
    return request.app.state.resources.settings  # type: ignore[no-any-return]


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.resources.rate_limiter  # type: ignore[no-any-return]


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.resources.ingestion  # type: ignore[no-any-return]


def get_rollup_service(request: Request) -> RollupQueryService:
    return request.app.state.resources.rollups  # type: ignore[no-any-return]


async def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> str:
    peer = request.client.host if request.client else None
    identifier = select_identifier(
        request.headers, peer, settings.rate_limit_trust_forwarded_for
    )
    decision = await limiter.check(identifier)
    if not decision.allowed:
        raise RateLimitExceeded(decision.state.value, decision.retry_after_seconds)
    return identifier
