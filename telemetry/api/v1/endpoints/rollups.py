from fastapi import APIRouter, Depends, Query

from shared.utils.concurrency import run_blocking
from telemetry.api.dependencies import get_rollup_service
from telemetry.domain.granularity import Granularity
from telemetry.services.rollup_service import RollupQueryService

router = APIRouter()


@router.get("/rollups/{granularity}")
async def list_rollups(
    granularity: Granularity,
    include_partial: bool = False,
    limit: int | None = Query(None, ge=1, le=1000),
    service: RollupQueryService = Depends(get_rollup_service),
):
    rows = await run_blocking(service.list_rollups, granularity, include_partial, limit)
    return {
        "granularity": granularity.value,
        "rows": [r.model_dump(by_alias=True) for r in rows],
    }


@router.get("/online")
async def online(service: RollupQueryService = Depends(get_rollup_service)):
    return {"onlineUsers": await run_blocking(service.online_now)}
