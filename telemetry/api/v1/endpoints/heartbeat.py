import json

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from telemetry.api.dependencies import (
    enforce_rate_limit,
    get_ingestion_service,
    get_settings,
)
from telemetry.core.config import Settings
from telemetry.core.errors import HeartbeatValidationError
from telemetry.ingestion import IngestionService

router = APIRouter()


@router.post(
    "/heartbeat",
    summary="Record a client heartbeat",
    response_description="Heartbeat accepted and queued for storage",
    dependencies=[Depends(enforce_rate_limit)],
)
async def heartbeat(
    request: Request,
    service: IngestionService = Depends(get_ingestion_service),
    settings: Settings = Depends(get_settings),
):
    body = await request.body()
    if len(body) > settings.max_body_bytes:
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"error": f"body exceeds {settings.max_body_bytes} bytes"},
        )
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise HeartbeatValidationError("body must be valid JSON") from e

    # Returns once queued; the write happens on the writer task
    service.accept(payload)
    return {"status": "ok"}
