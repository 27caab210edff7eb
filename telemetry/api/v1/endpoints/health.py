from fastapi import APIRouter, Request, Response

from shared.utils.concurrency import run_blocking
from telemetry.core.logger import get_logger

logger = get_logger("telemetry.health")
router = APIRouter()


@router.get("/healthz")
async def healthz(request: Request):
    resources = request.app.state.resources
    try:
        await run_blocking(resources.store.ping)
        return {"status": "ok", "queue_size": resources.queue.qsize()}
    except Exception:
        logger.exception("healthz_store_unavailable")
        return Response(status_code=503, content="store unavailable")


@router.get("/readyz")
async def readyz(request: Request):
    if request.app.state.resources.ready_event.is_set():
        return {"status": "ready"}
    return Response(status_code=503, content="not ready")
