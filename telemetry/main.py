import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator

from shared.constants import Environment
from telemetry import __version__
from telemetry.api.router import api_router
from telemetry.core.config import Settings, settings
from telemetry.core.errors import HeartbeatValidationError, RateLimitExceeded
from telemetry.core.logger import configure_logging, get_logger
from telemetry.core.metrics import HEARTBEATS_INVALID
from telemetry.ingestion import heartbeat_writer
from telemetry.startup import initialize_application

configure_logging()
logger = get_logger("telemetry.main")


async def _stop_task(task: asyncio.Task | None, name: str):
    if task is None:
        return
    try:
        await asyncio.wait_for(task, timeout=10)
    except asyncio.TimeoutError:
        task.cancel()
        logger.warning("background_task_cancelled", extra={"task": name})
    except Exception:  # noqa
        logger.exception("background_task_failed", extra={"task": name})


def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("telemetry_service_starting")
        res = await initialize_application(app_settings)
        app.state.resources = res
        res.writer_task = asyncio.create_task(
            heartbeat_writer(
                res.queue,
                res.store,
                res.stop_event,
                app_settings.queue_poll_timeout_seconds,
            )
        )
        res.scheduler_task = None
        if app_settings.rollup_scheduler_enabled:
            res.scheduler_task = asyncio.create_task(
                res.scheduler.run_forever(res.stop_event)
            )
        res.ready_event.set()
        try:
            yield
        finally:
            logger.info("telemetry_service_stopping")
            res.ready_event.clear()
            res.stop_event.set()
            # The writer drains what is already queued before returning
            await _stop_task(res.writer_task, "heartbeat_writer")
            await _stop_task(res.scheduler_task, "rollup_scheduler")
            await res.ban_store.close()
            res.store.close()

    docs_enabled = not Environment.is_production(app_settings.app_environment)
    app = FastAPI(
        title="Extension Telemetry API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    @app.exception_handler(HeartbeatValidationError)
    async def _invalid_heartbeat(request: Request, exc: HeartbeatValidationError):
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        if request.url.path.endswith("/heartbeat"):
            HEARTBEATS_INVALID.inc()
        return JSONResponse(status_code=400, content={"error": "invalid request"})

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests, please try again later."},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.get("/metrics")
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(api_router)
    return app


app = create_app()

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/docs", "/openapi.json", "/metrics"],
    inprogress_name="telemetry_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app)
