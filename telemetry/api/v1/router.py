from fastapi import APIRouter

from .endpoints import heartbeat, rollups

api_router = APIRouter()
api_router.include_router(heartbeat.router, tags=["ingestion"])
api_router.include_router(rollups.router, tags=["rollups"])
