"""Cache diagnostics routes."""

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from ..logging_config import get_logger
from ..monitor import get_monitor

logger = get_logger(__name__, namespace='api')

router = APIRouter(prefix="/api", tags=["cache"])


class CacheStatsResponse(BaseModel):
    identitySize: int
    inflightSize: int
    cwdSize: int
    containerSize: int
    sessionCount: Optional[int] = None


@router.get("/cache", response_model=CacheStatsResponse)
async def get_cache_stats():
    """Entry counts for every cache layer."""
    return get_monitor().get_cache_stats()


@router.delete("/cache", response_model=CacheStatsResponse)
async def clear_cache():
    """Drop all cached identities and probe results."""
    monitor = get_monitor()
    monitor.clear_caches()
    logger.info("Caches cleared")
    return monitor.get_cache_stats()
