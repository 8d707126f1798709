"""REST API routes for identified processes.

This module provides endpoints for listing the current process snapshot
with resolved identities and for terminating a process on request.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..logging_config import get_logger
from ..monitor import get_monitor

logger = get_logger(__name__, namespace='api')

router = APIRouter(prefix="/api", tags=["processes"])


class ContainerInfoModel(BaseModel):
    name: str
    image: str


class ProcessInfo(BaseModel):
    """One process from the latest snapshot with its identity."""

    pid: int
    ppid: Optional[int] = None
    command: str
    display: str
    displayName: str
    category: str
    project: Optional[str] = None
    port: Optional[int] = None
    containerInfo: Optional[ContainerInfoModel] = None


class KillResponse(BaseModel):
    success: bool
    pid: int
    error: Optional[str] = None


@router.get("/processes", response_model=list[ProcessInfo])
async def list_processes(category: Optional[str] = None):
    """List identified processes from the most recent poll.

    Args:
        category: Only return processes of this category

    Returns:
        List of ProcessInfo ordered by pid
    """
    views = get_monitor().process_views()
    if category:
        views = [v for v in views if v['category'] == category]
    return views


@router.post("/processes/{pid}/kill", response_model=KillResponse)
async def kill_process(pid: int):
    """Terminate a process: SIGTERM, then SIGKILL after a grace period."""
    try:
        success = await get_monitor().terminate(pid)
    except PermissionError:
        logger.warning("Permission denied terminating pid %s", pid)
        raise HTTPException(status_code=403, detail=f"Permission denied for pid {pid}")

    if not success:
        return KillResponse(success=False, pid=pid, error="Process not running")
    return KillResponse(success=True, pid=pid)
