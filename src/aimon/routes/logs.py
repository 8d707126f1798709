"""Recent log records kept by the buffered log handler."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ..logging_config import NAMESPACES, get_buffer_handler, resolve_level

router = APIRouter(prefix="/api", tags=["logs"])


@router.get("/logs")
async def get_logs(
    count: int = Query(100, ge=1, le=1000),
    namespace: Optional[str] = None,
    level: Optional[str] = None,
):
    """Most recent log entries, optionally for one namespace and above a level."""
    if namespace and namespace not in NAMESPACES:
        raise HTTPException(status_code=400, detail=f"Unknown namespace: {namespace}")

    min_level = None
    if level:
        min_level = resolve_level(level, default=-1)
        if min_level < logging.NOTSET:
            raise HTTPException(status_code=400, detail=f"Unknown level: {level}")

    return {
        'logs': get_buffer_handler().get_history(count, namespace=namespace or None, min_level=min_level),
        'namespaces': NAMESPACES,
    }
