"""Conversation session routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..monitor import get_monitor

router = APIRouter(prefix="/api", tags=["sessions"])


class RecentMessageModel(BaseModel):
    timestamp: Optional[str] = None
    role: str
    content: str


class SessionInfo(BaseModel):
    sessionId: str
    displayLabel: str
    startedAt: Optional[str] = None
    lastActivityAt: Optional[str] = None
    messageCount: int
    recentMessages: list[RecentMessageModel]
    currentAction: str
    status: str
    model: Optional[str] = None
    projectPath: Optional[str] = None


class SessionListResponse(BaseModel):
    sessions: list[SessionInfo]
    counts: dict[str, int]


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(status: Optional[str] = None):
    """Tracked sessions, most recently active first, optionally by status."""
    tracker = get_monitor().tracker
    records = tracker.all()
    if status:
        records = [r for r in records if r.status == status]
    return {
        'sessions': [r.to_dict() for r in records],
        'counts': tracker.counts(),
    }


@router.get("/sessions/{session_id}", response_model=SessionInfo)
async def get_session(session_id: str):
    record = get_monitor().tracker.get(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return record.to_dict()
