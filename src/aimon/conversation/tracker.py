"""Per-session activity records.

Each poll feeds the newly parsed entries of a session into update(). The
record keeps a bounded window of recent entries so status is judged on
the whole recent conversation, not only on what arrived this poll.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from ..config import (
    COMMAND_RESPONSE_GRACE_SECONDS,
    ENTRY_WINDOW_SIZE,
    RECENT_MESSAGES_LIMIT,
    SESSION_INACTIVITY_SECONDS,
)
from ..logging_config import get_logger
from ..types import SESSION_STATUSES, SessionStatus
from ..utils import sanitize_text
from .action_detector import detect_action
from .entry_parser import ParsedEntry, extract_model_name
from .message_extractor import extract_messages, extract_user_content
from .status_analyzer import analyze_status

logger = get_logger(__name__, namespace='session')

DISPLAY_LABEL_LENGTH = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class SessionRecord:
    """Current view of one conversation."""
    session_id: str
    display_label: str = 'No activity'
    started_at: datetime | None = None
    last_activity_at: datetime | None = None
    message_count: int = 0
    recent_messages: deque = field(default_factory=lambda: deque(maxlen=RECENT_MESSAGES_LIMIT))
    current_action: str = ''
    status: SessionStatus = 'idle'
    model: str | None = None
    project_path: str | None = None
    entries: deque = field(default_factory=lambda: deque(maxlen=ENTRY_WINDOW_SIZE), repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            'sessionId': self.session_id,
            'displayLabel': self.display_label,
            'startedAt': _iso(self.started_at),
            'lastActivityAt': _iso(self.last_activity_at),
            'messageCount': self.message_count,
            'recentMessages': [m.to_dict() for m in self.recent_messages],
            'currentAction': self.current_action,
            'status': self.status,
            'model': self.model,
            'projectPath': self.project_path,
        }


class SessionActivityTracker:
    """Owns the session map; evicts sessions idle past the inactivity threshold."""

    def __init__(
        self,
        grace: float = COMMAND_RESPONSE_GRACE_SECONDS,
        inactivity: float = SESSION_INACTIVITY_SECONDS,
        recent_limit: int = RECENT_MESSAGES_LIMIT,
        window_size: int = ENTRY_WINDOW_SIZE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.grace = grace
        self.inactivity = timedelta(seconds=inactivity)
        self.recent_limit = recent_limit
        self.window_size = window_size
        self._clock = clock or _utcnow
        self._sessions: dict[str, SessionRecord] = {}

    def _new_record(self, session_id: str) -> SessionRecord:
        return SessionRecord(
            session_id=session_id,
            recent_messages=deque(maxlen=self.recent_limit),
            entries=deque(maxlen=self.window_size),
        )

    def update(
        self,
        session_id: str,
        entries: list[ParsedEntry],
        project_path: str | None = None,
    ) -> SessionRecord:
        """Fold newly read entries into the session and re-evaluate its status."""
        now = self._clock()
        record = self._sessions.get(session_id)
        is_new = record is None
        if record is None:
            record = self._new_record(session_id)

        if project_path:
            record.project_path = project_path

        record.entries.extend(entries)
        record.recent_messages.extend(extract_messages(entries))
        record.message_count += sum(1 for e in entries if extract_user_content(e))

        model = extract_model_name(entries)
        if model:
            record.model = model

        timestamps = [e.timestamp for e in entries if e.timestamp is not None]
        if record.started_at is None:
            record.started_at = min(timestamps) if timestamps else now
        if timestamps:
            newest = max(timestamps)
            if record.last_activity_at is None or newest > record.last_activity_at:
                record.last_activity_at = newest
        elif entries or is_new:
            record.last_activity_at = now

        window = list(record.entries)
        action = detect_action(window)
        result = analyze_status(window, action.current_action, self.grace)
        if result.status != record.status and not is_new:
            logger.debug("Session %s: %s -> %s", session_id, record.status, result.status)
        record.status = result.status
        record.current_action = result.action
        record.display_label = self._display_label(record)

        self._sessions[session_id] = record
        self.evict_inactive(keep=session_id)
        return record

    def seed_history(
        self,
        session_id: str,
        message_count: int,
        started_at: datetime | None,
    ) -> SessionRecord | None:
        """Add what a log held before its first tailed read to the session."""
        record = self._sessions.get(session_id)
        if record is None:
            return None
        record.message_count += message_count
        if started_at is not None and (record.started_at is None or started_at < record.started_at):
            record.started_at = started_at
        return record

    def rename(self, old_id: str, new_id: str) -> SessionRecord | None:
        """Move a session to a new id; an existing record under new_id wins."""
        record = self._sessions.pop(old_id, None)
        if record is None or new_id in self._sessions:
            return self._sessions.get(new_id)
        record.session_id = new_id
        self._sessions[new_id] = record
        logger.debug("Session %s is now %s", old_id, new_id)
        return record

    def _display_label(self, record: SessionRecord) -> str:
        for message in reversed(record.recent_messages):
            if message.role == 'user':
                return sanitize_text(message.content, max_length=DISPLAY_LABEL_LENGTH)
        if record.current_action:
            return record.current_action
        return 'Active conversation' if record.entries else 'No activity'

    def evict_inactive(self, keep: str | None = None) -> list[str]:
        """Drop sessions whose last activity is older than the threshold."""
        cutoff = self._clock() - self.inactivity
        evicted = [
            session_id for session_id, record in self._sessions.items()
            if session_id != keep
            and record.last_activity_at is not None
            and record.last_activity_at < cutoff
        ]
        for session_id in evicted:
            del self._sessions[session_id]
        if evicted:
            logger.info("Evicted %d inactive sessions", len(evicted))
        return evicted

    def get(self, session_id: str) -> SessionRecord | None:
        return self._sessions.get(session_id)

    def all(self) -> list[SessionRecord]:
        """Sessions, most recently active first."""
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(
            self._sessions.values(),
            key=lambda r: r.last_activity_at or epoch,
            reverse=True,
        )

    def counts(self) -> dict[str, int]:
        result = {status: 0 for status in SESSION_STATUSES}
        for record in self._sessions.values():
            result[record.status] += 1
        result['total'] = len(self._sessions)
        return result

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
