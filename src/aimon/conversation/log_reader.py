"""Conversation log discovery and incremental tailing.

Logs live under ``CLAUDE_PROJECTS_DIR/<project-slug>/<session>.jsonl``. The
newest file in a project directory is the live conversation for that
project.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ..config import ACTIVE_LOG_MAX_AGE_SECONDS, CLAUDE_PROJECTS_DIR, LOG_TAIL_BYTES
from ..logging_config import get_logger
from .entry_parser import parse_entries
from .message_extractor import extract_user_content

logger = get_logger(__name__, namespace='session')


def cwd_to_project_slug(cwd: str) -> str:
    """Convert a cwd path to the project directory name used for its logs."""
    # /Users/me/my_app -> -Users-me-my-app
    return cwd.replace('/', '-').replace('.', '-').replace('_', '-')


def generate_session_id(project_path: str) -> str:
    """Stable session id for a project path: /a/b/proj -> claude-a-b-proj."""
    return 'claude-' + project_path.replace('/', '-')[1:]


def session_id_from_log(log_file: Path) -> str:
    """Session id derived from a log's project directory when no cwd is known."""
    return 'claude-' + log_file.parent.name[1:]


def get_latest_log_file(project_dir: Path) -> Path | None:
    """Most recently modified .jsonl file in a project directory."""
    latest: tuple[float, Path] | None = None
    try:
        candidates = list(project_dir.glob('*.jsonl'))
    except OSError:
        return None

    for path in candidates:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            continue
        if latest is None or mtime > latest[0]:
            latest = (mtime, path)
    return latest[1] if latest else None


def find_active_logs(
    projects_dir: Path = CLAUDE_PROJECTS_DIR,
    max_age: float = ACTIVE_LOG_MAX_AGE_SECONDS,
    now: float | None = None,
) -> list[Path]:
    """Latest log of every project, if it was written within max_age seconds."""
    now = time.time() if now is None else now
    if not projects_dir.is_dir():
        return []

    active = []
    for project_dir in sorted(projects_dir.iterdir()):
        if not project_dir.is_dir():
            continue
        latest = get_latest_log_file(project_dir)
        if latest is None:
            continue
        try:
            age = now - latest.stat().st_mtime
        except OSError:
            continue
        if age <= max_age:
            active.append(latest)
    return active


@dataclass
class LogHistory:
    """What a log holds before the point its first tailed read started."""
    message_count: int = 0
    started_at: datetime | None = None
    cwd: str | None = None


def scan_log_history(path: Path, end: int) -> LogHistory:
    """Count real user messages, the first timestamp and the last cwd in path[:end].

    end is a line boundary, normally the tailer's first-read origin, so the
    tail that update() already counted is not counted again.
    """
    history = LogHistory()
    consumed = 0
    try:
        with open(path, 'rb') as f:
            for raw in f:
                if consumed >= end:
                    break
                consumed += len(raw)
                for entry in parse_entries([raw]):
                    if extract_user_content(entry):
                        history.message_count += 1
                    if entry.timestamp and (history.started_at is None or entry.timestamp < history.started_at):
                        history.started_at = entry.timestamp
                    if entry.cwd:
                        history.cwd = entry.cwd
    except OSError as e:
        logger.debug("Could not scan %s: %s", path, e)
    return history


class LogTailer:
    """Returns only the complete lines appended to each log since the last read.

    The first read of a file starts at most tail_bytes from its end and
    skips the partial line it lands in. A trailing line without a newline
    is left for the next read. A file that shrank is re-read from its tail.
    Where a first read skipped older content, its start offset is kept
    until pop_origin() so the caller can scan the skipped part once.
    """

    def __init__(self, tail_bytes: int = LOG_TAIL_BYTES):
        self.tail_bytes = tail_bytes
        self._offsets: dict[str, int] = {}
        self._origins: dict[str, int] = {}

    def read_new_lines(self, path: Path) -> list[str]:
        key = str(path)
        try:
            size = path.stat().st_size
        except OSError:
            self._offsets.pop(key, None)
            return []

        offset = self._offsets.get(key)
        first_sight = offset is None
        skip_partial = False
        if offset is None or size < offset:
            if offset is not None:
                logger.debug("Log %s shrank, re-reading tail", path.name)
            offset = max(0, size - self.tail_bytes)
            skip_partial = offset > 0

        if size == offset:
            self._offsets[key] = offset
            return []

        try:
            with open(path, 'rb') as f:
                f.seek(offset)
                data = f.read(size - offset)
        except OSError as e:
            logger.debug("Could not read %s: %s", path, e)
            return []

        if skip_partial:
            first_newline = data.find(b'\n')
            if first_newline == -1:
                return []
            offset += first_newline + 1
            data = data[first_newline + 1:]
            if first_sight:
                self._origins[key] = offset

        last_newline = data.rfind(b'\n')
        if last_newline == -1:
            self._offsets[key] = offset
            return []

        self._offsets[key] = offset + last_newline + 1
        complete = data[:last_newline + 1].decode('utf-8', errors='replace')
        return [line for line in complete.splitlines() if line.strip()]

    def pop_origin(self, path: Path) -> int | None:
        """Byte offset the first read of path started at, if it skipped anything."""
        return self._origins.pop(str(path), None)

    def forget(self, path: Path) -> None:
        self._offsets.pop(str(path), None)
        self._origins.pop(str(path), None)

    def reset(self) -> None:
        self._offsets.clear()
        self._origins.clear()

    def __len__(self) -> int:
        return len(self._offsets)
