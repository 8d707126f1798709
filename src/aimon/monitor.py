"""Poll loop tying the process and conversation pipelines together.

Each tick takes a process snapshot, resolves identities for it, then tails
every active conversation log and folds the new entries into the session
tracker. Ticks never overlap: the next one is scheduled only after the
previous one has settled.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from .config import CLAUDE_PROJECTS_DIR, POLL_INTERVAL_SECONDS, TERMINATE_GRACE_SECONDS
from .conversation import (
    LogTailer,
    SessionActivityTracker,
    find_active_logs,
    generate_session_id,
    parse_entries,
    scan_log_history,
    session_id_from_log,
)
from .identity import ProcessIdentifier, format_process_display, get_process_snapshot, terminate
from .logging_config import get_logger
from .types import CacheStats, IdentifiedProcess, RawProcess

logger = get_logger(__name__, namespace='poll')

SnapshotProvider = Callable[[], Awaitable[list[RawProcess]]]


class Monitor:
    """Owns one identifier, one session tracker and one log tailer."""

    def __init__(
        self,
        identifier: Optional[ProcessIdentifier] = None,
        tracker: Optional[SessionActivityTracker] = None,
        tailer: Optional[LogTailer] = None,
        projects_dir: Path = CLAUDE_PROJECTS_DIR,
        interval: float = POLL_INTERVAL_SECONDS,
        snapshot: SnapshotProvider = get_process_snapshot,
    ):
        self.identifier = identifier or ProcessIdentifier()
        self.tracker = tracker or SessionActivityTracker()
        self.tailer = tailer or LogTailer()
        self.projects_dir = projects_dir
        self.interval = interval
        self._snapshot = snapshot

        self.processes: list[RawProcess] = []
        self.identities: dict[int, IdentifiedProcess] = {}
        self.poll_count = 0
        self.last_poll_at: datetime | None = None

        self._log_sessions: dict[str, tuple[str, str | None]] = {}
        self._task: asyncio.Task | None = None
        self._stopping: asyncio.Event | None = None

    # ------------------------------------------------------------------
    # Poll pipelines
    # ------------------------------------------------------------------

    async def poll_processes(self) -> dict[int, IdentifiedProcess]:
        processes = await self._snapshot()
        identities = await self.identifier.identify_batch(processes)
        self.processes = processes
        self.identities = identities
        return identities

    def _session_for_log(self, log_file: Path, cwd: str | None) -> tuple[str, str | None]:
        key = str(log_file)
        known = self._log_sessions.get(key)
        if known is not None and (known[1] is not None or not cwd):
            return known
        if cwd:
            resolved = (generate_session_id(cwd), cwd)
            if known is not None and known[0] != resolved[0]:
                # The log was tracked under its directory name until now
                self.tracker.rename(known[0], resolved[0])
        else:
            resolved = (session_id_from_log(log_file), None)
        self._log_sessions[key] = resolved
        return resolved

    async def poll_sessions(self) -> int:
        """Tail active logs into the tracker; returns how many logs were read."""
        loop = asyncio.get_running_loop()
        logs = await loop.run_in_executor(None, find_active_logs, self.projects_dir)

        for log_file in logs:
            lines = await loop.run_in_executor(None, self.tailer.read_new_lines, log_file)
            origin = self.tailer.pop_origin(log_file)
            history = None
            if origin:
                history = await loop.run_in_executor(None, scan_log_history, log_file, origin)

            entries = parse_entries(lines)
            cwd = next((e.cwd for e in reversed(entries) if e.cwd), None)
            if cwd is None and history is not None:
                cwd = history.cwd
            session_id, project_path = self._session_for_log(log_file, cwd)
            if entries or self.tracker.get(session_id) is None:
                self.tracker.update(session_id, entries, project_path=project_path)
            if history is not None:
                self.tracker.seed_history(session_id, history.message_count, history.started_at)

        self.tracker.evict_inactive()
        return len(logs)

    async def poll_once(self) -> None:
        await self.poll_processes()
        await self.poll_sessions()
        self.poll_count += 1
        self.last_poll_at = datetime.now(timezone.utc)
        logger.debug(
            "Poll %d: %d processes, %d sessions",
            self.poll_count, len(self.identities), len(self.tracker),
        )

    # ------------------------------------------------------------------
    # Loop lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        """Poll until stop() is called; a failing tick is logged and skipped."""
        if self._stopping is None:
            self._stopping = asyncio.Event()
        logger.info("Monitor started (interval %.1fs)", self.interval)
        while not self._stopping.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll cycle failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Monitor stopped")

    def start(self) -> asyncio.Task:
        if not self.running:
            self._stopping = asyncio.Event()
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        self._stopping = None

    # ------------------------------------------------------------------
    # Queries and actions
    # ------------------------------------------------------------------

    def process_views(self) -> list[dict[str, Any]]:
        """Identified processes joined with their snapshot rows, by pid."""
        views = []
        for process in sorted(self.processes, key=lambda p: p['pid']):
            identity = self.identities.get(process['pid'])
            if identity is None:
                continue
            views.append({
                'pid': process['pid'],
                'ppid': process.get('ppid'),
                'command': process['command'],
                'display': format_process_display(identity, identity.get('port')),
                **identity,
            })
        return views

    async def terminate(self, pid: int, grace: float = TERMINATE_GRACE_SECONDS) -> bool:
        """Terminate pid on user request and forget its cached identity."""
        logger.info("Terminate requested for pid %s", pid)
        success = await terminate(pid, grace)
        self.identifier.invalidate(pid)
        if success:
            self.processes = [p for p in self.processes if p['pid'] != pid]
            self.identities.pop(pid, None)
        return success

    def clear_caches(self) -> None:
        self.identifier.clear_cache()

    def get_cache_stats(self) -> CacheStats:
        stats = self.identifier.get_cache_stats()
        stats['sessionCount'] = len(self.tracker)
        return stats


_monitor: Optional[Monitor] = None


def get_monitor() -> Monitor:
    """Get the global Monitor instance."""
    global _monitor
    if _monitor is None:
        _monitor = Monitor()
    return _monitor
