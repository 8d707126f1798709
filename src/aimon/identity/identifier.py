"""Process identity resolution with caching and batch ordering.

identify() memoizes one process at a time and shares a single in-flight
computation between concurrent callers of the same key. identify_batch()
resolves a whole snapshot with one probe call per lookup class, ancestors
before descendants, so a child can inherit the identity its parent was
given earlier in the same batch.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..cache import TTLCache
from ..config import (
    CACHE_KEY_COMMAND_PREFIX,
    IDENTITY_CACHE_SIZE,
    IDENTITY_CACHE_TTL,
    MAX_INHERIT_DEPTH,
)
from ..logging_config import get_logger
from ..types import CacheStats, ContainerInfo, IdentifiedProcess, RawProcess
from .patterns import (
    PatternContext,
    classify,
    container_identity,
    extract_project_name,
    match_rules,
)
from .relationship import inherit_identity, should_inherit
from .system_info import SystemProbe
from .tree import ProcessTree

logger = get_logger(__name__, namespace='identity')


def cache_key(info: RawProcess) -> str:
    """pid + port + command prefix; a reused pid with a new command misses."""
    port = info.get('port') or ''
    return f"{info['pid']}:{port}:{info['command'][:CACHE_KEY_COMMAND_PREFIX]}"


def _is_valid(info: Any) -> bool:
    return (
        isinstance(info, dict)
        and isinstance(info.get('pid'), int)
        and isinstance(info.get('command'), str)
    )


class ProcessIdentifier:
    """Owns the identity cache and the in-flight de-duplication table."""

    def __init__(
        self,
        probe: Optional[SystemProbe] = None,
        cache_size: int = IDENTITY_CACHE_SIZE,
        cache_ttl: float = IDENTITY_CACHE_TTL,
        max_inherit_depth: int = MAX_INHERIT_DEPTH,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.probe = probe or SystemProbe()
        clock_kwargs = {'clock': clock} if clock else {}
        self.cache = TTLCache(cache_size, cache_ttl, **clock_kwargs)
        # Inherited hops behind each cached identity, expiring with it
        self.depths = TTLCache(cache_size, cache_ttl, **clock_kwargs)
        self.max_inherit_depth = max_inherit_depth
        self._inflight: dict[str, asyncio.Future] = {}
        # Bumped by invalidate/clear_cache; older computations don't write back
        self._generation = 0

    async def identify(self, info: RawProcess) -> IdentifiedProcess:
        """Identify a single process, memoized by cache_key()."""
        key = cache_key(info)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        return await self._shared(key, lambda: self._do_identify(info))

    async def _shared(
        self,
        key: str,
        factory: Callable[[], Awaitable[IdentifiedProcess]],
    ) -> IdentifiedProcess:
        # Shielded: a cancelled caller must not cancel the shared computation
        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        generation = self._generation

        async def compute() -> IdentifiedProcess:
            result = await factory()
            if generation == self._generation:
                self._store(key, result, 0)
            return result

        task = asyncio.ensure_future(compute())
        self._inflight[key] = task

        def _release(done: asyncio.Future) -> None:
            # Removed as soon as the computation settles, success or failure
            if self._inflight.get(key) is done:
                del self._inflight[key]
            if not done.cancelled() and done.exception() is not None:
                logger.debug("Identity lookup for %s failed: %s", key, done.exception())

        task.add_done_callback(_release)
        return await asyncio.shield(task)

    def _store(self, key: str, result: IdentifiedProcess, depth: int) -> None:
        self.cache.set(key, result)
        if depth:
            self.depths.set(key, depth)
        else:
            self.depths.delete(key)

    async def _do_identify(self, info: RawProcess) -> IdentifiedProcess:
        port = info.get('port')
        container = await self.probe.get_container_by_port(port) if port else None
        cwd = info.get('cwd') or await self.probe.get_process_cwd(info['pid'])
        return self._classify(info['command'], cwd, port, container)

    @staticmethod
    def _classify(
        command: str,
        cwd: str | None,
        port: int | None,
        container: ContainerInfo | None = None,
    ) -> IdentifiedProcess:
        project_name = extract_project_name(cwd, command)
        return classify(command, PatternContext(
            cwd=cwd,
            project_name=project_name,
            port=port,
            container=container,
        ))

    async def identify_batch(self, processes: list[RawProcess]) -> dict[int, IdentifiedProcess]:
        """Identify a snapshot, resolving every ancestor before its descendants."""
        valid = [p for p in processes if _is_valid(p)]
        if len(valid) != len(processes):
            logger.debug("Dropped %d malformed process records", len(processes) - len(valid))

        generation = self._generation
        tree = ProcessTree(valid)
        uncached = [p for p in tree.processes.values() if self.cache.get(cache_key(p)) is None]

        cwds = await self.probe.batch_get_cwd([p['pid'] for p in uncached if not p.get('cwd')])
        ports = [p['port'] for p in uncached if p.get('port')]
        containers = await self.probe.batch_get_container_by_port(ports) if ports else {}

        identified: dict[int, IdentifiedProcess] = {}
        inherit_depth: dict[int, int] = {}

        for process in tree.ancestors_first():
            pid = process['pid']
            key = cache_key(process)
            port = process.get('port')

            cached = self.cache.get(key)
            if cached is not None:
                identified[pid] = cached
                inherit_depth[pid] = self.depths.get(key, 0)
                continue

            parent = tree.get_parent(pid)
            parent_identity = identified.get(parent['pid']) if parent else None
            parent_depth = inherit_depth.get(parent['pid'], 0) if parent else 0

            if port and port in containers:
                result = container_identity(containers[port], port)
            elif (
                parent_identity is not None
                and parent_depth < self.max_inherit_depth
                and should_inherit(process, parent, parent_identity)
            ):
                result = inherit_identity(parent_identity, process)
                inherit_depth[pid] = parent_depth + 1
                self._log_disagreement(process, result, cwds.get(pid) or process.get('cwd'))
            else:
                pending = self._inflight.get(key)
                if pending is not None:
                    result = await asyncio.shield(pending)
                else:
                    cwd = cwds.get(pid) or process.get('cwd')
                    result = self._classify(process['command'], cwd, port)

            # Committed before the next process so descendants observe it;
            # skipped when the caches were cleared while the batch ran
            if generation == self._generation:
                self._store(key, result, inherit_depth.get(pid, 0))
            identified[pid] = result

        return identified

    def _log_disagreement(self, process: RawProcess, inherited: IdentifiedProcess, cwd: str | None) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        ctx = PatternContext(
            cwd=cwd,
            project_name=extract_project_name(cwd, process['command']),
            port=process.get('port'),
        )
        independent = match_rules(process['command'], ctx)
        if independent and independent['category'] != inherited['category']:
            logger.debug(
                "pid %s inherited %r (%s) but classifies as %r (%s)",
                process['pid'], inherited['displayName'], inherited['category'],
                independent['displayName'], independent['category'],
            )

    def invalidate(self, pid: int) -> None:
        """Drop every cached identity for pid."""
        prefix = f"{pid}:"
        for key in list(self.cache.keys()):
            if key.startswith(prefix):
                self.cache.delete(key)
                self.depths.delete(key)
        for key in [k for k in self._inflight if k.startswith(prefix)]:
            del self._inflight[key]
        self._generation += 1

    def clear_cache(self) -> None:
        self._generation += 1
        self.cache.clear()
        self.depths.clear()
        self._inflight.clear()
        self.probe.clear_cache()

    def get_cache_stats(self) -> CacheStats:
        probe_stats = self.probe.get_cache_stats()
        return {
            'identitySize': self.cache.size(),
            'inflightSize': len(self._inflight),
            'cwdSize': probe_stats['cwdSize'],
            'containerSize': probe_stats['containerSize'],
        }
