"""Batched system lookups used to enrich process identities.

This module provides:
- Working directory lookup for many pids with a single lsof call
- Container-by-published-port lookup with a single docker call
- Per-lookup-class TTL caches so a stable snapshot spawns nothing

Every lookup is an optional enrichment: a failed or empty external query
leaves the affected keys absent from the result.
"""

import asyncio
import re
import subprocess
from typing import Callable, Iterable, Optional

from ..cache import TTLCache
from ..config import (
    CONTAINER_CACHE_TTL,
    CWD_CACHE_TTL,
    PROBE_CACHE_SIZE,
    PROBE_TIMEOUT_SECONDS,
)
from ..logging_config import get_logger
from ..types import ContainerInfo

logger = get_logger(__name__, namespace='probe')

# Stored for keys a successful query did not return, so they are not re-queried
_NOT_FOUND = object()
_UNSET = object()

_DOCKER_PORT_RE = re.compile(r':(\d+)->')

Runner = Callable[[list[str], float], Optional[str]]


def run_command(args: list[str], timeout: float = PROBE_TIMEOUT_SECONDS) -> str | None:
    """Run an external command and return its stdout, or None on any failure.

    A non-zero exit status is not a failure on its own: lsof exits 1 when
    some of the requested pids are gone but still prints the rest.
    """
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except Exception as e:
        logger.debug("Probe %s failed: %s", args[0], e)
        return None
    if result.returncode != 0 and not result.stdout:
        logger.debug("Probe %s exited %s with no output", args[0], result.returncode)
        return None
    return result.stdout


def parse_lsof_cwd(output: str) -> dict[int, str]:
    """Parse `lsof -F pn` output: a p<pid> line followed by n<path> lines."""
    cwds: dict[int, str] = {}
    current_pid: int | None = None
    for line in output.splitlines():
        if line.startswith('p'):
            try:
                current_pid = int(line[1:])
            except ValueError:
                current_pid = None
        elif line.startswith('n') and current_pid is not None:
            cwds.setdefault(current_pid, line[1:])
    return cwds


def parse_docker_ports(output: str) -> dict[int, ContainerInfo]:
    """Parse `docker ps --format '{{.Names}}|{{.Image}}|{{.Ports}}'` output.

    Ports look like "0.0.0.0:3000->3000/tcp, :::5432->5432/tcp"; the host
    side of every mapping is indexed.
    """
    containers: dict[int, ContainerInfo] = {}
    for line in output.splitlines():
        parts = line.strip().split('|')
        if len(parts) < 3 or not parts[0]:
            continue
        name, image, ports_str = parts[0], parts[1], parts[2]
        for port_str in _DOCKER_PORT_RE.findall(ports_str):
            containers.setdefault(int(port_str), {'name': name, 'image': image})
    return containers


class SystemProbe:
    """Cache-fronted batch lookups against the operating system."""

    def __init__(
        self,
        runner: Runner = run_command,
        cwd_ttl: float = CWD_CACHE_TTL,
        container_ttl: float = CONTAINER_CACHE_TTL,
        max_size: int = PROBE_CACHE_SIZE,
        timeout: float = PROBE_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._runner = runner
        self._timeout = timeout
        cache_kwargs = {'clock': clock} if clock else {}
        self.cwd_cache = TTLCache(max_size, cwd_ttl, **cache_kwargs)
        self.container_cache = TTLCache(max_size, container_ttl, **cache_kwargs)

    async def _run(self, args: list[str]) -> str | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self._runner(args, self._timeout))

    async def batch_get_cwd(self, pids: Iterable[int]) -> dict[int, str]:
        """Working directory for each pid, with one lsof call for cache misses."""
        result: dict[int, str] = {}
        missing: list[int] = []

        for pid in dict.fromkeys(pids):
            cached = self.cwd_cache.get(pid, _UNSET)
            if cached is _UNSET:
                missing.append(pid)
            elif cached is not _NOT_FOUND:
                result[pid] = cached

        if not missing:
            return result

        pid_list = ','.join(str(pid) for pid in missing)
        stdout = await self._run(['lsof', '-a', '-d', 'cwd', '-F', 'pn', '-p', pid_list])
        if stdout is None:
            return result

        found = parse_lsof_cwd(stdout)
        for pid in missing:
            cwd = found.get(pid)
            if cwd:
                result[pid] = cwd
                self.cwd_cache.set(pid, cwd)
            else:
                self.cwd_cache.set(pid, _NOT_FOUND)

        logger.debug("Resolved %d/%d working directories", len(found), len(missing))
        return result

    async def batch_get_container_by_port(self, ports: Iterable[int]) -> dict[int, ContainerInfo]:
        """Container publishing each port, with one docker call for cache misses."""
        result: dict[int, ContainerInfo] = {}
        missing: list[int] = []

        for port in dict.fromkeys(ports):
            cached = self.container_cache.get(port, _UNSET)
            if cached is _UNSET:
                missing.append(port)
            elif cached is not _NOT_FOUND:
                result[port] = cached

        if not missing:
            return result

        stdout = await self._run(['docker', 'ps', '--format', '{{.Names}}|{{.Image}}|{{.Ports}}'])
        if stdout is None:
            return result

        published = parse_docker_ports(stdout)
        for port in missing:
            info = published.get(port)
            if info:
                result[port] = info
                self.container_cache.set(port, info)
            else:
                self.container_cache.set(port, _NOT_FOUND)

        return result

    async def get_process_cwd(self, pid: int) -> str | None:
        """Working directory of a single process."""
        return (await self.batch_get_cwd([pid])).get(pid)

    async def get_container_by_port(self, port: int) -> ContainerInfo | None:
        """Container publishing a single port."""
        return (await self.batch_get_container_by_port([port])).get(port)

    def clear_cache(self) -> None:
        self.cwd_cache.clear()
        self.container_cache.clear()

    def get_cache_stats(self) -> dict[str, int]:
        return {
            'cwdSize': self.cwd_cache.size(),
            'containerSize': self.container_cache.size(),
        }
