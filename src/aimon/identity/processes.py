"""Process snapshot and termination.

This module provides functions for:
- Listing every running process with its parent pid and command line
- Attaching the TCP port each process listens on
- Terminating a process on explicit user request
"""

import asyncio
import os
import signal

from ..config import PROBE_TIMEOUT_SECONDS, TERMINATE_GRACE_SECONDS
from ..logging_config import get_logger
from ..types import RawProcess
from .system_info import Runner, run_command

logger = get_logger(__name__, namespace='probe')


def parse_ps_output(output: str) -> list[RawProcess]:
    """Parse `ps -Ao pid=,ppid=,command=` output into raw process records."""
    processes: list[RawProcess] = []
    for line in output.splitlines():
        parts = line.split(None, 2)
        if len(parts) < 2:
            continue
        try:
            pid = int(parts[0])
            ppid = int(parts[1])
        except ValueError:
            continue
        processes.append({
            'pid': pid,
            'ppid': ppid or None,
            'command': parts[2].strip() if len(parts) > 2 else '',
        })
    return processes


def parse_lsof_listen(output: str) -> dict[int, int]:
    """Parse `lsof -F pn` listening sockets into pid -> lowest port."""
    ports: dict[int, int] = {}
    current_pid: int | None = None
    for line in output.splitlines():
        if line.startswith('p'):
            try:
                current_pid = int(line[1:])
            except ValueError:
                current_pid = None
        elif line.startswith('n') and current_pid is not None:
            # n*:8080, n127.0.0.1:3000, n[::1]:5432
            _, _, port_str = line[1:].rpartition(':')
            if not port_str.isdigit():
                continue
            port = int(port_str)
            if current_pid not in ports or port < ports[current_pid]:
                ports[current_pid] = port
    return ports


async def _run(runner: Runner, args: list[str]) -> str | None:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: runner(args, PROBE_TIMEOUT_SECONDS))


async def get_listening_ports(runner: Runner = run_command) -> dict[int, int]:
    """Map of pid -> lowest TCP port it listens on."""
    stdout = await _run(runner, ['lsof', '-nP', '-iTCP', '-sTCP:LISTEN', '-F', 'pn'])
    if not stdout:
        return {}
    return parse_lsof_listen(stdout)


async def get_process_snapshot(runner: Runner = run_command) -> list[RawProcess]:
    """Get all running processes, each annotated with its listening port if any."""
    stdout = await _run(runner, ['ps', '-Ao', 'pid=,ppid=,command='])
    if not stdout:
        logger.warning("Process listing returned no output")
        return []

    processes = parse_ps_output(stdout)
    ports = await get_listening_ports(runner)
    for process in processes:
        port = ports.get(process['pid'])
        if port is not None:
            process['port'] = port
    return processes


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


async def terminate(pid: int, grace: float = TERMINATE_GRACE_SECONDS) -> bool:
    """Send SIGTERM, then SIGKILL if the process outlives the grace period.

    Returns False when the process does not exist, or when pid is not a single
    foreign process (0, negative, or our own). PermissionError is left
    to the caller, which decides how to report it.
    """
    if pid <= 0 or pid == os.getpid():
        # 0 and negative pids address process groups; never signal ourselves
        logger.warning("Refusing to terminate pid %s", pid)
        return False
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        return False
    logger.info("Sent SIGTERM to %s", pid)

    await asyncio.sleep(grace)

    if _is_alive(pid):
        try:
            os.kill(pid, signal.SIGKILL)
            logger.info("Sent SIGKILL to %s", pid)
        except ProcessLookupError:
            pass
    return True
