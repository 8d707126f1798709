"""Configuration module for aimon.

Centralizes all tuning constants so the debounce windows, cache sizes and
TTLs are not scattered as magic numbers. Every value can be overridden with
an ``AIMON_*`` environment variable; components take these as keyword
defaults so a single instance can be tuned without touching the environment.
"""

import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# ============================================================================
# Path Configuration
# ============================================================================

# Base directory for Claude projects containing JSONL conversation logs
CLAUDE_PROJECTS_DIR = Path(
    os.getenv("AIMON_PROJECTS_DIR", str(Path.home() / ".claude" / "projects"))
).expanduser()


# ============================================================================
# Polling
# ============================================================================

# Fixed interval between two poll cycles (seconds)
POLL_INTERVAL_SECONDS = _env_float("AIMON_POLL_INTERVAL", 3.0)

# Start the poll loop together with the API server
AUTOSTART_MONITOR = _env_bool("AIMON_AUTOSTART", True)


# ============================================================================
# Cache Settings
# ============================================================================

# Identity memo cache: max entries and TTL (seconds)
IDENTITY_CACHE_SIZE = _env_int("AIMON_IDENTITY_CACHE_SIZE", 1000)
IDENTITY_CACHE_TTL = _env_float("AIMON_IDENTITY_CACHE_TTL", 10.0)

# Probe caches (working directory and container-by-port lookups)
PROBE_CACHE_SIZE = _env_int("AIMON_PROBE_CACHE_SIZE", 2000)
CWD_CACHE_TTL = _env_float("AIMON_CWD_CACHE_TTL", 30.0)
CONTAINER_CACHE_TTL = _env_float("AIMON_CONTAINER_CACHE_TTL", 30.0)

# Timeout for a single external lookup (lsof, docker, ps)
PROBE_TIMEOUT_SECONDS = _env_float("AIMON_PROBE_TIMEOUT", 5.0)

# Number of command-line characters that take part in the identity cache key
CACHE_KEY_COMMAND_PREFIX = 50


# ============================================================================
# Identity Resolution
# ============================================================================

# How many parent->child levels an identity may be inherited through.
# 1 means a child only inherits from a parent that was classified itself.
MAX_INHERIT_DEPTH = _env_int("AIMON_MAX_INHERIT_DEPTH", 1)

# Wait between SIGTERM and SIGKILL when terminating a process (seconds)
TERMINATE_GRACE_SECONDS = _env_float("AIMON_TERMINATE_GRACE", 1.0)


# ============================================================================
# Conversation Activity
# ============================================================================

# A pure-text assistant reply arriving this soon after a user command
# keeps the session active (seconds)
COMMAND_RESPONSE_GRACE_SECONDS = _env_float("AIMON_COMMAND_GRACE", 0.5)

# Sessions with no activity for this long are evicted (seconds)
SESSION_INACTIVITY_SECONDS = _env_float("AIMON_SESSION_INACTIVITY", 30 * 60)

# Size of the recentMessages sliding window per session
RECENT_MESSAGES_LIMIT = _env_int("AIMON_RECENT_MESSAGES", 5)

# Trailing parsed entries kept per session for status re-evaluation
ENTRY_WINDOW_SIZE = _env_int("AIMON_ENTRY_WINDOW", 100)

# Bytes read from the end of a log file the first time it is seen
LOG_TAIL_BYTES = _env_int("AIMON_LOG_TAIL_BYTES", 100000)

# Only logs modified within this window are tailed (seconds)
ACTIVE_LOG_MAX_AGE_SECONDS = _env_float("AIMON_ACTIVE_LOG_MAX_AGE", 600.0)

# Truncation of shell commands shown in action labels
BASH_COMMAND_PREVIEW = 50


# ============================================================================
# Server Configuration
# ============================================================================

DEFAULT_HOST = os.getenv("AIMON_HOST", "127.0.0.1")
DEFAULT_PORT = _env_int("AIMON_PORT", 8765)
