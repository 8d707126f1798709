"""Shared utilities for aimon.

Small, dependency-free helpers used by both the process identity and the
conversation activity pipelines.
"""

import json
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any


_WHITESPACE_RE = re.compile(r'\s+')


def parse_jsonl_line(line: str | bytes) -> dict[str, Any] | None:
    """Safely parse a single JSONL line.

    Args:
        line: A line from a JSONL file (string or bytes)

    Returns:
        Parsed JSON dictionary or None if parsing failed or the line
        does not hold a JSON object
    """
    try:
        if isinstance(line, bytes):
            line = line.decode('utf-8')
        line = line.strip()
        if not line:
            return None
        data = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (with optional trailing 'Z') to an aware datetime."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def path_basename(path: str) -> str:
    """Last component of a '/'-separated path, ignoring trailing slashes."""
    if not path:
        return ''
    return path.rstrip('/').split('/')[-1]


def truncate(text: str, limit: int, suffix: str = '...') -> str:
    """Cut text to limit characters, appending suffix when something was cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def sanitize_text(text: str, preserve_whitespace: bool = False, max_length: int | None = None) -> str:
    """Normalize text for terminal display.

    Strips emoji and other symbol/control characters, folds accented
    characters to ASCII where possible, and collapses whitespace unless
    preserve_whitespace is set.
    """
    if not text:
        return ''

    normalized = unicodedata.normalize('NFKD', text)
    kept = []
    for char in normalized:
        if char in '\n\t':
            kept.append(char)
            continue
        category = unicodedata.category(char)
        # Mn: combining marks left over from NFKD, So/Cs/Co/Cc: emoji and control
        if category in ('Mn', 'So', 'Cs', 'Co', 'Cc'):
            continue
        kept.append(char)
    cleaned = ''.join(kept)

    if preserve_whitespace:
        cleaned = cleaned.strip()
    else:
        cleaned = _WHITESPACE_RE.sub(' ', cleaned).strip()

    if max_length is not None:
        cleaned = truncate(cleaned, max_length)
    return cleaned
