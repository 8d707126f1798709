"""Recent user and assistant messages for display.

Tool results, local command output and the caveat preamble the assistant
CLI writes around slash commands are bookkeeping, not messages, and are
skipped. Slash-command markup is reduced to ``/name``.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..utils import sanitize_text
from .entry_parser import ParsedEntry

COMMAND_NAME_RE = re.compile(r'<command-name>([^<]+)</command-name>')

_META_MARKERS = ('DO NOT respond to these messages', 'Caveat:')


@dataclass
class RecentMessage:
    timestamp: datetime | None
    role: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'role': self.role,
            'content': self.content,
        }


def slash_command(text: str | None) -> str | None:
    """'/name' for command markup or a prompt starting with '/', else None."""
    if not text:
        return None
    match = COMMAND_NAME_RE.search(text)
    if match:
        name = match.group(1).strip().lstrip('/')
        return f"/{name}" if name else None
    stripped = text.strip()
    if stripped.startswith('/') and len(stripped) > 1:
        return stripped.split()[0]
    return None


def extract_user_content(entry: ParsedEntry) -> str | None:
    """Display text of a real user prompt, or None for bookkeeping turns."""
    if entry.role != 'user' or entry.is_tool_result:
        return None

    content = sanitize_text(entry.text_content or '')
    if not content:
        return None

    if '<command-name>' in content:
        return slash_command(content)
    if '<command-message>' in content or '<local-command-stdout>' in content:
        return None
    if not content.startswith('/') and any(marker in content for marker in _META_MARKERS):
        return None
    return content


def extract_assistant_content(entry: ParsedEntry) -> str | None:
    """First text block of an assistant turn."""
    if entry.role != 'assistant':
        return None
    if isinstance(entry.content, str):
        return entry.content or None
    for item in entry.content:
        if isinstance(item, dict) and item.get('type') == 'text' and item.get('text'):
            return item['text']
    return None


def extract_messages(entries: list[ParsedEntry]) -> list[RecentMessage]:
    """Messages in chronological order, bookkeeping turns removed."""
    messages = []
    for entry in entries:
        if entry.role == 'user':
            text = extract_user_content(entry)
        else:
            text = extract_assistant_content(entry)
            if text:
                text = sanitize_text(text, preserve_whitespace=True)
        if text:
            messages.append(RecentMessage(timestamp=entry.timestamp, role=entry.role, content=text))
    return messages
