"""Conversation log entry parsing.

Each JSONL line is decoded independently. Lines that fail to decode, that
are not JSON objects, or that are not user/assistant turns are dropped; a
log being appended to may end in a half-written line.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Literal

from ..logging_config import get_logger
from ..utils import parse_jsonl_line, parse_timestamp

logger = get_logger(__name__, namespace='session')

INTERRUPT_MARKER = '[Request interrupted by user'

Role = Literal['user', 'assistant']


@dataclass
class ToolInvocation:
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedEntry:
    """One user or assistant turn from a conversation log."""
    role: Role
    timestamp: datetime | None = None
    content: str | list = ''
    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    model: str | None = None
    cwd: str | None = None

    @property
    def text_content(self) -> str | None:
        """Plain text of the turn, text blocks joined by newlines."""
        if isinstance(self.content, str):
            return self.content or None
        texts = [
            item['text'] for item in self.content
            if isinstance(item, dict) and item.get('type') == 'text' and item.get('text')
        ]
        return '\n'.join(texts) or None

    @property
    def tool_invocation(self) -> ToolInvocation | None:
        """The last tool invoked in this turn, if any."""
        return self.tool_invocations[-1] if self.tool_invocations else None

    @property
    def is_tool_result(self) -> bool:
        """A user turn that only carries tool output back to the assistant."""
        if self.role != 'user' or not isinstance(self.content, list):
            return False
        return any(isinstance(item, dict) and item.get('type') == 'tool_result' for item in self.content)

    @property
    def is_pure_text(self) -> bool:
        """An assistant reply with no tool invocations."""
        return self.role == 'assistant' and not self.tool_invocations

    @property
    def is_interrupt(self) -> bool:
        if self.role != 'user':
            return False
        if isinstance(self.content, str):
            return INTERRUPT_MARKER in self.content
        if not self.content:
            return False
        first = self.content[0]
        return (
            isinstance(first, dict)
            and first.get('type') == 'text'
            and INTERRUPT_MARKER in (first.get('text') or '')
        )


def parse_entry(data: dict[str, Any]) -> ParsedEntry | None:
    """Build a ParsedEntry from one decoded log object, or None to skip it."""
    role = data.get('type')
    message = data.get('message')
    if role not in ('user', 'assistant') or not isinstance(message, dict):
        return None

    content = message.get('content')
    if not isinstance(content, (str, list)):
        content = ''

    tools: list[ToolInvocation] = []
    if role == 'assistant' and isinstance(content, list):
        for item in content:
            if isinstance(item, dict) and item.get('type') == 'tool_use' and item.get('name'):
                tool_input = item.get('input')
                tools.append(ToolInvocation(
                    name=str(item['name']),
                    input=tool_input if isinstance(tool_input, dict) else {},
                ))

    model = message.get('model') if role == 'assistant' else None
    cwd = data.get('cwd')
    return ParsedEntry(
        role=role,
        timestamp=parse_timestamp(data.get('timestamp')),
        content=content,
        tool_invocations=tools,
        model=model if isinstance(model, str) and model else None,
        cwd=cwd if isinstance(cwd, str) and cwd else None,
    )


def parse_entries(lines: Iterable[str | bytes]) -> list[ParsedEntry]:
    """Parse raw log lines, oldest first, keeping input order."""
    entries: list[ParsedEntry] = []
    dropped = 0
    for line in lines:
        data = parse_jsonl_line(line)
        if data is None:
            if line and line.strip():
                dropped += 1
            continue
        entry = parse_entry(data)
        if entry is not None:
            entries.append(entry)

    if dropped:
        logger.debug("Dropped %d undecodable log lines", dropped)
    return entries


def extract_model_name(entries: list[ParsedEntry]) -> str | None:
    """Model of the most recent assistant turn that reports one."""
    for entry in reversed(entries):
        if entry.role == 'assistant' and entry.model:
            return entry.model
    return None
