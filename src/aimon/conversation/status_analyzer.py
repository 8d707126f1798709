"""Active / interrupted / idle classification of a conversation window.

Priority, highest first:

1. The latest real user turn is an interruption marker -> interrupted.
2. The latest message is from the user -> active, "processing <command>".
3. The latest message is a text-only assistant reply within the grace
   window after the user's command -> still active. The log can show the
   reply before the follow-up tool call is flushed.
4. A text-only assistant reply after the grace window -> idle.
5. An assistant turn with tool invocations -> active with its action.
"""

from dataclasses import dataclass
from datetime import datetime

from ..config import COMMAND_RESPONSE_GRACE_SECONDS
from ..types import SessionStatus
from .action_detector import detect_action
from .entry_parser import ParsedEntry
from .message_extractor import slash_command


@dataclass
class UserCommandInfo:
    time: datetime | None = None
    command: str | None = None
    is_interrupted: bool = False


@dataclass
class StatusResult:
    status: SessionStatus
    action: str


def _is_local_output(entry: ParsedEntry) -> bool:
    return entry.role == 'user' and '<local-command-stdout>' in (entry.text_content or '')


def find_last_user_command(entries: list[ParsedEntry]) -> UserCommandInfo:
    """Most recent user turn that is a prompt or an interruption."""
    for entry in reversed(entries):
        if entry.role != 'user':
            continue
        if entry.is_interrupt:
            return UserCommandInfo(time=entry.timestamp, is_interrupted=True)
        if entry.is_tool_result or _is_local_output(entry):
            continue
        return UserCommandInfo(time=entry.timestamp, command=slash_command(entry.text_content))
    return UserCommandInfo()


def find_last_message(entries: list[ParsedEntry]) -> ParsedEntry | None:
    """Most recent turn that is neither a tool result nor local command output."""
    for entry in reversed(entries):
        if entry.is_tool_result or _is_local_output(entry):
            continue
        return entry
    return None


def processing_label(command: str | None) -> str:
    return f"processing {command}" if command else 'processing'


def analyze_status(
    entries: list[ParsedEntry],
    action: str | None = None,
    grace: float = COMMAND_RESPONSE_GRACE_SECONDS,
) -> StatusResult:
    """Classify the window; action defaults to detect_action()'s label."""
    if action is None:
        action = detect_action(entries).current_action

    if not entries:
        return StatusResult('idle', '')

    user_command = find_last_user_command(entries)
    if user_command.is_interrupted:
        return StatusResult('interrupted', '')

    last = find_last_message(entries)
    if last is None:
        # Only tool traffic in the window
        return StatusResult('active', action) if action else StatusResult('idle', '')

    if last.role == 'user':
        return StatusResult('active', processing_label(user_command.command))

    if last.is_pure_text:
        if user_command.time is not None and last.timestamp is not None:
            elapsed = (last.timestamp - user_command.time).total_seconds()
            if elapsed <= grace:
                return StatusResult('active', processing_label(user_command.command))
        return StatusResult('idle', '')

    return StatusResult('active', action)
