"""Current-action detection from the most recent tool invocation."""

from dataclasses import dataclass
from datetime import datetime

from ..config import BASH_COMMAND_PREVIEW
from ..utils import path_basename, sanitize_text, truncate
from .entry_parser import ParsedEntry, ToolInvocation

TOOL_ACTIONS: dict[str, str] = {
    'Read': 'Reading file',
    'Write': 'Writing file',
    'Edit': 'Editing file',
    'MultiEdit': 'Editing multiple files',
    'Bash': 'Running command',
    'Grep': 'Searching',
    'Glob': 'Finding files',
    'LS': 'Listing directory',
    'WebFetch': 'Fetching web content',
    'WebSearch': 'Searching web',
    'Task': 'Running agent',
    'TodoWrite': 'Updating todos',
    'ExitPlanMode': 'Planning',
    'NotebookEdit': 'Editing notebook',
    'BashOutput': 'Reading output',
    'KillBash': 'Terminating process',
    'mcp__Sequential_Thinking__sequentialthinking': 'Thinking',
    'mcp__Context_7__resolve-library-id': 'Resolving library',
    'mcp__Context_7__get-library-docs': 'Getting docs',
    'mcp__Browser_Tools__takeScreenshot': 'Taking screenshot',
    'mcp__Browser_Tools__getConsoleLogs': 'Reading console',
    'mcp__Browser_Tools__getConsoleErrors': 'Checking errors',
    'mcp__Browser_Tools__getNetworkLogs': 'Reading network logs',
    'mcp__File_System__read_file': 'Reading file',
    'mcp__File_System__write_file': 'Writing file',
    'mcp__File_System__edit_file': 'Editing file',
    'mcp__File_System__list_directory': 'Listing directory',
    'mcp__File_System__search_files': 'Searching files',
}

DEFAULT_ACTION = 'Puttering'

# Tool names that are themselves a working-state word are shown verbatim
DYNAMIC_STATES = (
    'Distilling',
    'Manifesting',
    'Spelunking',
    'Brewing',
    'Conjuring',
    'Contemplating',
    'Germinating',
    'Percolating',
    'Ruminating',
    'Synthesizing',
    'Transmuting',
)


@dataclass
class ActionInfo:
    current_action: str = ''
    last_tool_use_time: datetime | None = None
    last_text_response_time: datetime | None = None


def _in_progress_task(tool: ToolInvocation) -> str | None:
    todos = tool.input.get('todos')
    if not isinstance(todos, list):
        return None
    for todo in todos:
        if isinstance(todo, dict) and todo.get('status') == 'in_progress' and todo.get('activeForm'):
            return str(todo['activeForm'])
    return None


def enhance_action(tool: ToolInvocation, label: str) -> str:
    """Append the file or command a tool is working on to its label."""
    file_path = tool.input.get('file_path')
    if isinstance(file_path, str) and file_path:
        filename = path_basename(file_path) or 'file'
        if tool.name in ('Edit', 'MultiEdit'):
            return f"Editing {filename}"
        if tool.name == 'Write':
            return f"Writing {filename}"
        if tool.name == 'Read':
            return f"Reading {filename}"

    command = tool.input.get('command')
    if tool.name == 'Bash' and isinstance(command, str) and command:
        return f"Running: {truncate(command, BASH_COMMAND_PREVIEW)}"

    return label


def describe_tool(tool: ToolInvocation) -> str:
    """Human-readable action label for one tool invocation."""
    if tool.name == 'TodoWrite':
        return _in_progress_task(tool) or TOOL_ACTIONS['TodoWrite']

    if tool.name in TOOL_ACTIONS:
        label = TOOL_ACTIONS[tool.name]
    elif any(state in tool.name for state in DYNAMIC_STATES):
        return tool.name
    else:
        label = DEFAULT_ACTION

    # Detail is applied last so a generic label never replaces it
    return enhance_action(tool, label)


def detect_action(entries: list[ParsedEntry]) -> ActionInfo:
    """Scan newest-first and label the first tool invocation found."""
    info = ActionInfo()
    for entry in reversed(entries):
        if entry.role != 'assistant':
            continue

        if entry.text_content and info.last_text_response_time is None:
            info.last_text_response_time = entry.timestamp

        tool = entry.tool_invocation
        if tool is not None:
            info.current_action = sanitize_text(describe_tool(tool))
            info.last_tool_use_time = entry.timestamp
            break

    return info
