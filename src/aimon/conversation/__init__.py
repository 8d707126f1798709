"""Conversation activity tracking.

This package contains modules for:
- Log discovery and incremental tailing (log_reader.py)
- Log entry parsing (entry_parser.py)
- Recent message extraction (message_extractor.py)
- Current-action detection (action_detector.py)
- Active/interrupted/idle classification (status_analyzer.py)
- Per-session records (tracker.py)

Import from here for a clean API:
    from aimon.conversation import SessionActivityTracker, parse_entries
"""

# Log reading
from .log_reader import (
    LogHistory,
    LogTailer,
    cwd_to_project_slug,
    find_active_logs,
    generate_session_id,
    get_latest_log_file,
    scan_log_history,
    session_id_from_log,
)

# Entry parsing
from .entry_parser import (
    ParsedEntry,
    ToolInvocation,
    extract_model_name,
    parse_entries,
    parse_entry,
)

# Messages
from .message_extractor import (
    RecentMessage,
    extract_messages,
    slash_command,
)

# Action and status
from .action_detector import (
    ActionInfo,
    describe_tool,
    detect_action,
)
from .status_analyzer import (
    StatusResult,
    analyze_status,
    find_last_message,
    find_last_user_command,
)

# Session records
from .tracker import (
    SessionActivityTracker,
    SessionRecord,
)

__all__ = [
    # Log reading
    'LogHistory',
    'LogTailer',
    'cwd_to_project_slug',
    'find_active_logs',
    'generate_session_id',
    'get_latest_log_file',
    'scan_log_history',
    'session_id_from_log',
    # Entry parsing
    'ParsedEntry',
    'ToolInvocation',
    'extract_model_name',
    'parse_entries',
    'parse_entry',
    # Messages
    'RecentMessage',
    'extract_messages',
    'slash_command',
    # Action and status
    'ActionInfo',
    'describe_tool',
    'detect_action',
    'StatusResult',
    'analyze_status',
    'find_last_message',
    'find_last_user_command',
    # Session records
    'SessionActivityTracker',
    'SessionRecord',
]
