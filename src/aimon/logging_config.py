"""Logging setup for aimon.

Loggers are grouped into namespaces (``aimon.probe``, ``aimon.identity``,
...) so the recent-records buffer behind ``/api/logs`` can be filtered by
pipeline stage. setup_logging() is safe to call more than once: it only
replaces the handlers it installed itself.
"""

import logging
import os
import sys
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


NAMESPACES = {
    'probe': 'System Probes',
    'identity': 'Process Identity',
    'session': 'Session Activity',
    'poll': 'Poll Loop',
    'api': 'API Routes',
}

LOGGER_PREFIX = 'aimon'
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Marks handlers owned by setup_logging()
_OWNED_ATTR = '_aimon_handler'


def namespace_of(logger_name: str) -> str:
    """'aimon.identity' -> 'identity'; anything else is 'general'."""
    prefix, _, rest = logger_name.partition('.')
    namespace = rest.split('.', 1)[0]
    if prefix == LOGGER_PREFIX and namespace in NAMESPACES:
        return namespace
    return 'general'


def resolve_level(level: str | int | None, default: int = logging.INFO) -> int:
    if level is None:
        return default
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else default


@dataclass
class LogEntry:
    timestamp: str
    level: str
    levelno: int
    namespace: str
    logger: str
    message: str

    def to_dict(self) -> dict:
        return {
            'timestamp': self.timestamp,
            'level': self.level,
            'namespace': self.namespace,
            'logger': self.logger,
            'message': self.message,
        }


class BufferedLogHandler(logging.Handler):
    """Keeps the newest records in memory for the logs endpoint."""

    def __init__(self, buffer_size: int = 500):
        super().__init__()
        self.buffer: deque[LogEntry] = deque(maxlen=buffer_size)
        self.enabled = True

    def emit(self, record: logging.LogRecord):
        if not self.enabled:
            return
        try:
            self.buffer.append(LogEntry(
                timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                level=record.levelname,
                levelno=record.levelno,
                namespace=namespace_of(record.name),
                logger=record.name,
                message=self.format(record),
            ))
        except Exception:
            self.handleError(record)

    def get_history(
        self,
        count: int = 100,
        namespace: Optional[str] = None,
        min_level: Optional[int] = None,
    ) -> list[dict]:
        """Newest `count` entries, oldest first, optionally filtered."""
        entries = [
            e for e in self.buffer
            if (namespace is None or e.namespace == namespace)
            and (min_level is None or e.levelno >= min_level)
        ]
        return [e.to_dict() for e in entries[-count:]]

    def clear_buffer(self):
        self.buffer.clear()


_buffer_handler: Optional[BufferedLogHandler] = None


def get_buffer_handler() -> BufferedLogHandler:
    """The process-wide buffer, sized by AIMON_LOG_BUFFER_SIZE."""
    global _buffer_handler
    if _buffer_handler is None:
        try:
            size = int(os.environ.get('AIMON_LOG_BUFFER_SIZE', '500'))
        except ValueError:
            size = 500
        _buffer_handler = BufferedLogHandler(buffer_size=size)
        _buffer_handler.setFormatter(logging.Formatter('%(message)s'))
    return _buffer_handler


def _own(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _OWNED_ATTR, True)
    return handler


def setup_logging(
    level: Optional[int] = None,
    log_format: Optional[str] = None,
) -> None:
    """
    Install the console and buffer handlers on the root logger.

    Args:
        level: Logging level (default: AIMON_LOG_LEVEL, else INFO)
        log_format: Console format string (default: DEFAULT_FORMAT)
    """
    log_level = level if level is not None else resolve_level(os.environ.get('AIMON_LOG_LEVEL'))

    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, _OWNED_ATTR, False)]:
        root.removeHandler(handler)
    root.setLevel(log_level)

    console = _own(logging.StreamHandler(sys.stdout))
    console.setFormatter(logging.Formatter(log_format or DEFAULT_FORMAT))
    root.addHandler(console)

    if os.environ.get('AIMON_LOG_BUFFER', 'true').lower() == 'true':
        root.addHandler(_own(get_buffer_handler()))

    for handler in root.handlers:
        if getattr(handler, _OWNED_ATTR, False):
            handler.setLevel(log_level)

    # uvicorn logs every request at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    for namespace in NAMESPACES:
        logging.getLogger(f'{LOGGER_PREFIX}.{namespace}').setLevel(log_level)


def set_log_level(level: str | int):
    """Change the level of the root logger, every namespace and our handlers."""
    level = resolve_level(level)
    root = logging.getLogger()
    root.setLevel(level)
    for namespace in NAMESPACES:
        logging.getLogger(f'{LOGGER_PREFIX}.{namespace}').setLevel(level)
    for handler in root.handlers:
        if getattr(handler, _OWNED_ATTR, False):
            handler.setLevel(level)


def get_logger(name: str, namespace: Optional[str] = None) -> logging.Logger:
    """
    Logger for a module, or for a namespace when one is given.

    Args:
        name: Module name (typically __name__)
        namespace: One of NAMESPACES; unknown values fall back to name
    """
    if namespace in NAMESPACES:
        return logging.getLogger(f'{LOGGER_PREFIX}.{namespace}')
    return logging.getLogger(name)
