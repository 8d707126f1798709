"""Tests for log discovery and incremental tailing."""

import os
from datetime import datetime, timezone
from pathlib import Path

from aimon.conversation.log_reader import (
    LogTailer,
    cwd_to_project_slug,
    find_active_logs,
    generate_session_id,
    get_latest_log_file,
    scan_log_history,
    session_id_from_log,
)


def write_log(path: Path, text: str, mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


class TestSessionIds:
    """Tests for project slugs and session ids."""

    def test_project_slug(self):
        assert cwd_to_project_slug('/Users/me/my_app.v2') == '-Users-me-my-app-v2'

    def test_generate_session_id(self):
        assert generate_session_id('/Users/dev/shop') == 'claude-Users-dev-shop'

    def test_session_id_from_log(self):
        """Test the project directory name is used when no cwd is known."""
        log = Path('/home/x/.claude/projects/-Users-dev-shop/abc.jsonl')
        assert session_id_from_log(log) == 'claude-Users-dev-shop'


class TestLogDiscovery:
    """Tests for get_latest_log_file and find_active_logs."""

    def test_latest_log_file(self, tmp_path):
        """Test the most recently modified log is chosen."""
        write_log(tmp_path / 'old.jsonl', '{}\n', mtime=1000)
        newest = write_log(tmp_path / 'new.jsonl', '{}\n', mtime=2000)
        write_log(tmp_path / 'notes.txt', 'x', mtime=3000)

        assert get_latest_log_file(tmp_path) == newest

    def test_no_logs(self, tmp_path):
        assert get_latest_log_file(tmp_path) is None

    def test_active_logs_by_age(self, tmp_path):
        """Test only recently written logs are returned, one per project."""
        fresh = write_log(tmp_path / '-a' / 's1.jsonl', '{}\n', mtime=9950)
        write_log(tmp_path / '-a' / 's0.jsonl', '{}\n', mtime=9000)
        write_log(tmp_path / '-b' / 's2.jsonl', '{}\n', mtime=5000)

        assert find_active_logs(tmp_path, max_age=600, now=10000) == [fresh]

    def test_missing_projects_dir(self, tmp_path):
        assert find_active_logs(tmp_path / 'nope') == []


class TestLogTailer:
    """Tests for LogTailer.read_new_lines."""

    def test_reads_only_new_lines(self, tmp_path):
        """Test each read returns lines appended since the previous one."""
        log = write_log(tmp_path / 'a.jsonl', '{"n": 1}\n{"n": 2}\n')
        tailer = LogTailer()

        assert tailer.read_new_lines(log) == ['{"n": 1}', '{"n": 2}']
        assert tailer.read_new_lines(log) == []

        with open(log, 'a') as f:
            f.write('{"n": 3}\n')
        assert tailer.read_new_lines(log) == ['{"n": 3}']

    def test_partial_line_waits(self, tmp_path):
        """Test a line without its newline is returned once completed."""
        log = write_log(tmp_path / 'a.jsonl', '{"n": 1}\n{"n": ')
        tailer = LogTailer()

        assert tailer.read_new_lines(log) == ['{"n": 1}']

        with open(log, 'a') as f:
            f.write('2}\n')
        assert tailer.read_new_lines(log) == ['{"n": 2}']

    def test_first_read_starts_at_tail(self, tmp_path):
        """Test a large log is read from its tail, dropping the cut line."""
        lines = [f'{{"n": {i}}}' for i in range(100)]
        log = write_log(tmp_path / 'a.jsonl', '\n'.join(lines) + '\n')
        tailer = LogTailer(tail_bytes=30)

        result = tailer.read_new_lines(log)

        assert result
        assert result[-1] == '{"n": 99}'
        assert all(line in lines for line in result)
        assert len(result) < 5

    def test_truncated_file_reread(self, tmp_path):
        """Test a file that shrank is read again from the start of its tail."""
        log = write_log(tmp_path / 'a.jsonl', '{"n": 1}\n{"n": 2}\n{"n": 3}\n')
        tailer = LogTailer()
        tailer.read_new_lines(log)

        log.write_text('{"x": 1}\n')

        assert tailer.read_new_lines(log) == ['{"x": 1}']

    def test_missing_file(self, tmp_path):
        tailer = LogTailer()
        assert tailer.read_new_lines(tmp_path / 'gone.jsonl') == []
        assert len(tailer) == 0

    def test_forget_and_reset(self, tmp_path):
        """Test forgetting a file makes the next read start over."""
        log = write_log(tmp_path / 'a.jsonl', '{"n": 1}\n')
        tailer = LogTailer()
        tailer.read_new_lines(log)

        tailer.forget(log)
        assert tailer.read_new_lines(log) == ['{"n": 1}']

        tailer.reset()
        assert len(tailer) == 0

    def test_origin_kept_once_for_skipped_history(self, tmp_path):
        """Test the first tail read reports where it started, once."""
        lines = [f'{{"n": {i}}}' for i in range(100)]
        log = write_log(tmp_path / 'a.jsonl', '\n'.join(lines) + '\n')
        tailer = LogTailer(tail_bytes=30)

        result = tailer.read_new_lines(log)
        origin = tailer.pop_origin(log)

        assert log.read_bytes()[origin:].decode().splitlines() == result
        assert tailer.pop_origin(log) is None

    def test_no_origin_for_small_log(self, tmp_path):
        log = write_log(tmp_path / 'a.jsonl', '{"n": 1}\n')
        tailer = LogTailer()
        tailer.read_new_lines(log)
        assert tailer.pop_origin(log) is None


class TestScanLogHistory:
    """Tests for scan_log_history."""

    def test_counts_prompts_before_end(self, tmp_path):
        """Test only real user prompts up to the end offset are counted."""
        head = (
            '{"type": "user", "timestamp": "2026-01-15T10:00:05Z", "cwd": "/a/shop", "message": {"content": "first"}}\n'
            '{"type": "assistant", "timestamp": "2026-01-15T10:00:06Z", "message": {"content": "ok"}}\n'
            'not json\n'
            '{"type": "user", "timestamp": "2026-01-15T10:00:01Z", "message": {"content": "second"}}\n'
        )
        tail = '{"type": "user", "timestamp": "2026-01-15T10:00:09Z", "message": {"content": "third"}}\n'
        log = write_log(tmp_path / 'a.jsonl', head + tail)

        history = scan_log_history(log, len(head.encode()))

        assert history.message_count == 2
        assert history.started_at == datetime(2026, 1, 15, 10, 0, 1, tzinfo=timezone.utc)
        assert history.cwd == '/a/shop'

    def test_missing_file(self, tmp_path):
        history = scan_log_history(tmp_path / 'gone.jsonl', 100)
        assert history.message_count == 0
        assert history.started_at is None
