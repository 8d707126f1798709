"""Tests for the HTTP routes."""

import logging
import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from aimon.conversation.entry_parser import ParsedEntry
from aimon.identity.identifier import ProcessIdentifier
from aimon.identity.system_info import SystemProbe
from aimon.logging_config import get_buffer_handler, get_logger, setup_logging
from aimon.monitor import Monitor
from aimon.server import create_app

T0 = datetime(2099, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def monitor(tmp_path):
    """Monitor holding a fixed process snapshot and two sessions."""
    identifier = ProcessIdentifier(probe=SystemProbe(runner=lambda args, timeout: None))
    monitor = Monitor(identifier=identifier, projects_dir=tmp_path)
    monitor.processes = [
        {'pid': 100, 'ppid': 1, 'command': 'npm run dev'},
        {'pid': 300, 'ppid': 1, 'command': 'postgres -D /data', 'port': 5432},
    ]
    monitor.identities = {
        100: {'displayName': 'npm:dev [shop]', 'category': 'tool', 'project': 'shop'},
        300: {
            'displayName': 'docker:pg',
            'category': 'container',
            'port': 5432,
            'containerInfo': {'name': 'pg', 'image': 'postgres:16'},
        },
    }
    monitor.tracker.update('claude-a', [ParsedEntry(role='user', timestamp=T0, content='/fix-bug')])
    monitor.tracker.update('claude-b', [
        ParsedEntry(role='user', timestamp=T0, content='[Request interrupted by user]'),
    ])
    return monitor


@pytest.fixture
def client(monitor):
    """Test client with every route reading the fixture monitor."""
    targets = [
        'aimon.routes.processes.get_monitor',
        'aimon.routes.sessions.get_monitor',
        'aimon.routes.cache.get_monitor',
        'aimon.server.get_monitor',
    ]
    patches = [patch(target, return_value=monitor) for target in targets]
    for p in patches:
        p.start()
    yield TestClient(create_app())
    for p in patches:
        p.stop()


class TestProcessRoutes:
    """Tests for /api/processes."""

    def test_list(self, client):
        """Test every identified process is listed with its display string."""
        response = client.get('/api/processes')

        assert response.status_code == 200
        data = response.json()
        assert [p['pid'] for p in data] == [100, 300]
        assert data[0]['display'] == 'npm:dev [shop]'
        assert data[1]['containerInfo'] == {'name': 'pg', 'image': 'postgres:16'}

    def test_filter_by_category(self, client):
        data = client.get('/api/processes?category=container').json()
        assert [p['pid'] for p in data] == [300]

    def test_kill(self, client, monitor):
        """Test a successful termination is reported."""
        with patch.object(monitor, 'terminate', new=AsyncMock(return_value=True)):
            response = client.post('/api/processes/100/kill')

        assert response.status_code == 200
        assert response.json() == {'success': True, 'pid': 100, 'error': None}

    def test_kill_missing_process(self, client, monitor):
        with patch.object(monitor, 'terminate', new=AsyncMock(return_value=False)):
            response = client.post('/api/processes/999/kill')

        assert response.json()['success'] is False
        assert response.json()['error'] == 'Process not running'

    def test_kill_permission_denied(self, client, monitor):
        """Test a process owned by another user yields 403."""
        with patch.object(monitor, 'terminate', new=AsyncMock(side_effect=PermissionError)):
            response = client.post('/api/processes/1/kill')

        assert response.status_code == 403

    @pytest.mark.parametrize('pid', [-1, 0, os.getpid()])
    def test_kill_refuses_group_and_own_pid(self, client, pid):
        """Test group pids and the server's own pid never reach os.kill."""
        with patch('aimon.identity.processes.os.kill') as kill:
            response = client.post(f'/api/processes/{pid}/kill')

        assert response.status_code == 200
        assert response.json()['success'] is False
        kill.assert_not_called()


class TestSessionRoutes:
    """Tests for /api/sessions."""

    def test_list_with_counts(self, client):
        data = client.get('/api/sessions').json()

        assert {s['sessionId'] for s in data['sessions']} == {'claude-a', 'claude-b'}
        assert data['counts'] == {'active': 1, 'interrupted': 1, 'idle': 0, 'total': 2}

    def test_filter_by_status(self, client):
        data = client.get('/api/sessions?status=interrupted').json()
        assert [s['sessionId'] for s in data['sessions']] == ['claude-b']

    def test_get_one(self, client):
        """Test a single session's record is returned."""
        response = client.get('/api/sessions/claude-a')

        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'active'
        assert data['currentAction'] == 'processing /fix-bug'
        assert data['displayLabel'] == '/fix-bug'

    def test_unknown_session(self, client):
        response = client.get('/api/sessions/nope')
        assert response.status_code == 404
        assert response.json()['detail'] == 'Session not found'


class TestCacheRoutes:
    """Tests for /api/cache."""

    def test_stats(self, client):
        data = client.get('/api/cache').json()
        assert data['sessionCount'] == 2
        assert data['identitySize'] == 0

    def test_clear(self, client, monitor):
        """Test clearing the caches returns the emptied stats."""
        with patch.object(monitor.identifier, 'clear_cache') as clear:
            response = client.delete('/api/cache')

        assert response.status_code == 200
        clear.assert_called_once()


class TestLogAndHealthRoutes:
    """Tests for /api/logs and /api/health."""

    def test_logs_by_namespace(self, client):
        """Test records are returned filtered by their namespace."""
        setup_logging(level=logging.INFO)
        handler = get_buffer_handler()
        handler.clear_buffer()
        get_logger(__name__, namespace='identity').warning("cwd probe failed")

        data = client.get('/api/logs?namespace=identity').json()

        assert any(e['message'] == 'cwd probe failed' for e in data['logs'])
        assert 'identity' in data['namespaces']

    def test_unknown_namespace(self, client):
        assert client.get('/api/logs?namespace=bogus').status_code == 400

    def test_count_bounds(self, client):
        assert client.get('/api/logs?count=0').status_code == 422

    def test_health(self, client):
        data = client.get('/api/health').json()
        assert data['status'] == 'ok'
        assert data['monitorRunning'] is False
        assert data['pollCount'] == 0

    def test_logs_min_level(self, client):
        """Test records below the requested level are left out."""
        setup_logging(level=logging.DEBUG)
        handler = get_buffer_handler()
        handler.clear_buffer()
        logger = get_logger(__name__, namespace='poll')
        logger.debug("tick")
        logger.error("tick failed")

        data = client.get('/api/logs?namespace=poll&level=warning').json()

        assert [e['message'] for e in data['logs']] == ['tick failed']
        setup_logging(level=logging.INFO)

    def test_unknown_level(self, client):
        assert client.get('/api/logs?level=loud').status_code == 400
