"""Tests for the process identifier: caching, de-duplication and batch ordering."""

import asyncio
from unittest.mock import patch

import pytest

from aimon.identity import patterns
from aimon.identity.identifier import ProcessIdentifier, cache_key
from aimon.identity.system_info import SystemProbe


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingRunner:
    """Stands in for run_command and records every invocation."""

    def __init__(self, outputs: dict[str, str | None] | None = None):
        self.outputs = outputs or {}
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str], timeout: float) -> str | None:
        self.calls.append(args)
        return self.outputs.get(args[0])


CHAIN_LSOF = "p200\nn/Users/dev/shop\np300\nn/Users/dev/shop\n"
DOCKER_OUTPUT = "pg|postgres:16|0.0.0.0:5432->5432/tcp\n"

PROC_A = {'pid': 100, 'ppid': 1, 'command': 'npm run dev', 'cwd': '/Users/dev/shop'}
PROC_B = {'pid': 200, 'ppid': 100, 'command': 'next-server (v14.2.0)'}
PROC_C = {'pid': 300, 'ppid': 200, 'command': 'node /Users/dev/shop/node_modules/next/dist/server/lib/start-server.js'}


def make_identifier(outputs=None, **kwargs):
    runner = RecordingRunner(outputs)
    identifier = ProcessIdentifier(probe=SystemProbe(runner=runner), **kwargs)
    return identifier, runner


class TestCacheKey:
    """Tests for cache_key."""

    def test_includes_pid_port_and_prefix(self):
        """Test the key is pid, port and the first 50 command characters."""
        info = {'pid': 7, 'port': 3000, 'command': 'x' * 80}
        assert cache_key(info) == '7:3000:' + 'x' * 50

    def test_missing_port(self):
        """Test a process without a port has an empty port segment."""
        assert cache_key({'pid': 7, 'command': 'ls'}) == '7::ls'


class TestIdentify:
    """Tests for single-process identify()."""

    async def test_classifies_with_probed_cwd(self):
        """Test the working directory is probed when the record lacks it."""
        identifier, runner = make_identifier({'lsof': "p10\nn/Users/dev/shop\n"})

        result = await identifier.identify({'pid': 10, 'command': 'npm run dev'})

        assert result['displayName'] == 'npm:dev [shop]'
        assert len(runner.calls) == 1

    async def test_idempotent_within_ttl(self):
        """Test a repeated call returns the same result with no probe calls."""
        identifier, runner = make_identifier({'lsof': "p10\nn/Users/dev/shop\n"})
        info = {'pid': 10, 'command': 'npm run dev'}

        first = await identifier.identify(info)
        calls = len(runner.calls)
        second = await identifier.identify(info)

        assert second == first
        assert len(runner.calls) == calls

    async def test_recomputed_after_ttl(self):
        """Test an expired identity is classified again."""
        clock = FakeClock()
        identifier, _ = make_identifier(cache_ttl=10.0, clock=clock)
        info = {'pid': 10, 'command': 'npm run dev', 'cwd': '/Users/dev/shop'}

        with patch('aimon.identity.identifier.classify', wraps=patterns.classify) as spy:
            await identifier.identify(info)
            clock.now += 5
            await identifier.identify(info)
            assert spy.call_count == 1
            clock.now += 6
            await identifier.identify(info)
            assert spy.call_count == 2

    async def test_concurrent_calls_share_one_computation(self):
        """Test N concurrent identify calls for one key classify once."""
        identifier, runner = make_identifier({'lsof': "p10\nn/Users/dev/shop\n"})
        info = {'pid': 10, 'command': 'npm run dev'}

        with patch('aimon.identity.identifier.classify', wraps=patterns.classify) as spy:
            results = await asyncio.gather(*(identifier.identify(info) for _ in range(8)))

        assert spy.call_count == 1
        assert len(runner.calls) == 1
        assert all(r == results[0] for r in results)
        assert identifier.get_cache_stats()['inflightSize'] == 0

    async def test_failure_does_not_poison_key(self):
        """Test a failed computation is retried by the next caller."""
        identifier, _ = make_identifier()
        info = {'pid': 10, 'command': 'npm run dev'}

        with patch.object(
            identifier.probe, 'get_process_cwd',
            side_effect=[RuntimeError('boom'), '/Users/dev/shop'],
        ):
            with pytest.raises(RuntimeError):
                await identifier.identify(info)
            assert identifier.get_cache_stats()['inflightSize'] == 0

            result = await identifier.identify(info)

        assert result['displayName'] == 'npm:dev [shop]'

    async def test_cancelled_caller_leaves_shared_lookup_running(self):
        """Test cancelling one waiter does not cancel the lookup others await."""
        identifier, _ = make_identifier()
        info = {'pid': 10, 'command': 'npm run dev'}
        release = asyncio.Event()

        async def slow_cwd(pid):
            await release.wait()
            return '/Users/dev/shop'

        with patch.object(identifier.probe, 'get_process_cwd', side_effect=slow_cwd):
            first = asyncio.create_task(identifier.identify(info))
            second = asyncio.create_task(identifier.identify(info))
            await asyncio.sleep(0)

            first.cancel()
            release.set()
            result = await second

            with pytest.raises(asyncio.CancelledError):
                await first

        assert result['displayName'] == 'npm:dev [shop]'
        assert identifier.get_cache_stats()['inflightSize'] == 0

    async def test_container_port(self):
        """Test a port published by a container yields a container identity."""
        identifier, _ = make_identifier({'docker': DOCKER_OUTPUT})
        info = {'pid': 10, 'command': 'npm run dev', 'port': 5432, 'cwd': '/Users/dev/shop'}

        result = await identifier.identify(info)

        assert result['category'] == 'container'
        assert result['displayName'] == 'docker:pg'


class TestIdentifyBatch:
    """Tests for identify_batch()."""

    async def test_ancestors_resolved_first(self):
        """Test reversed input is still resolved parent before child."""
        identifier, _ = make_identifier({'lsof': CHAIN_LSOF}, max_inherit_depth=2)

        result = await identifier.identify_batch([PROC_C, PROC_B, PROC_A])

        assert list(result) == [100, 200, 300]

    async def test_multi_level_inheritance(self):
        """Test with depth 2 the grandchild reflects the root's identity."""
        identifier, _ = make_identifier({'lsof': CHAIN_LSOF}, max_inherit_depth=2)

        result = await identifier.identify_batch([PROC_C, PROC_B, PROC_A])

        assert result[100]['displayName'] == 'npm:dev [shop]'
        assert result[200]['displayName'] == 'npm:dev [shop]'
        assert result[300]['displayName'].startswith('npm:dev [shop]')
        assert result[300]['project'] == 'shop'

    async def test_single_level_inheritance(self):
        """Test with depth 1 the grandchild is classified on its own."""
        identifier, _ = make_identifier({'lsof': CHAIN_LSOF}, max_inherit_depth=1)

        result = await identifier.identify_batch([PROC_C, PROC_B, PROC_A])

        assert result[200]['displayName'] == 'npm:dev [shop]'
        assert not result[300]['displayName'].startswith('npm:dev')

    async def test_inheritance_depth_survives_cached_parent(self):
        """Test a cached inherited parent still counts toward the depth bound."""
        identifier, _ = make_identifier({'lsof': CHAIN_LSOF}, max_inherit_depth=1)

        await identifier.identify_batch([PROC_A, PROC_B])
        result = await identifier.identify_batch([PROC_A, PROC_B, PROC_C])

        assert result[200]['displayName'] == 'npm:dev [shop]'
        assert not result[300]['displayName'].startswith('npm:dev')

    async def test_one_probe_call_per_lookup_class(self):
        """Test the whole batch costs one lsof and one docker call."""
        processes = [
            PROC_A,
            PROC_B,
            {'pid': 400, 'command': 'postgres', 'port': 5432},
            {'pid': 500, 'command': 'node server.js', 'port': 3000},
        ]
        identifier, runner = make_identifier({'lsof': CHAIN_LSOF, 'docker': DOCKER_OUTPUT})

        await identifier.identify_batch(processes)

        assert [c[0] for c in runner.calls] == ['lsof', 'docker']

    async def test_second_batch_hits_cache(self):
        """Test an unchanged snapshot is served without probe calls."""
        identifier, runner = make_identifier({'lsof': CHAIN_LSOF}, max_inherit_depth=2)
        snapshot = [PROC_A, PROC_B, PROC_C]

        first = await identifier.identify_batch(snapshot)
        calls = len(runner.calls)
        second = await identifier.identify_batch(snapshot)

        assert second == first
        assert len(runner.calls) == calls

    async def test_container_precedence(self):
        """Test a container port wins over a matching rule and over inheritance."""
        identifier, _ = make_identifier({'docker': DOCKER_OUTPUT})
        child = {'pid': 200, 'ppid': 100, 'command': 'next-server', 'port': 5432}

        result = await identifier.identify_batch([PROC_A, child])

        assert result[200]['category'] == 'container'
        assert result[200]['containerInfo'] == {'name': 'pg', 'image': 'postgres:16'}

    async def test_malformed_records_dropped(self):
        """Test records missing pid or command are skipped."""
        identifier, _ = make_identifier()

        result = await identifier.identify_batch([
            {'pid': 'abc', 'command': 'ls'},
            {'command': 'ls'},
            {'pid': 9},
            {'pid': 10, 'command': 'npm run dev', 'cwd': '/Users/dev/shop'},
        ])

        assert list(result) == [10]

    async def test_failed_probes_degrade(self):
        """Test missing lsof and docker still yield identities."""
        identifier, _ = make_identifier({'lsof': None, 'docker': None})

        result = await identifier.identify_batch([{'pid': 10, 'command': 'node app.js', 'port': 3000}])

        assert result[10]['displayName'] == 'node:app'
        assert result[10]['port'] == 3000


class TestCacheManagement:
    """Tests for invalidate, clear_cache and stats."""

    async def test_invalidate_pid(self):
        """Test invalidate drops only the given pid's identities."""
        identifier, _ = make_identifier()
        await identifier.identify_batch([
            {'pid': 10, 'command': 'npm run dev', 'cwd': '/a/shop'},
            {'pid': 11, 'command': 'npm run test', 'cwd': '/a/shop'},
        ])

        identifier.invalidate(10)

        keys = list(identifier.cache.keys())
        assert all(not k.startswith('10:') for k in keys)
        assert any(k.startswith('11:') for k in keys)

    async def test_clear_cache(self):
        """Test clear_cache empties every layer."""
        identifier, _ = make_identifier({'lsof': CHAIN_LSOF})
        await identifier.identify_batch([PROC_A, PROC_B])
        assert identifier.get_cache_stats()['identitySize'] == 2

        identifier.clear_cache()

        assert identifier.get_cache_stats() == {
            'identitySize': 0,
            'inflightSize': 0,
            'cwdSize': 0,
            'containerSize': 0,
        }

    async def test_clear_during_lookup_discards_result(self):
        """Test a lookup that settles after clear_cache does not repopulate it."""
        identifier, _ = make_identifier()
        info = {'pid': 10, 'command': 'npm run dev'}
        release = asyncio.Event()

        async def slow_cwd(pid):
            await release.wait()
            return '/Users/dev/shop'

        with patch.object(identifier.probe, 'get_process_cwd', side_effect=slow_cwd):
            lookup = asyncio.create_task(identifier.identify(info))
            await asyncio.sleep(0)

            identifier.clear_cache()
            release.set()
            result = await lookup

        assert result['displayName'] == 'npm:dev [shop]'
        assert identifier.get_cache_stats()['identitySize'] == 0

    async def test_invalidate_during_lookup_discards_result(self):
        """Test invalidating a pid mid-lookup keeps its stale identity out."""
        identifier, _ = make_identifier()
        info = {'pid': 10, 'command': 'npm run dev'}
        release = asyncio.Event()

        async def slow_cwd(pid):
            await release.wait()
            return '/Users/dev/shop'

        with patch.object(identifier.probe, 'get_process_cwd', side_effect=slow_cwd):
            lookup = asyncio.create_task(identifier.identify(info))
            await asyncio.sleep(0)

            identifier.invalidate(10)
            release.set()
            await lookup

        assert identifier.cache.get(cache_key(info)) is None
