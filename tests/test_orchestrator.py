"""Unit tests for ScraperOrchestrator."""
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests

from orchestration.orchestrator import AdapterNotFoundError, ScraperOrchestrator
from processor.event_synchronizer import EventSynchronizer
from processor.models import (
    ACTION_CREATED,
    ACTION_UNCHANGED,
    ACTION_UPDATED,
    STATUS_INACTIVE,
    STATUS_NEW,
    ProcessResult,
)
from storage.run_lock import DynamoDBRunLock

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _adapter(name, candidates=None, error=None, last_error=None):
    adapter = Mock()
    adapter.name = name
    adapter.last_error = last_error
    if error is not None:
        adapter.scrape.side_effect = error
    else:
        adapter.scrape.return_value = candidates or []
    return adapter


def _candidates(candidate_factory, source_name, count, day=1):
    # Three days apart so no two candidates fall in the same fuzzy window
    return [
        candidate_factory(
            title=f"{source_name} event {i}",
            source_name=source_name,
            external_id=f"{source_name}-{i}",
            url=f"https://{source_name}.example.com/e/{i}",
            start_date=datetime(2025, 3, day, 19, 0, tzinfo=timezone.utc) + timedelta(days=3 * i)
        )
        for i in range(count)
    ]


@pytest.fixture
def synchronizer():
    sync = Mock()
    sync.process.return_value = ProcessResult(action=ACTION_CREATED, event=Mock())
    sync.mark_inactive.return_value = 0
    return sync


class TestRunAll:
    """Test cases for ScraperOrchestrator.run_all."""

    def test_aggregates_stats_across_adapters(self, synchronizer, candidate_factory):
        synchronizer.process.side_effect = [
            ProcessResult(action=ACTION_CREATED, event=Mock()),
            ProcessResult(action=ACTION_UPDATED, event=Mock()),
            ProcessResult(action=ACTION_UNCHANGED, event=Mock()),
        ]
        synchronizer.mark_inactive.side_effect = [2, 0]
        adapters = [
            _adapter('a', _candidates(candidate_factory, 'a', 2)),
            _adapter('b', _candidates(candidate_factory, 'b', 1)),
        ]

        stats = ScraperOrchestrator(adapters, synchronizer).run_all()

        assert stats.to_dict() == {
            'total_scraped': 3,
            'created': 1,
            'updated': 1,
            'unchanged': 1,
            'inactive': 2,
            'errors': 0
        }
        synchronizer.mark_inactive.assert_any_call(
            'a', ['https://a.example.com/e/0', 'https://a.example.com/e/1']
        )
        synchronizer.mark_inactive.assert_any_call('b', ['https://b.example.com/e/0'])

    def test_adapters_run_in_order(self, synchronizer, candidate_factory):
        calls = []

        def recording_scrape(name):
            def scrape():
                calls.append(name)
                return _candidates(candidate_factory, name, 1)
            return scrape

        adapters = []
        for name in ('first', 'second', 'third'):
            adapter = _adapter(name)
            adapter.scrape.side_effect = recording_scrape(name)
            adapters.append(adapter)

        ScraperOrchestrator(adapters, synchronizer).run_all()

        assert calls == ['first', 'second', 'third']

    def test_per_candidate_failure_is_isolated(self, synchronizer, candidate_factory):
        synchronizer.process.side_effect = [
            ProcessResult(action=ACTION_CREATED, event=Mock()),
            RuntimeError('write failed'),
            ProcessResult(action=ACTION_CREATED, event=Mock()),
        ]
        adapter = _adapter('a', _candidates(candidate_factory, 'a', 3))

        stats = ScraperOrchestrator([adapter], synchronizer).run_all()

        assert stats.created == 2
        assert stats.errors == 1
        assert synchronizer.process.call_count == 3
        synchronizer.mark_inactive.assert_called_once()

    def test_scrape_exception_skips_sweep(self, synchronizer, candidate_factory):
        adapters = [
            _adapter('x', _candidates(candidate_factory, 'x', 1)),
            _adapter('y', error=RuntimeError('layout changed')),
            _adapter('z', _candidates(candidate_factory, 'z', 1)),
        ]

        stats = ScraperOrchestrator(adapters, synchronizer).run_all()

        assert stats.created == 2
        assert stats.errors == 1
        swept = [c.args[0] for c in synchronizer.mark_inactive.call_args_list]
        assert swept == ['x', 'z']

    def test_fetch_failure_skips_sweep(self, synchronizer):
        adapter = _adapter('y', [], last_error=requests.ConnectionError('unreachable'))

        stats = ScraperOrchestrator([adapter], synchronizer).run_all()

        assert stats.errors == 1
        synchronizer.mark_inactive.assert_not_called()

    def test_empty_batch_skips_sweep(self, synchronizer):
        stats = ScraperOrchestrator([_adapter('quiet', [])], synchronizer).run_all()

        assert stats.errors == 0
        assert stats.total_scraped == 0
        synchronizer.mark_inactive.assert_not_called()

    def test_sweep_failure_is_counted(self, synchronizer, candidate_factory):
        synchronizer.mark_inactive.side_effect = RuntimeError('throttled')
        adapter = _adapter('a', _candidates(candidate_factory, 'a', 1))

        stats = ScraperOrchestrator([adapter], synchronizer).run_all()

        assert stats.created == 1
        assert stats.errors == 1

    def test_overlapping_run_is_skipped(self, synchronizer, candidate_factory):
        started = threading.Event()
        release = threading.Event()
        adapter = _adapter('slow', _candidates(candidate_factory, 'slow', 1))

        def slow_scrape():
            started.set()
            release.wait(5)
            return _candidates(candidate_factory, 'slow', 1)

        adapter.scrape.side_effect = slow_scrape
        orchestrator = ScraperOrchestrator([adapter], synchronizer)
        results = []
        worker = threading.Thread(target=lambda: results.append(orchestrator.run_all()))
        worker.start()
        started.wait(5)

        assert orchestrator.is_running
        assert orchestrator.run_all() is None
        assert orchestrator.run_one('slow') is None

        release.set()
        worker.join(5)
        assert results[0].created == 1
        assert not orchestrator.is_running


class TestRunOne:
    """Test cases for ScraperOrchestrator.run_one."""

    def test_runs_only_the_named_adapter(self, synchronizer, candidate_factory):
        a = _adapter('a', _candidates(candidate_factory, 'a', 1))
        b = _adapter('b', _candidates(candidate_factory, 'b', 2))

        stats = ScraperOrchestrator([a, b], synchronizer).run_one('b')

        assert stats.total_scraped == 2
        a.scrape.assert_not_called()
        synchronizer.mark_inactive.assert_called_once_with(
            'b', ['https://b.example.com/e/0', 'https://b.example.com/e/1']
        )

    def test_unknown_adapter(self, synchronizer):
        orchestrator = ScraperOrchestrator([_adapter('a')], synchronizer)

        with pytest.raises(AdapterNotFoundError):
            orchestrator.run_one('nope')

        assert not orchestrator.is_running


def test_fetch_failure_isolation_end_to_end(store, candidate_factory):
    """A failing source keeps its records active while the others sync."""
    synchronizer = EventSynchronizer(store, clock=lambda: NOW)
    # Seed one record for the failing source
    synchronizer.process(_candidates(candidate_factory, 'y', 1, day=10)[0], 'y')

    adapters = [
        _adapter('x', _candidates(candidate_factory, 'x', 2, day=1)),
        _adapter('y', error=requests.Timeout('timed out')),
        _adapter('z', _candidates(candidate_factory, 'z', 1, day=20)),
    ]

    stats = ScraperOrchestrator(adapters, synchronizer).run_all()

    assert stats.created == 3
    assert stats.errors == 1
    assert stats.inactive == 0
    assert store.find_by_key('y', 'y-0').status == STATUS_NEW
    assert store.find_by_key('x', 'x-0').status != STATUS_INACTIVE


class TestSharedLease:
    """Runs in separate orchestrators exclude each other through the table lease."""

    def test_second_orchestrator_is_refused_while_lease_held(self, dynamodb_table, synchronizer, candidate_factory):
        started = threading.Event()
        release = threading.Event()
        slow = _adapter('slow')

        def slow_scrape():
            started.set()
            release.wait(5)
            return _candidates(candidate_factory, 'slow', 1)

        slow.scrape.side_effect = slow_scrape
        first = ScraperOrchestrator([slow], synchronizer, lease=DynamoDBRunLock(dynamodb_table))
        second_adapter = _adapter('slow', _candidates(candidate_factory, 'slow', 1))
        second = ScraperOrchestrator(
            [second_adapter], synchronizer, lease=DynamoDBRunLock(dynamodb_table)
        )
        results = []
        worker = threading.Thread(target=lambda: results.append(first.run_all()))
        worker.start()
        started.wait(5)

        assert second.run_all() is None
        assert second.run_one('slow') is None
        assert not second.is_running
        second_adapter.scrape.assert_not_called()

        release.set()
        worker.join(5)
        assert results[0].created == 1
        assert second.run_all().created == 1

    def test_lease_released_when_run_fails(self, dynamodb_table, candidate_factory):
        synchronizer = Mock()
        synchronizer.process.return_value = ProcessResult(action=ACTION_CREATED, event=Mock())
        synchronizer.mark_inactive.side_effect = KeyboardInterrupt
        lease = DynamoDBRunLock(dynamodb_table)
        orchestrator = ScraperOrchestrator(
            [_adapter('a', _candidates(candidate_factory, 'a', 1))], synchronizer, lease=lease
        )

        with pytest.raises(KeyboardInterrupt):
            orchestrator.run_all()

        assert not orchestrator.is_running
        assert DynamoDBRunLock(dynamodb_table).acquire() is True

    def test_lease_error_leaves_orchestrator_idle(self, synchronizer):
        lease = Mock()
        lease.acquire.side_effect = RuntimeError('table unreachable')
        orchestrator = ScraperOrchestrator([_adapter('a')], synchronizer, lease=lease)

        with pytest.raises(RuntimeError):
            orchestrator.run_all()

        assert not orchestrator.is_running
        lease.release.assert_not_called()
